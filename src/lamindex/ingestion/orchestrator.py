from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from ..config.settings import FLUSH_EVERY, INDEX_FILE, START_URL
from ..processing.normalize import normalize_fragment
from ..processing.validate import code_for_fragment
from ..storage.repository import ProductStore, save_unkeyed, unkeyed_path_for
from ..utils.logging import get_logger
from .fragments import Batch

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_MISSING_INPUT = 2
EXIT_FATAL = 3
EXIT_UNRESOLVED = 4

# Producer-side hints used to derive a code, never persisted
CODE_HINT_KEYS = ("sku", "code_text", "href")


@dataclass
class UnresolvedFragment:
    code: str
    link: str = ""
    batch: str = ""


@dataclass
class RunResult:
    fragments_seen: int = 0
    merged: int = 0
    batches: int = 0
    records_written: int = 0
    unresolved: List[UnresolvedFragment] = field(default_factory=list)
    unkeyed: int = 0
    unkeyed_path: Optional[Path] = None

    @property
    def exit_code(self) -> int:
        return EXIT_UNRESOLVED if self.unresolved else EXIT_OK


def prepare_fragment(raw: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], str, bool]:
    """Normalize a raw fragment and attach its code.

    Returns ``(fragment, code, resolved)``; ``fragment`` is ``None`` when no
    code candidate exists at all.
    """
    fragment = normalize_fragment(raw)
    code, resolved = code_for_fragment(fragment)
    if not fragment.get("product-link") and fragment.get("href"):
        fragment["product-link"] = urljoin(START_URL, str(fragment["href"]))
    for key in CODE_HINT_KEYS:
        fragment.pop(key, None)
    if not code:
        return None, "", False
    fragment["code"] = code
    return fragment, code, resolved


def run_ingest(
    batches: Iterable[Batch],
    index_path: Path = INDEX_FILE,
    flush_every: int = FLUSH_EVERY,
    limit_fields: Optional[Iterable[str]] = None,
    unkeyed_path: Optional[Path] = None,
) -> RunResult:
    """Merge every fragment of every batch into the index at *index_path*.

    The index is flushed after each batch and every *flush_every* merged
    fragments, so an interrupted run loses at most one flush window.
    Fragments with no code candidate cannot be merged; they are kept as-is in
    *unkeyed_path* (by default a ``.unkeyed.json`` file beside the index).
    """
    store = ProductStore()
    result = RunResult(unkeyed_path=Path(unkeyed_path or unkeyed_path_for(index_path)))
    limit = list(limit_fields) if limit_fields else None
    flagged = set()
    pending = 0
    unkeyed: List[Dict[str, Any]] = []

    for label, fragments in batches:
        result.batches += 1
        logger.info("Batch %s: %d fragment(s)", label, len(fragments))
        for raw in fragments:
            result.fragments_seen += 1
            fragment, code, resolved = prepare_fragment(raw)
            if not resolved:
                link = str((raw or {}).get("product-link") or (raw or {}).get("href") or "")
                logger.warning(
                    "[%s] no valid code (best effort %r, link=%s)", label, code, link
                )
                if code not in flagged or not code:
                    flagged.add(code)
                    result.unresolved.append(UnresolvedFragment(code=code, link=link, batch=label))
            if fragment is None:
                unkeyed.append({"batch": label, "fragment": raw})
                continue
            store.merge_fragment(fragment)
            result.merged += 1
            pending += 1
            if flush_every and pending >= flush_every:
                result.records_written = len(store.flush(index_path, limit))
                pending = 0

        if pending:
            result.records_written = len(store.flush(index_path, limit))
            pending = 0
        if unkeyed:
            save_unkeyed(unkeyed, result.unkeyed_path)
            result.unkeyed += len(unkeyed)
            unkeyed = []

    logger.info(
        "Run finished: %d fragment(s), %d merged, %d product(s) in index, %d unresolved",
        result.fragments_seen, result.merged, result.records_written, len(result.unresolved),
    )
    return result
