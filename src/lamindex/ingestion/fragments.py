"""Fragment producers.

A producer is any iterable of ``(label, fragments)`` batches; each batch is
flushed to the index once merged. Scraper variants only need to yield raw
dicts, everything else (codes, key spellings, value shapes) is handled by the
orchestrator.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Protocol, Tuple

from ..utils.logging import get_logger

logger = get_logger(__name__)

Fragment = Dict[str, Any]
Batch = Tuple[str, List[Fragment]]


class FragmentProducer(Protocol):
    def __iter__(self) -> Iterator[Batch]:
        ...


def read_fragments(path: Path) -> List[Fragment]:
    """Load fragments from a JSON array or a JSON Lines file.

    Malformed lines and non-object entries are logged and skipped.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8-sig")
    stripped = text.lstrip()
    if stripped.startswith("["):
        data = json.loads(stripped)
        items = data if isinstance(data, list) else []
    else:
        items = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError as exc:
                logger.warning("%s:%d skipped, invalid JSON: %s", path.name, lineno, exc)

    fragments = [item for item in items if isinstance(item, dict)]
    skipped = len(items) - len(fragments)
    if skipped:
        logger.warning("%s: %d non-object entries skipped", path.name, skipped)
    return fragments


def file_batches(paths: Iterable[Path]) -> Iterator[Batch]:
    """One batch per fragment file."""
    for path in paths:
        yield Path(path).name, read_fragments(path)
