from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..utils.logging import get_logger
from .merge import merge_duplicates
from .normalize import normalize_code
from .validate import find_preferred_code, is_valid_code

logger = get_logger(__name__)


@dataclass
class UnresolvedCode:
    code: str
    name: str = ""
    link: str = ""


@dataclass
class AuditResult:
    records: List[Dict[str, Any]]
    reviewed: int = 0
    normalized: int = 0
    corrected: int = 0
    duplicates_merged: int = 0
    duplicate_counts: Dict[str, int] = field(default_factory=dict)
    correction_sources: List[str] = field(default_factory=list)
    unresolved: List[UnresolvedCode] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.normalized or self.corrected or self.duplicates_merged)


def _detail_lookup(details: Optional[Sequence[Dict[str, Any]]]):
    by_link: Dict[str, Dict[str, Any]] = {}
    by_name: Dict[str, Dict[str, Any]] = {}
    for entry in details or []:
        if not isinstance(entry, dict):
            continue
        link = entry.get("product-link")
        name = entry.get("name")
        if link and link not in by_link:
            by_link[link] = entry
        if name and name not in by_name:
            by_name[name] = entry
    return by_link, by_name


def audit_codes(
    records: Sequence[Dict[str, Any]],
    details: Optional[Sequence[Dict[str, Any]]] = None,
) -> AuditResult:
    """Normalize, repair and de-duplicate the codes of an index.

    Invalid codes are re-derived from secondary evidence (product link, the
    matching detail record, the texture image URL). Codes that stay invalid
    are kept as they are and listed in ``unresolved``; nothing is deleted.
    Input records are modified in place.
    """
    by_link, by_name = _detail_lookup(details)
    result = AuditResult(records=[])
    sources: List[str] = []

    for rec in records:
        if not isinstance(rec, dict):
            continue
        result.reviewed += 1
        original = rec.get("code")
        normalized = normalize_code(original)
        if original is not None and str(original).strip():
            if normalized != str(original):
                result.normalized += 1
            rec["code"] = normalized
        elif normalized:
            rec["code"] = normalized

        detail = by_link.get(rec.get("product-link")) or (
            by_name.get(rec["name"]) if rec.get("name") else None
        )

        if not is_valid_code(rec.get("code")):
            candidate = find_preferred_code(rec, detail)
            if candidate and candidate.code != rec.get("code"):
                logger.info(
                    "Code %r corrected to %s (source: %s)",
                    rec.get("code"), candidate.code, candidate.source,
                )
                rec["code"] = candidate.code
                result.corrected += 1
                if candidate.source not in sources:
                    sources.append(candidate.source)

        if not is_valid_code(rec.get("code")):
            issue = UnresolvedCode(
                code=rec.get("code") or "",
                name=rec.get("name") or "",
                link=rec.get("product-link") or "",
            )
            logger.warning(
                "Unresolved code %r (name=%r, link=%s)", issue.code, issue.name, issue.link
            )
            result.unresolved.append(issue)

    merged, counts = merge_duplicates(r for r in records if isinstance(r, dict))
    result.records = merged
    result.duplicate_counts = {code: n for code, n in counts.items() if n > 1}
    result.duplicates_merged = sum(n - 1 for n in result.duplicate_counts.values())
    result.correction_sources = sources
    return result
