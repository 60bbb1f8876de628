from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..config.fields import INDEX_FIELDS, aliases_of, canonicalize
from ..utils.logging import get_logger

logger = get_logger(__name__)


def has_field(record: Dict[str, Any], field: str) -> bool:
    """True when *field* (or one of its legacy spellings) holds data."""
    for key in aliases_of(canonicalize(field)):
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, (list, dict)):
            if value:
                return True
            continue
        if isinstance(value, str):
            if value.strip():
                return True
            continue
        return True
    return False


def missing_field_report(records: Sequence[Dict[str, Any]], fields: Iterable[str]) -> Dict[str, List[str]]:
    """Codes of the records lacking each requested field."""
    report: Dict[str, List[str]] = {}
    for field in fields:
        key = canonicalize(field)
        report[key] = [
            str(r.get("code") or "") for r in records
            if isinstance(r, dict) and not has_field(r, key)
        ]
    return report


def filter_codes_missing_field(records: Sequence[Dict[str, Any]], field: str) -> Dict[str, List[str]]:
    missing: List[str] = []
    present: List[str] = []
    for r in records:
        if not isinstance(r, dict) or not r.get("code"):
            continue
        (present if has_field(r, field) else missing).append(str(r["code"]))
    return {"missing": missing, "present": present}


def codes_missing_from(index: Sequence[Dict[str, Any]], details: Sequence[Dict[str, Any]]) -> List[str]:
    """Index codes with no detail record yet."""
    detail_codes = {str(r.get("code")) for r in details if isinstance(r, dict)}
    out: List[str] = []
    for r in index:
        if not isinstance(r, dict) or not r.get("code"):
            continue
        code = str(r["code"])
        if code not in detail_codes and code not in out:
            out.append(code)
    return out


def coverage_frame(
    records: Sequence[Dict[str, Any]],
    fields: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Per-field coverage table: present / missing counts and percentage."""
    wanted = [canonicalize(f) for f in (fields or INDEX_FIELDS)]
    rows = [r for r in records if isinstance(r, dict)]
    total = len(rows)
    data = []
    for field in wanted:
        present = sum(1 for r in rows if has_field(r, field))
        data.append({
            "field": field,
            "present": present,
            "missing": total - present,
            "coverage_pct": round(100.0 * present / total, 1) if total else 0.0,
        })
    return pd.DataFrame(data, columns=["field", "present", "missing", "coverage_pct"])


def write_coverage_csv(frame: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False, encoding="utf-8")
    logger.info("Coverage written to %s (%d fields)", path, len(frame))
