"""Non-destructive record merging.

Every scrape pass produces partial fragments; ``merge_records`` folds a
fragment into the stored record for the same code. The result only ever
gains information: scalars keep their first non-empty value, facet arrays
are unioned across canonical and legacy keys, finishes are unioned by
``code|name``.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..config.fields import (
    ARRAY_FIELDS,
    DEFAULT_SURFACE_GROUP,
    FIELD_ALIASES,
    LEFT_BIASED_FIELDS,
    alias_keys,
    aliases_of,
)
from .normalize import normalize_array, normalize_finish, variant_values

Record = Dict[str, Any]

_BASE_FIELDS = ("surface-group", "name", "product-link")


def is_empty_field(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _finish_key(entry: Dict[str, Any]) -> str:
    code = str(entry.get("code") or "").strip()
    name = str(entry.get("name") or "").strip().lower()
    return f"{code}|{name}"


def union_finish(a: Sequence[Dict[str, Any]], b: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out: List[Dict[str, Any]] = []
    for entry in [*a, *b]:
        if not entry:
            continue
        key = _finish_key(entry)
        if key in seen:
            continue
        seen.add(key)
        out.append({k: entry[k] for k in ("code", "name") if entry.get(k)})
    return out


def _identity(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def union_generic(a: Any, b: Any) -> List[Any]:
    """Union two values as lists, comparing items structurally."""
    left = a if isinstance(a, list) else ([] if a is None else [a])
    right = b if isinstance(b, list) else ([] if b is None else [b])
    seen = set()
    out: List[Any] = []
    for value in [*left, *right]:
        key = _identity(value)
        if key in seen:
            continue
        seen.add(key)
        out.append(copy.deepcopy(value))
    return out


def collect_variant_values(record: Record, canonical_key: str) -> List[str]:
    return normalize_array(variant_values(record or {}, canonical_key))


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def _first_present(record: Record, canonical_key: str) -> Any:
    for key in aliases_of(canonical_key):
        value = record.get(key)
        if not is_empty_field(value):
            return value
    return None


def merge_records(old: Optional[Record], new: Optional[Record]) -> Record:
    """Merge fragment *new* into stored record *old* without erasing anything.

    Neither argument is mutated. Re-applying the same fragment is a no-op:
    ``merge_records(merge_records(a, b), b) == merge_records(a, b)``.
    """
    old = old or {}
    new = new or {}
    out = copy.deepcopy(old)

    code = str(new.get("code") or old.get("code") or "").strip().upper()
    if code:
        out["code"] = code

    for key in LEFT_BIASED_FIELDS:
        if _first_present(out, key) is not None:
            continue
        incoming = _first_present(new, key)
        if incoming is not None:
            out[key] = copy.deepcopy(incoming)

    for key in ARRAY_FIELDS:
        merged = _unique(
            collect_variant_values(out, key) + collect_variant_values(new, key)
        )
        if merged:
            out[key] = merged

    finishes = union_finish(normalize_finish(out.get("finish")), normalize_finish(new.get("finish")))
    if finishes:
        out["finish"] = finishes

    covered = {"code", "finish", *LEFT_BIASED_FIELDS, *ARRAY_FIELDS, *alias_keys()}
    for key, value in new.items():
        if key in covered or value is None:
            continue
        if key not in out:
            out[key] = copy.deepcopy(value)
            continue
        existing = out[key]
        if isinstance(existing, list) or isinstance(value, list):
            out[key] = union_generic(existing, value)
        elif isinstance(existing, dict) and isinstance(value, dict):
            out[key] = {**copy.deepcopy(value), **existing}
        elif is_empty_field(existing):
            out[key] = copy.deepcopy(value)

    # Legacy files may only carry the alias spelling
    for canonical, variants in FIELD_ALIASES.items():
        if canonical in out:
            continue
        for alias in variants:
            if alias != canonical and alias in out:
                out[canonical] = copy.deepcopy(out[alias])
                break

    return out


def copy_missing_fields(dst: Record, src: Record) -> Record:
    """Fill every empty field of *dst* from *src* in place (code excluded)."""
    for key, value in (src or {}).items():
        if key == "code":
            continue
        if key not in dst or is_empty_field(dst[key]):
            dst[key] = copy.deepcopy(value)
    return dst


def limit_to_fields(record: Record, fields: Iterable[str], has_existing: bool) -> Record:
    """Keep only *fields* of a freshly scraped record.

    Used when a run targets specific missing fields: records already in the
    index get nothing but the requested data, new records also keep their
    base identity fields.
    """
    wanted = [f for f in fields if f and f != "code"]
    if not wanted:
        return record
    out: Record = {"code": record.get("code")}
    if not out["code"]:
        return out

    if not has_existing:
        for key in _BASE_FIELDS:
            if record.get(key) is not None:
                out[key] = record[key]

    for field in wanted:
        for variant in aliases_of(field):
            value = record.get(variant)
            if isinstance(value, list):
                if value:
                    out[field] = value
                    break
            elif value is not None:
                out[field] = value
                break
    return out


def finalize_record(record: Record) -> Record:
    """Give a scraped record its stable key order and defaults."""
    out: Record = {
        "code": record.get("code"),
        "surface-group": record.get("surface-group") or DEFAULT_SURFACE_GROUP,
    }
    for key, value in record.items():
        if key in out or is_empty_field(value):
            continue
        out[key] = value
    return out


def merge_duplicates(records: Iterable[Record]) -> Tuple[List[Record], Dict[str, int]]:
    """Collapse records that share a code, keeping first-seen order.

    Returns the merged list and the number of records seen per code.
    """
    merged: List[Record] = []
    position: Dict[str, int] = {}
    counts: Dict[str, int] = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        code = record.get("code")
        if not code:
            merged.append(record)
            continue
        if code in position:
            idx = position[code]
            merged[idx] = merge_records(merged[idx], record)
            counts[code] += 1
        else:
            position[code] = len(merged)
            counts[code] = 1
            merged.append(record)
    return merged, counts
