from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config.fields import ARRAY_FIELDS, canonicalize
from ..config.settings import INDEX_FILE
from ..errors import PersistenceError
from ..processing.merge import (
    copy_missing_fields,
    finalize_record,
    is_empty_field,
    limit_to_fields,
    merge_duplicates,
    merge_records,
    union_finish,
)
from ..processing.normalize import clean_text, normalize_code, parse_finish
from ..utils.logging import get_logger

logger = get_logger(__name__)

Record = Dict[str, Any]


def read_json_array(path: Path) -> List[Record]:
    """Strict read: raises on I/O errors, bad JSON or a non-list root."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: root is {type(data).__name__}, expected a list")
    return [r for r in data if isinstance(r, dict)]


def load_all(path: Path = INDEX_FILE) -> List[Record]:
    """Read the JSON index; a missing or corrupt file reads as empty."""
    path = Path(path)
    if not path.exists():
        logger.warning("Index %s not found; starting from an empty collection", path)
        return []
    try:
        return read_json_array(path)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Index %s unreadable (%s); treating as empty", path, exc)
        return []


def save_all(records: Iterable[Record], path: Path = INDEX_FILE) -> None:
    """Write *records* as pretty JSON via a sibling temp file and rename."""
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    payload = json.dumps(list(records), ensure_ascii=False, indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise PersistenceError(path, exc) from exc


def by_code(records: Iterable[Record]) -> Dict[str, Record]:
    out: Dict[str, Record] = {}
    for r in records:
        if isinstance(r, dict) and r.get("code"):
            out.setdefault(str(r["code"]), r)
    return out


def write_merged(
    current: Mapping[str, Record],
    path: Path = INDEX_FILE,
    limit_fields: Optional[Iterable[str]] = None,
) -> List[Record]:
    """Merge this run's records into the file on disk and save atomically.

    The written collection is the union of the codes already stored and the
    codes in *current*; every code goes through ``merge_records`` so a save
    never drops data that an earlier run collected.
    """
    existing_list = load_all(path)
    for r in existing_list:
        if r.get("code"):
            r["code"] = normalize_code(r["code"])
    existing_list, counts = merge_duplicates(existing_list)
    dupes = {c: n for c, n in counts.items() if n > 1}
    if dupes:
        logger.warning("Collapsed %d duplicated code(s) already in %s", len(dupes), path)

    existing = by_code(existing_list)
    limit = [canonicalize(f) for f in limit_fields] if limit_fields else None

    merged: List[Record] = []
    seen = set()
    for record in existing_list:
        code = record.get("code")
        if not code:
            merged.append(record)
            continue
        new = current.get(code)
        if new is None:
            merged.append(record)
        else:
            if limit:
                new = limit_to_fields(new, limit, has_existing=True)
            merged.append(merge_records(record, new))
        seen.add(code)

    for code, new in current.items():
        if code in seen:
            continue
        if limit:
            new = limit_to_fields(new, limit, has_existing=code in existing)
        merged.append(merge_records({"code": code}, new))

    save_all(merged, path)
    logger.info("Merged %d products -> %s", len(merged), path)
    return merged


class ProductStore:
    """Records collected during one run, keyed by code.

    Fragments accumulate here between flushes; ``flush`` folds the store
    into the index file on disk.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, code: str) -> bool:
        return code in self._records

    def get(self, code: str) -> Optional[Record]:
        return self._records.get(code)

    def ensure(self, code: str, name: Optional[str] = None, link: Optional[str] = None) -> Record:
        code = normalize_code(code)
        rec = self._records.setdefault(code, {"code": code})
        if name and not rec.get("name"):
            rec["name"] = clean_text(name)
        if link and not rec.get("product-link"):
            rec["product-link"] = link
        return rec

    def add_value(self, code: str, field: str, value: Any) -> Record:
        """Record one filter label for *code* under *field*."""
        rec = self.ensure(code)
        key = canonicalize(field)
        label = clean_text(value)
        if not label:
            return rec
        if key == "finish":
            rec["finish"] = union_finish(rec.get("finish", []), [parse_finish(label)])
        elif key in ARRAY_FIELDS:
            bucket = rec.setdefault(key, [])
            if label not in bucket:
                bucket.append(label)
        elif is_empty_field(rec.get(key)):
            rec[key] = label
        return rec

    def merge_fragment(self, fragment: Record) -> Record:
        code = normalize_code(fragment.get("code"))
        if not code:
            raise ValueError("fragment has no code")
        merged = merge_records(self._records.get(code), {**fragment, "code": code})
        self._records[code] = merged
        return merged

    def records(self) -> Dict[str, Record]:
        return {code: finalize_record(rec) for code, rec in self._records.items()}

    def flush(self, path: Path = INDEX_FILE, limit_fields: Optional[Iterable[str]] = None) -> List[Record]:
        return write_merged(self.records(), path, limit_fields)


def unkeyed_path_for(index_path: Path) -> Path:
    """Sidecar next to the index holding fragments that carried no code."""
    index_path = Path(index_path)
    return index_path.with_name(f"{index_path.stem}.unkeyed.json")


def save_unkeyed(entries: Iterable[Record], path: Path) -> int:
    """Append *entries* to the sidecar at *path*, skipping exact repeats.

    Returns the number of entries stored in the sidecar afterwards.
    """
    path = Path(path)
    stored = load_all(path) if path.exists() else []
    seen = {json.dumps(e, sort_keys=True, ensure_ascii=False, default=str) for e in stored}
    added = 0
    for entry in entries:
        key = json.dumps(entry, sort_keys=True, ensure_ascii=False, default=str)
        if key in seen:
            continue
        seen.add(key)
        stored.append(entry)
        added += 1
    if added:
        save_all(stored, path)
        logger.info("Kept %d fragment(s) without a code -> %s", added, path)
    return len(stored)


def update_details_from_index(index: Iterable[Record], details: Iterable[Record]) -> List[Record]:
    """Fill empty detail fields from the index and add codes new to it."""
    idx = by_code(index)
    out = [r for r in details if isinstance(r, dict)]
    dmap = by_code(out)
    for code, row in dmap.items():
        src = idx.get(code)
        if src:
            copy_missing_fields(row, src)
    for code, src in idx.items():
        if code not in dmap:
            out.append({**src, "code": code})
    return out


def clear_carousel_texture_urls(details: Iterable[Record]) -> List[str]:
    """Drop carousel thumbnails stored as texture images; returns the codes."""
    cleared: List[str] = []
    for row in details:
        if not isinstance(row, dict):
            continue
        url = row.get("texture_image_url")
        if not isinstance(url, str) or "carousel" not in url.lower():
            continue
        row.pop("texture_image_url", None)
        row.pop("texture_image_pixels", None)
        if row.get("code"):
            cleared.append(str(row["code"]))
    return cleared
