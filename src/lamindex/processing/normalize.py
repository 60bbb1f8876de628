import re
from typing import Any, Dict, List, Optional

from ..config.fields import ARRAY_FIELDS, SCALAR_FIELDS, aliases_of, canonicalize


_WS_RE = re.compile(r"\s+")
_FINISH_CODE_RE = re.compile(r"#\s*(\d+)\s*(.*)$")
_FINISH_NAMED_RE = re.compile(r"^#\s*([A-Za-z].*)$")
_CODE_TOKEN_RE = re.compile(r"[A-Za-z0-9]{3,}(?:-[A-Za-z0-9]+)*")


def clean_text(value: Any) -> str:
    """Collapse whitespace (NBSP included) and strip; ``None`` -> ``""``."""
    if value is None:
        return ""
    s = str(value).replace("\u00a0", " ")
    return _WS_RE.sub(" ", s).strip()


def normalize_scalar(value: Any) -> Optional[str]:
    s = clean_text(value)
    return s or None


def normalize_array(value: Any) -> List[str]:
    """Flatten a scalar / list / ``None`` into a list of non-empty strings.

    Input order is kept; duplicates are left for the merge step.
    """
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set)) else [value]
    out: List[str] = []
    for item in items:
        if item is None or isinstance(item, (dict, list, tuple)):
            continue
        s = clean_text(item)
        if s:
            out.append(s)
    return out


def _finish_entry(code: Any = None, name: Any = None) -> Optional[Dict[str, str]]:
    entry: Dict[str, str] = {}
    code_s = clean_text(code)
    name_s = clean_text(name)
    if code_s:
        entry["code"] = code_s
    if name_s:
        entry["name"] = name_s
    return entry or None


def parse_finish(label: Any) -> Dict[str, str]:
    """Split a finish filter label into its ``code`` / ``name`` parts.

    "#38 Fine Velvet" -> {"code": "#38", "name": "Fine Velvet"}
    "#Matte"          -> {"name": "Matte"}
    "Matte"           -> {"name": "Matte"}
    """
    text = clean_text(label)
    m = _FINISH_CODE_RE.search(text)
    if m:
        return _finish_entry(f"#{m.group(1)}", m.group(2)) or {}
    m = _FINISH_NAMED_RE.match(text)
    if m:
        return _finish_entry(name=m.group(1)) or {}
    return _finish_entry(name=text) or {}


def normalize_finish(value: Any) -> List[Dict[str, str]]:
    """Coerce any stored finish shape into a list of ``{code?, name?}`` dicts.

    Accepts a list of dicts or labels, a legacy map of dicts (older index
    files kept finishes keyed by code), or a single label.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        # {"code": ..., "name": ...} on its own vs. a legacy map of entries
        if set(value) <= {"code", "name"}:
            items: List[Any] = [value]
        else:
            items = [v for v in value.values() if isinstance(v, dict)]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    elif isinstance(value, str):
        items = [value]
    else:
        return []

    out: List[Dict[str, str]] = []
    for item in items:
        if isinstance(item, dict):
            entry = _finish_entry(item.get("code"), item.get("name"))
        elif isinstance(item, str):
            entry = parse_finish(item) or None
        else:
            entry = None
        if entry:
            out.append(entry)
    return out


def normalize_code(value: Any) -> str:
    """Uppercase, drop all whitespace, expand the unicode ellipsis.

    No format validation happens here, see ``validate.is_valid_code``.
    """
    if value is None:
        return ""
    s = str(value).replace("\u2026", "...")
    return _WS_RE.sub("", s).upper()


def extract_code_candidate(text: Any) -> Optional[str]:
    """Last code-looking token of *text* ("Fine Oak Y0385" -> "Y0385")."""
    s = clean_text(text)
    if not s:
        return None
    matches = _CODE_TOKEN_RE.findall(s)
    if not matches:
        return None
    return matches[-1].upper()


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    s = clean_text(value).lower()
    if s in ("true", "yes", "1", "y"):
        return True
    if s in ("false", "no", "0", "n"):
        return False
    return None


def normalize_fragment(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Canonicalize keys and shape values of one scraped fragment.

    Array values found under alias keys are folded into the canonical key;
    keys the table does not know pass through untouched.
    """
    out: Dict[str, Any] = {}
    for raw_key, value in (raw or {}).items():
        key = canonicalize(raw_key)
        if value is None:
            continue

        if key == "code":
            code = normalize_code(value)
            if code:
                out["code"] = code
        elif key in ARRAY_FIELDS:
            values = normalize_array(value)
            if values:
                bucket = out.setdefault(key, [])
                bucket.extend(v for v in values if v not in bucket)
        elif key == "finish":
            entries = normalize_finish(value)
            if entries:
                out.setdefault("finish", []).extend(entries)
        elif key in SCALAR_FIELDS:
            s = normalize_scalar(value)
            if s and key not in out:
                out[key] = s
        elif key == "no_repeat":
            flag = _coerce_bool(value)
            if flag is not None:
                out[key] = flag
        elif isinstance(value, str):
            s = normalize_scalar(value)
            if s:
                out[key] = s
        else:
            out[key] = value
    return out


def variant_values(record: Dict[str, Any], canonical_key: str) -> List[Any]:
    """Raw values stored under *canonical_key* and all of its aliases."""
    acc: List[Any] = []
    for key in aliases_of(canonical_key):
        if key not in record:
            continue
        v = record[key]
        if isinstance(v, (list, tuple)):
            acc.extend(v)
        elif v is not None:
            acc.append(v)
    return acc
