import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urljoin, urlparse

from ..config.settings import START_URL
from .normalize import extract_code_candidate, normalize_code

CODE_ALLOWED_RE = re.compile(r"^[A-Z0-9]+$")
_TOKEN_RE = re.compile(r"[A-Za-z0-9]+")
_EXT_RE = re.compile(r"\.[a-z0-9]+$", re.I)

SKU_PARAMS = ("sku", "product_sku", "productSku", "skuId")


@dataclass(frozen=True)
class CodeCandidate:
    code: str
    source: str


def is_valid_code(code: Optional[str]) -> bool:
    """3-7 chars of [A-Z0-9] with at least two digits ("Y0385", "4830")."""
    if not code:
        return False
    if not CODE_ALLOWED_RE.match(code):
        return False
    if len(code) < 3 or len(code) > 7:
        return False
    return sum(ch.isdigit() for ch in code) >= 2


def tokens_from_url(url_like: Optional[str], base: str = START_URL) -> List[str]:
    """Alphanumeric tokens of a URL.

    Query values come first, then path segments from the tail backwards,
    then the fragment.
    """
    if not url_like:
        return []
    tokens: List[str] = []
    try:
        parsed = urlparse(urljoin(base, str(url_like)))
    except ValueError:
        return _TOKEN_RE.findall(str(url_like))
    for _, value in parse_qsl(parsed.query, keep_blank_values=False):
        tokens.extend(_TOKEN_RE.findall(value))
    for segment in reversed([s for s in parsed.path.split("/") if s]):
        tokens.extend(_TOKEN_RE.findall(_EXT_RE.sub("", segment)))
    if parsed.fragment:
        tokens.extend(_TOKEN_RE.findall(parsed.fragment))
    return tokens


def code_from_href(href: Optional[str], base: str = START_URL) -> Optional[str]:
    """Best code guess from a product link ("/fine-oak-y0385.html" -> "Y0385")."""
    if not href:
        return None
    try:
        parsed = urlparse(urljoin(base, str(href)))
    except ValueError:
        return None

    query = dict(parse_qsl(parsed.query))
    for key in SKU_PARAMS:
        candidate = extract_code_candidate(query.get(key))
        if candidate:
            return candidate

    parts = [p for p in parsed.path.split("/") if p]
    for i in range(len(parts) - 1, -1, -1):
        segment = _EXT_RE.sub("", parts[i])
        if not segment:
            continue
        if segment == "category" and i >= 2:
            segment = parts[i - 2]
        hyphen = segment.rfind("-")
        if hyphen != -1 and hyphen < len(segment) - 1:
            candidate = extract_code_candidate(segment[hyphen + 1:])
            if candidate:
                return candidate
        candidate = extract_code_candidate(segment)
        if candidate:
            return candidate
    return None


def gather_candidates(record: Dict[str, Any], detail: Optional[Dict[str, Any]] = None) -> List[CodeCandidate]:
    """Code candidates in priority order, normalized and de-duplicated.

    existing code -> product-link tokens -> detail code / SKU ->
    detail product-link tokens -> texture image URL tokens.
    """
    candidates: List[CodeCandidate] = []
    seen = set()

    def push(raw: Any, source: str) -> None:
        code = normalize_code(raw)
        if not code or code in seen:
            return
        seen.add(code)
        candidates.append(CodeCandidate(code, source))

    record = record or {}
    push(record.get("code"), "existing")

    link = record.get("product-link")
    for token in tokens_from_url(link):
        push(token, "product-link")

    if detail:
        if detail.get("code") and detail.get("code") != record.get("code"):
            push(detail.get("code"), "detail.code")
        if detail.get("sku"):
            push(detail.get("sku"), "detail.sku")
        detail_link = detail.get("product-link")
        if detail_link and detail_link != link:
            for token in tokens_from_url(detail_link):
                push(token, "detail.product-link")

    image_url = (detail or {}).get("texture_image_url") or record.get("texture_image_url")
    for token in tokens_from_url(image_url):
        push(token, "texture_image_url")

    return candidates


def resolve_code(candidates: Iterable[Any]) -> Optional[CodeCandidate]:
    """First candidate that passes :func:`is_valid_code`, or ``None``.

    Plain strings are accepted too and reported with source ``"candidate"``.
    """
    for candidate in candidates:
        if not isinstance(candidate, CodeCandidate):
            candidate = CodeCandidate(normalize_code(candidate), "candidate")
        if is_valid_code(candidate.code):
            return candidate
    return None


def find_preferred_code(record: Dict[str, Any], detail: Optional[Dict[str, Any]] = None) -> Optional[CodeCandidate]:
    return resolve_code(gather_candidates(record, detail))


def code_for_fragment(fragment: Dict[str, Any]) -> Tuple[str, bool]:
    """Derive a code for a freshly scraped fragment.

    Returns ``(code, resolved)``. When no candidate validates, the first
    best-effort code is returned with ``resolved=False`` so the caller can
    keep and flag the record instead of guessing.
    """
    raw: List[CodeCandidate] = []
    if fragment.get("code"):
        raw.append(CodeCandidate(normalize_code(fragment["code"]), "existing"))
    link = fragment.get("product-link") or fragment.get("href")
    from_href = code_from_href(link)
    if from_href:
        raw.append(CodeCandidate(from_href, "product-link"))
    for key in ("sku", "code_text"):
        candidate = extract_code_candidate(fragment.get(key))
        if candidate:
            raw.append(CodeCandidate(normalize_code(candidate), key))
    for token in tokens_from_url(link):
        raw.append(CodeCandidate(normalize_code(token), "product-link"))
    for token in tokens_from_url(fragment.get("texture_image_url")):
        raw.append(CodeCandidate(normalize_code(token), "texture_image_url"))

    found = resolve_code(raw)
    if found:
        return found.code, True
    best_effort = next((c.code for c in raw if c.code), "")
    return best_effort, False
