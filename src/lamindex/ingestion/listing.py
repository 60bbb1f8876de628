"""Static-HTML listing producer.

Fetches a filtered design-library listing, reads the product tiles and turns
each one into a fragment carrying the filter label. Works on server-rendered
listing pages; pages that need a real browser are left to external scrapers
feeding JSON fragments.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config.fields import canonicalize
from ..config.settings import (
    MAX_LISTING_PAGES,
    REQUEST_BACKOFF,
    REQUEST_RETRIES,
    REQUEST_TIMEOUT,
    START_URL,
)
from ..errors import FetchError
from ..processing.normalize import clean_text
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Query params that only carry UI state
DROP_PARAMS = ("availability", "price_designlibrary", "_")

TILE_SELECTOR = "#product-grid-view > ol > li"
NEXT_SELECTOR = "#product-grid-view .category-pager .pages .pages-item-next a"


@dataclass
class ListingTile:
    href: str
    code_text: str = ""
    name_alt: str = ""
    sku: str = ""


def build_session(retries: int = REQUEST_RETRIES, backoff: float = REQUEST_BACKOFF) -> requests.Session:
    session = requests.Session()
    session.headers.update(DEFAULT_HEADERS)
    retry = Retry(
        total=retries,
        backoff_factor=backoff,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def fetch_html(session: requests.Session, url: str, timeout: float = REQUEST_TIMEOUT) -> str:
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"GET {url} failed: {exc}") from exc
    return resp.text


def _with_query(url: str, drop=(), **params: str) -> str:
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
             if k not in drop and k not in params]
    query.extend(params.items())
    return urlunparse(parsed._replace(query=urlencode(query)))


def sanitize_filter_url(href: str, base: str = START_URL) -> str:
    """Absolute filter URL in list mode without UI-only parameters."""
    try:
        url = urljoin(base, href)
    except ValueError:
        return href
    return _with_query(url, drop=DROP_PARAMS, product_list_mode="list")


def page_url(url: str, page_no: int) -> str:
    if page_no <= 1:
        return _with_query(url, drop=("p",))
    return _with_query(url, p=str(page_no))


def parse_listing_tiles(html: str, base_url: str = START_URL) -> List[ListingTile]:
    soup = BeautifulSoup(html, "lxml")
    tiles: List[ListingTile] = []
    for li in soup.select(TILE_SELECTOR):
        a = li.select_one("a.product-item-link") or li.select_one("div.thumbnail-image > a")
        if a is None:
            continue
        href = (a.get("href") or "").strip()
        if not href:
            continue

        sku = li.get("data-product-sku") or li.get("data-sku") or a.get("data-product-sku") or ""
        code_text = clean_text(a.get_text(" "))
        if not code_text:
            sku_node = li.select_one(".product-item-sku a, .product-item-sku")
            code_text = clean_text(sku_node.get_text(" ")) if sku_node else ""
        img = a.find("img") or li.find("img")
        name_alt = clean_text(img.get("alt")) if img else ""

        tiles.append(ListingTile(
            href=urljoin(base_url, href),
            code_text=code_text,
            name_alt=name_alt,
            sku=clean_text(sku),
        ))
    return tiles


def has_next_page(html: str) -> bool:
    soup = BeautifulSoup(html, "lxml")
    nxt = soup.select_one(NEXT_SELECTOR)
    if nxt is None:
        return False
    classes = nxt.get("class") or []
    return not (
        "disabled" in classes
        or nxt.has_attr("disabled")
        or nxt.get("aria-disabled") == "true"
    )


def tile_to_fragment(tile: ListingTile, field: str, label: str) -> Dict[str, object]:
    """Fragment for one tile seen under filter *label* of *field*."""
    fragment: Dict[str, object] = {"product-link": tile.href}
    if tile.name_alt:
        fragment["name"] = tile.name_alt
    if tile.sku:
        fragment["sku"] = tile.sku
    if tile.code_text:
        fragment["code_text"] = tile.code_text
    key = canonicalize(field)
    fragment[key] = [label]
    return fragment


def iter_listing_fragments(
    session: requests.Session,
    url: str,
    field: str,
    label: str,
    max_pages: int = MAX_LISTING_PAGES,
    delay: float = 0.3,
) -> Iterator[Dict[str, object]]:
    """Walk every page of one filter and yield a fragment per tile.

    Stops on an empty page, a missing "next" link, or a page whose first
    tiles repeat an earlier page (some filters loop back to page one).
    """
    base = sanitize_filter_url(url)
    seen_signatures = set()
    for page_no in range(1, max_pages + 1):
        target = page_url(base, page_no)
        logger.info('Filter "%s" page %d: %s', label, page_no, target)
        html = fetch_html(session, target)
        tiles = parse_listing_tiles(html, target)
        if not tiles:
            logger.info('Filter "%s" page %d: no tiles; stopping', label, page_no)
            break

        signature = "||".join(t.href for t in tiles[:8])
        if signature in seen_signatures:
            logger.warning('Filter "%s" page %d repeats an earlier page; stopping', label, page_no)
            break
        seen_signatures.add(signature)

        for tile in tiles:
            yield tile_to_fragment(tile, field, label)

        if not has_next_page(html):
            break
        if delay:
            time.sleep(delay)
