"""Texture scale derivation.

``texture_scale`` is the physical size (inches) one texture image covers.
Unlike every other index field it is derived, not accumulated: each run
recomputes it from the current evidence (pixel aspect ratio, sheet sizes,
URL size token, no-repeat flag) and replaces the stored value.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..utils.logging import get_logger

logger = get_logger(__name__)

Scale = Dict[str, float]

FOUR_BY_EIGHT_RATIO = 96 / 48
FIVE_BY_TWELVE_RATIO = 144 / 60
NO_REPEAT_WIDTH = 60
NO_REPEAT_DEFAULT = {"width": 96, "height": 48}
FALLBACK_SCALE = {"width": 144, "height": 60}
BANNER_CROP_PX = 93

FEET_SIZE_TOKEN_RE = re.compile(
    r"(^|[^A-Za-z0-9])(\d+(?:\.\d+)?)\s*[xX×]\s*(\d+(?:\.\d+)?)(?![A-Za-z0-9])"
)
SHEET_SIZE_ALLOWED_RE = re.compile(r"^\d+' x \d+'$")
SHEET_SIZE_PARSE_RE = re.compile(r"^(\d+)' x (\d+)'$")
BOLD_DIMENSIONS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*\"?\s*[xX×-]\s*(\d+(?:\.\d+)?)")
BANNER_RE = re.compile(r"banner", re.I)


@dataclass
class ScaleChoice:
    scale: Optional[Scale]
    reason: str = ""
    no_repeat_scale: Optional[Scale] = None


def round2(n: float) -> float:
    return math.floor(n * 100 + 0.5) / 100


def _num(value: Any) -> Optional[float]:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def valid_size(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    w, h = _num(obj.get("width")), _num(obj.get("height"))
    return w is not None and h is not None and w > 0 and h > 0


def ratio_of(obj: Any) -> Optional[float]:
    if not valid_size(obj):
        return None
    return float(obj["width"]) / float(obj["height"])


def scale_ratio(obj: Any) -> Optional[float]:
    if not isinstance(obj, dict):
        return None
    ratio = _num(obj.get("ratio"))
    if ratio is not None and ratio > 0:
        return ratio
    return ratio_of(obj)


def approx_eq(a: Optional[float], b: Optional[float], tol: float = 0.02) -> bool:
    if a is None or b is None or a <= 0 or b <= 0:
        return False
    return abs(a - b) <= tol


def orient_max_as_width(scale: Any) -> Any:
    if not valid_size(scale):
        return scale
    w, h = float(scale["width"]), float(scale["height"])
    return {"width": w, "height": h} if w >= h else {"width": h, "height": w}


def _fmt(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else str(n)


def _feet_match(url: Optional[str]) -> Optional[Tuple[float, float]]:
    if not url:
        return None
    m = FEET_SIZE_TOKEN_RE.search(url)
    if not m:
        return None
    return float(m.group(2)), float(m.group(3))


def parse_url_feet_size(url: Optional[str]) -> Optional[Scale]:
    """"..._4x8_..." -> {"width": 96, "height": 48} (feet to inches)."""
    feet = _feet_match(url)
    if not feet:
        return None
    a, b = feet
    return orient_max_as_width({"width": max(a, b) * 12, "height": min(a, b) * 12})


def extract_url_feet_token(url: Optional[str]) -> Optional[str]:
    feet = _feet_match(url)
    if not feet:
        return None
    a, b = feet
    return f"{_fmt(min(a, b))}x{_fmt(max(a, b))}"


def collect_valid_sheet_sizes(values: Any) -> Tuple[List[str], List[str]]:
    """Split sheet size labels into well-formed (``4' x 8'``) and rejected."""
    valid: List[str] = []
    invalid: List[str] = []
    if not isinstance(values, list):
        return valid, invalid
    for raw in values:
        if not isinstance(raw, str):
            continue
        label = " ".join(raw.split())
        if not label:
            continue
        if not SHEET_SIZE_ALLOWED_RE.match(label):
            if label not in invalid:
                invalid.append(label)
            continue
        if label not in valid:
            valid.append(label)
    return valid, invalid


def parse_sheet_size_label(label: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(label, str):
        return None
    m = SHEET_SIZE_PARSE_RE.match(label.strip())
    if not m:
        return None
    a, b = int(m.group(1)), int(m.group(2))
    if a <= 0 or b <= 0:
        return None
    inches = orient_max_as_width({"width": max(a, b) * 12, "height": min(a, b) * 12})
    return {
        "width": round2(inches["width"]),
        "height": round2(inches["height"]),
        "ratio": round(inches["width"] / inches["height"], 4),
        "label": label,
    }


def parse_sheet_sizes(values: Iterable[Any]) -> List[Dict[str, Any]]:
    seen = set()
    parsed = []
    for value in values or []:
        scale = parse_sheet_size_label(value)
        if not scale:
            continue
        key = (scale["width"], scale["height"])
        if key in seen:
            continue
        seen.add(key)
        parsed.append(scale)
    return parsed


def parse_bold_dimensions(text: Optional[str]) -> Optional[Scale]:
    """Repeat size printed on the detail page, e.g. ``60" x 144"``."""
    if not text:
        return None
    m = BOLD_DIMENSIONS_RE.search(text)
    if not m:
        return None
    return orient_max_as_width({"width": float(m.group(1)), "height": float(m.group(2))})


def compute_parsed_scale(
    image_url: Optional[str],
    no_repeat: bool = False,
    bold_text: Optional[str] = None,
) -> Optional[Scale]:
    """URL size token, then the no-repeat default, then bold page dimensions."""
    from_url = parse_url_feet_size(image_url)
    if valid_size(from_url):
        return from_url
    if no_repeat:
        return dict(NO_REPEAT_DEFAULT)
    return parse_bold_dimensions(bold_text)


def looks_banner(url: Optional[str]) -> bool:
    return bool(url) and bool(BANNER_RE.search(url))


def apply_banner_crop(url: Optional[str], pixels: Any) -> Any:
    """Banner renders carry a 93px caption strip that is not texture."""
    if not valid_size(pixels) or not looks_banner(url):
        return pixels
    height = max(1, round(float(pixels["height"]) - BANNER_CROP_PX))
    return {"width": round(float(pixels["width"])), "height": height}


def enforce_scale_matches_pixels(scale: Any, pixels: Any) -> Any:
    """Stretch *scale* to the image aspect ratio, keeping its long side."""
    if not valid_size(scale) or not valid_size(pixels):
        return scale
    r_img = ratio_of(pixels)
    if approx_eq(ratio_of(scale), r_img, 1e-3):
        return scale

    primary = max(float(scale["width"]), float(scale["height"]))
    if r_img >= 1:
        adjusted = {"width": round2(primary), "height": round2(primary / r_img)}
    else:
        adjusted = {"width": round2(primary * r_img), "height": round2(primary)}

    if not valid_size(adjusted) or not approx_eq(ratio_of(adjusted), r_img, 1e-3):
        width = float(scale["width"])
        adjusted = {"width": round2(width), "height": round2(width / r_img)}

    if not valid_size(adjusted) or not approx_eq(ratio_of(adjusted), r_img, 1e-3):
        return scale
    return adjusted


def _closest_sheet_option(options: List[Dict[str, Any]], pixel_ratio: float) -> Optional[Dict[str, Any]]:
    ratios = np.array([scale_ratio(o) or 0.0 for o in options], dtype=float)
    usable = ratios > 0
    if not usable.any():
        return None
    diffs = np.where(usable, np.abs(ratios - pixel_ratio), np.inf)
    return options[int(np.argmin(diffs))]


def choose_final_scale(
    image_url: Optional[str],
    pixels: Any,
    current_scale: Any = None,
    parsed_scale: Any = None,
    no_repeat: bool = False,
    existing_no_repeat_scale: Any = None,
    sheet_size_scales: Optional[List[Dict[str, Any]]] = None,
) -> ScaleChoice:
    """Pick the physical scale hypothesis that best explains the image.

    Preference order: closest sheet size by aspect ratio, 4x8 / 5x12 when
    the pixel ratio matches, the no-repeat scale, a width-60 pixel fallback,
    then the URL token, parsed and existing scales.
    """
    url_token = extract_url_feet_token(image_url)
    url_scale = parse_url_feet_size(image_url)
    current = orient_max_as_width(current_scale)
    parsed = orient_max_as_width(parsed_scale)
    sheet_options = [o for o in (sheet_size_scales or []) if valid_size(o)]

    pixel_ratio = ratio_of(pixels)
    pixel_ratio_valid = pixel_ratio is not None and pixel_ratio > 0

    def ratio_matches(target: float, tol: float = 0.05) -> bool:
        return pixel_ratio_valid and approx_eq(pixel_ratio, target, tol)

    no_repeat_scale: Optional[Scale] = None
    if valid_size(existing_no_repeat_scale):
        no_repeat_scale = {
            "width": round2(float(existing_no_repeat_scale["width"])),
            "height": round2(float(existing_no_repeat_scale["height"])),
        }
    elif no_repeat and pixel_ratio_valid:
        no_repeat_scale = {"width": NO_REPEAT_WIDTH, "height": round2(NO_REPEAT_WIDTH / pixel_ratio)}

    chosen: Optional[Scale] = None
    reasons: List[str] = []

    if sheet_options and pixel_ratio_valid:
        best = _closest_sheet_option(sheet_options, pixel_ratio)
        if best is not None:
            chosen = {"width": round2(best["width"]), "height": round2(best["height"])}
            reasons.append(f"Pixels ratio ~{best.get('label') or _fmt(chosen['width']) + 'x' + _fmt(chosen['height'])}")

    if chosen is None and not sheet_options and ratio_matches(FOUR_BY_EIGHT_RATIO):
        chosen = {"width": 96, "height": 48}
        reasons.append("Pixels ratio ~4x8")
    elif chosen is None and not sheet_options and ratio_matches(FIVE_BY_TWELVE_RATIO):
        chosen = {"width": 144, "height": 60}
        reasons.append("Pixels ratio ~5x12")

    if chosen is None and no_repeat_scale and approx_eq(scale_ratio(no_repeat_scale), pixel_ratio, 0.02):
        chosen = dict(no_repeat_scale)
        reasons.append("No-repeat scale aligns with pixels")

    if chosen is None and not no_repeat_scale and not valid_size(url_scale) and pixel_ratio_valid:
        chosen = {"width": NO_REPEAT_WIDTH, "height": round2(NO_REPEAT_WIDTH / pixel_ratio)}
        reasons.append("Pixels fallback width=60")

    if chosen is None and valid_size(url_scale):
        chosen = dict(url_scale)
        reasons.append(f"URL token {url_token}")

    if chosen is None and valid_size(parsed):
        chosen = dict(parsed)
        reasons.append("Parsed fallback")

    if chosen is None and valid_size(current):
        chosen = dict(current)
        reasons.append("Existing fallback")

    if chosen is not None and pixel_ratio_valid:
        adjusted = enforce_scale_matches_pixels(chosen, pixels)
        if valid_size(adjusted):
            if not approx_eq(ratio_of(adjusted), ratio_of(chosen), 1e-3):
                reasons.append("Ratio aligned")
            chosen = adjusted
        if pixel_ratio >= 1:
            chosen = orient_max_as_width(chosen)
    elif chosen is not None:
        chosen = orient_max_as_width(chosen)

    if chosen is not None:
        chosen = {"width": round2(float(chosen["width"])), "height": round2(float(chosen["height"]))}
        logger.debug("Scale choice %sx%s [%s]", chosen["width"], chosen["height"], "; ".join(reasons))
    else:
        logger.debug("Scale choice: no valid scale information")

    return ScaleChoice(scale=chosen, reason="; ".join(reasons), no_repeat_scale=no_repeat_scale)


def apply_texture_scale(record: Dict[str, Any], bold_text: Optional[str] = None) -> ScaleChoice:
    """Recompute ``texture_scale`` of a detail record in place.

    The derived value replaces whatever was stored; when no hypothesis
    survives, the current (or 144x60 default) scale is kept.
    """
    image_url = record.get("texture_image_url") or ""
    pixels = record.get("texture_image_pixels")
    no_repeat = bool(record.get("no_repeat"))

    valid_labels, invalid_labels = collect_valid_sheet_sizes(record.get("sheet_sizes"))
    if invalid_labels:
        logger.debug("[%s] Ignoring sheet sizes %s", record.get("code"), invalid_labels)
    sheet_scales = parse_sheet_sizes(valid_labels)

    parsed = compute_parsed_scale(image_url, no_repeat, bold_text)
    stored = record.get("texture_scale")
    if not valid_size(stored):
        if stored:
            logger.debug("[%s] Ignoring malformed texture_scale %r", record.get("code"), stored)
        stored = parsed if valid_size(parsed) else FALLBACK_SCALE
    current = orient_max_as_width(stored)

    choice = choose_final_scale(
        image_url=image_url,
        pixels=pixels,
        current_scale=current,
        parsed_scale=parsed,
        no_repeat=no_repeat,
        existing_no_repeat_scale=record.get("no_repeat_texture_scale"),
        sheet_size_scales=sheet_scales,
    )

    record["texture_scale"] = choice.scale or {
        "width": round2(float(current["width"])),
        "height": round2(float(current["height"])),
    }
    if choice.no_repeat_scale:
        record["no_repeat_texture_scale"] = choice.no_repeat_scale
    return choice
