"""Field canonicalization table for the laminate index.

Static lookups only: raw / legacy field spellings -> canonical keys, and the
reverse alias lookup used when checking or merging records.
"""

from typing import Dict, List, Optional, Set

DEFAULT_SURFACE_GROUP = "Laminate"

# Canonical key -> every spelling seen in index files (canonical first)
FIELD_ALIASES: Dict[str, List[str]] = {
    "colors": ["colors", "color"],
    "product-link": ["product-link", "product_link"],
    "surface-group": ["surface-group", "surface_group"],
    "performance_enhancements": ["performance_enhancements", "performace_enchancments"],
    "specialty_features": ["specialty_features", "specality_features"],
}

# Multi-valued facets, unioned on every merge
ARRAY_FIELDS = (
    "design_groups",
    "species",
    "cut",
    "match",
    "shade",
    "colors",
    "design_collections",
    "performance_enhancements",
    "specialty_features",
)

# Old value wins when non-empty
LEFT_BIASED_FIELDS = ("name", "product-link", "surface-group", "description", "no_repeat")

SCALAR_FIELDS = ("name", "product-link", "surface-group", "description", "texture_image_url")

STRUCTURED_FIELDS = ("texture_image_pixels", "texture_scale")

INDEX_FIELDS = (
    "code",
    "surface-group",
    "name",
    "product-link",
    *ARRAY_FIELDS,
    "finish",
    "description",
    "no_repeat",
    "texture_image_url",
    "texture_image_pixels",
    "texture_scale",
)

# Lookup keyed by the lowercased, underscore-joined spelling
_NAME_MAP: Dict[str, str] = {
    "code": "code",
    "name": "name",
    "product_link": "product-link",
    "surface_group": "surface-group",
    "design_groups": "design_groups",
    "species": "species",
    "cut": "cut",
    "match": "match",
    "shade": "shade",
    "color": "colors",
    "colors": "colors",
    "finish": "finish",
    "performace_enchancments": "performance_enhancements",
    "performance_enhancements": "performance_enhancements",
    "specality_features": "specialty_features",
    "specialty_features": "specialty_features",
    "design_collections": "design_collections",
    "no_repeat": "no_repeat",
    "description": "description",
    "texture_image_url": "texture_image_url",
    "texture_image_pixels": "texture_image_pixels",
    "texture_scale": "texture_scale",
}

# Catalog filter attribute -> output field
ATTR_TO_FIELD: Dict[str, str] = {
    "design_groups": "design_groups",
    "species": "species",
    "cut_new": "cut",
    "match": "match",
    "shade": "shade",
    "pa_finish": "finish",
    "performace_enchancments": "performance_enhancements",
    "specality_features": "specialty_features",
    "design_collections": "design_collections",
    "color_swatch": "colors",
}

# Filter sections never worth scraping
SKIP_ATTRIBUTES = frozenset({"availability", "price_designlibrary"})
SKIP_LABELS = ("Quartz", "Solid Surface", "I am not sure")


def _lookup_key(raw_key: str) -> str:
    key = str(raw_key or "").strip().lower()
    return "_".join(key.replace("-", " ").split())


def canonicalize(raw_key: str) -> str:
    """Return the canonical spelling of *raw_key*.

    Unknown keys pass through unchanged so new scraper fields are never
    dropped.
    """
    if raw_key is None:
        return ""
    return _NAME_MAP.get(_lookup_key(raw_key), raw_key)


def aliases_of(canonical_key: str) -> List[str]:
    """Canonical key followed by its legacy spellings."""
    return list(FIELD_ALIASES.get(canonical_key, [canonical_key]))


def alias_keys() -> Set[str]:
    """Every non-canonical spelling known to the table."""
    out: Set[str] = set()
    for canonical, variants in FIELD_ALIASES.items():
        out.update(v for v in variants if v != canonical)
    return out


def field_for_attribute(attr: str) -> Optional[str]:
    return ATTR_TO_FIELD.get(attr)


def attributes_for_field(field: str) -> Set[str]:
    canonical = canonicalize(field)
    return {attr for attr, out in ATTR_TO_FIELD.items() if out == canonical}
