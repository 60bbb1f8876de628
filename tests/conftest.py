"""Shared fixtures for the lamindex test suite."""

import json
import sys
from pathlib import Path

import pytest

# Ensure src/ is on the path so "import lamindex" works when running from repo root.
repo_root = Path(__file__).resolve().parents[1]
src_path = repo_root / "src"
p_str = str(src_path)
if p_str not in sys.path:
    sys.path.insert(0, p_str)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fine_oak_record():
    """A fully populated index record."""
    return {
        "code": "Y0385",
        "surface-group": "Laminate",
        "name": "Fine Oak",
        "product-link": "https://www.wilsonart.com/fine-oak-y0385",
        "design_groups": ["Woodgrains"],
        "species": ["Oak"],
        "colors": ["Brown"],
        "finish": [{"code": "#38", "name": "Fine Velvet"}],
    }


@pytest.fixture
def legacy_record():
    """Record written by an older scraper: alias keys and a finish map."""
    return {
        "code": "d354",
        "name": "Glacier",
        "product_link": "https://www.wilsonart.com/glacier-d354",
        "color": ["White"],
        "performace_enchancments": ["AEON"],
        "finish": {"#60": {"code": "#60", "name": "Matte"}},
    }


@pytest.fixture
def write_json():
    """Write *data* as JSON to *path* and return the path."""
    def _write(path: Path, data) -> Path:
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def read_json():
    def _read(path: Path):
        return json.loads(path.read_text(encoding="utf-8"))
    return _read


@pytest.fixture
def index_path(tmp_path):
    """Path of a not-yet-existing index file inside a temp dir."""
    return tmp_path / "laminate-index.json"
