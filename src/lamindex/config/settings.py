import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[3]
DATA_DIR = Path(os.environ.get("LAMINDEX_DATA_DIR", BASE_DIR / "data"))

INDEX_FILE = Path(os.environ.get("LAMINDEX_INDEX_FILE", DATA_DIR / "laminate-index.json"))
DETAILS_FILE = Path(os.environ.get("LAMINDEX_DETAILS_FILE", DATA_DIR / "laminate-details.json"))
COVERAGE_FILE = DATA_DIR / "coverage.csv"

START_URL = (
    "https://www.wilsonart.com/laminate/thermally-fused-laminate/design-library"
    "?product_list_mode=list"
)

# Flush the index after this many merged fragments
FLUSH_EVERY = 200

REQUEST_TIMEOUT = 30
REQUEST_RETRIES = 3
REQUEST_BACKOFF = 0.8
MAX_LISTING_PAGES = 50
