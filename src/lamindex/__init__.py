"""lamindex - canonical JSON index for a scraped laminate design catalog.

Public API surface - import submodules directly for full access:
  lamindex.config.fields          - canonical keys and legacy aliases
  lamindex.processing.normalize   - value normalizers
  lamindex.processing.merge       - non-destructive record merge
  lamindex.processing.validate    - code validation / resolution
  lamindex.processing.scale       - texture scale derivation
  lamindex.storage.repository     - atomic JSON persistence
  lamindex.ingestion.orchestrator - fragment ingest runs
  lamindex.app.cli                - CLI entry point
"""

from .config.fields import aliases_of, canonicalize
from .processing.merge import merge_records
from .processing.validate import is_valid_code, resolve_code
from .storage.repository import load_all, save_all, write_merged, ProductStore


def main():
    """CLI entry point."""
    from .app.main import main as _main
    return _main()


__all__ = [
    "canonicalize",
    "aliases_of",
    "merge_records",
    "is_valid_code",
    "resolve_code",
    "load_all",
    "save_all",
    "write_merged",
    "ProductStore",
    "main",
]
