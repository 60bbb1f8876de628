from typing import Dict, List

import pandas as pd

from ..ingestion.orchestrator import RunResult
from ..processing.audit import AuditResult

PREVIEW_LIMIT = 10


def print_missing_report(report: Dict[str, List[str]]) -> None:
    for field, codes in report.items():
        print("\n" + "=" * 44)
        print(f'Report: products missing "{field}" -> {len(codes)}')
        print("-" * 44)
        for code in codes:
            print(code)
    print()


def print_coverage(frame: pd.DataFrame) -> None:
    print("\n" + "=" * 44)
    print("Field coverage")
    print("-" * 44)
    if frame.empty:
        print("(no records)")
        return
    print(frame.to_string(index=False))


def print_run_summary(result: RunResult) -> None:
    print(f"Batches: {result.batches}  fragments: {result.fragments_seen}  "
          f"merged: {result.merged}  products in index: {result.records_written}")
    if result.unresolved:
        print(f"Unresolved codes: {len(result.unresolved)}")
        for item in result.unresolved[:PREVIEW_LIMIT]:
            print(f'  - code="{item.code}" batch="{item.batch}" link={item.link}')
        if len(result.unresolved) > PREVIEW_LIMIT:
            print("  - ...")
    if result.unkeyed:
        print(f"Fragments without a code: {result.unkeyed} (kept in {result.unkeyed_path})")


def print_audit_summary(result: AuditResult) -> None:
    print(f"[check] Reviewed {result.reviewed} record(s).")
    if result.normalized:
        print(f"[check] Normalized {result.normalized} code(s) for casing and spacing.")
    if result.corrected:
        print(f"[check] Corrected {result.corrected} code(s) using alternate data sources.")
    if result.duplicates_merged:
        dupes = [f"{code}x{n}" for code, n in result.duplicate_counts.items()]
        more = ", ..." if len(dupes) > PREVIEW_LIMIT else ""
        print(f"[check] Merged {result.duplicates_merged} duplicate record(s) by code "
              f"({', '.join(dupes[:PREVIEW_LIMIT])}{more}).")
    if not result.changed:
        print("[check] No changes required.")
    if result.correction_sources:
        print(f"[check] Correction sources consulted: {', '.join(result.correction_sources)}.")
    if result.unresolved:
        print(f"[check] Unable to derive valid codes for {len(result.unresolved)} record(s).")
        for issue in result.unresolved[:PREVIEW_LIMIT]:
            print(f'  - name="{issue.name}", code="{issue.code}", link={issue.link}')
        if len(result.unresolved) > PREVIEW_LIMIT:
            print("  - ...")
        print("[check] Please review the entries above manually.")
