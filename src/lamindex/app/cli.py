import argparse
import logging
from pathlib import Path
from typing import List, Optional

from ..config.fields import canonicalize
from ..config.settings import (
    COVERAGE_FILE,
    DETAILS_FILE,
    FLUSH_EVERY,
    INDEX_FILE,
    MAX_LISTING_PAGES,
)
from ..errors import FetchError, PersistenceError
from ..ingestion.fragments import file_batches
from ..ingestion.listing import build_session, iter_listing_fragments
from ..ingestion.orchestrator import (
    EXIT_FATAL,
    EXIT_MISSING_INPUT,
    EXIT_OK,
    EXIT_UNRESOLVED,
    run_ingest,
)
from ..processing.audit import audit_codes
from ..processing.report import coverage_frame, missing_field_report, write_coverage_csv
from ..processing.scale import apply_texture_scale, valid_size
from ..storage.repository import (
    clear_carousel_texture_urls,
    load_all,
    read_json_array,
    save_all,
    update_details_from_index,
)
from ..utils.logging import get_logger, setup_logging
from .display import (
    print_audit_summary,
    print_coverage,
    print_missing_report,
    print_run_summary,
)

logger = get_logger(__name__)


def cmd_ingest(args: argparse.Namespace) -> int:
    paths = [Path(p) for p in args.files]
    missing = [p for p in paths if not p.exists()]
    if missing:
        logger.error("Fragment file(s) not found: %s", ", ".join(map(str, missing)))
        return EXIT_MISSING_INPUT
    try:
        result = run_ingest(
            file_batches(paths),
            index_path=Path(args.index),
            flush_every=args.flush_every,
            limit_fields=args.only or None,
            unkeyed_path=args.unkeyed,
        )
    except (OSError, ValueError) as exc:
        logger.error("Could not read fragments: %s", exc)
        return EXIT_FATAL
    except PersistenceError as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    print_run_summary(result)
    return result.exit_code


def cmd_scrape(args: argparse.Namespace) -> int:
    field = canonicalize(args.field)
    session = build_session()
    fragments = []
    fetch_failed = False
    try:
        for fragment in iter_listing_fragments(session, args.url, field, args.label, args.max_pages):
            fragments.append(fragment)
    except FetchError as exc:
        logger.error("%s (keeping %d fragment(s) collected so far)", exc, len(fragments))
        fetch_failed = True

    try:
        result = run_ingest(
            [(f"{field}={args.label}", fragments)],
            index_path=Path(args.index),
            flush_every=args.flush_every,
            unkeyed_path=args.unkeyed,
        )
    except PersistenceError as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    print_run_summary(result)
    if fetch_failed:
        return EXIT_FATAL
    return result.exit_code


def cmd_check(args: argparse.Namespace) -> int:
    index_path = Path(args.index)
    if not index_path.exists():
        logger.error("No %s found. Run a scrape or ingest first.", index_path)
        return EXIT_MISSING_INPUT
    try:
        records = read_json_array(index_path)
    except (OSError, ValueError) as exc:
        logger.error("Failed to parse %s: %s", index_path, exc)
        return EXIT_FATAL

    details = load_all(Path(args.details)) if Path(args.details).exists() else []
    result = audit_codes(records, details)

    if result.changed and not args.dry_run:
        try:
            save_all(result.records, index_path)
        except PersistenceError as exc:
            logger.error("%s", exc)
            return EXIT_FATAL
        logger.info("Rewrote %s with %d record(s)", index_path, len(result.records))

    print_audit_summary(result)
    return EXIT_UNRESOLVED if result.unresolved else EXIT_OK


def cmd_report(args: argparse.Namespace) -> int:
    index_path = Path(args.index)
    if not index_path.exists():
        logger.error("No %s found. Run a scrape or ingest first.", index_path)
        return EXIT_MISSING_INPUT
    records = load_all(index_path)
    fields = args.fields or ["finish"]
    print_missing_report(missing_field_report(records, fields))

    frame = coverage_frame(records)
    print_coverage(frame)
    if args.csv:
        write_coverage_csv(frame, Path(args.csv))
    return EXIT_OK


def cmd_update_details(args: argparse.Namespace) -> int:
    index_path = Path(args.index)
    if not index_path.exists():
        logger.error("No %s found.", index_path)
        return EXIT_MISSING_INPUT
    details_path = Path(args.details)
    updated = update_details_from_index(load_all(index_path), load_all(details_path))
    try:
        save_all(updated, details_path)
    except PersistenceError as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    print(f"[update] {details_path.name}: {len(updated)} record(s), missing fields filled "
          f"from {index_path.name}.")
    return EXIT_OK


def cmd_rescale(args: argparse.Namespace) -> int:
    details_path = Path(args.details)
    if not details_path.exists():
        logger.error("No %s found.", details_path)
        return EXIT_MISSING_INPUT
    details = load_all(details_path)

    cleared = clear_carousel_texture_urls(details)
    if cleared:
        logger.info("Cleared carousel texture URLs for %d product(s): %s",
                    len(cleared), ", ".join(cleared[:5]))

    changed = 0
    for record in details:
        if not valid_size(record.get("texture_image_pixels")):
            continue
        before = record.get("texture_scale")
        choice = apply_texture_scale(record)
        if record.get("texture_scale") != before:
            changed += 1
            logger.info("[%s] texture_scale %s -> %s (%s)",
                        record.get("code"), before, record["texture_scale"], choice.reason)

    try:
        save_all(details, details_path)
    except PersistenceError as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    print(f"[rescale] {changed} texture scale(s) updated in {details_path.name}.")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lamindex",
        description="Merge scraped laminate catalog fragments into a canonical JSON index",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--log-file", help="Log file path (default: logs/lamindex.log)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Merge fragment files (JSON array or JSON Lines)")
    p.add_argument("files", nargs="+", help="Fragment files, one batch per file")
    p.add_argument("--index", default=str(INDEX_FILE), help="Index JSON path")
    p.add_argument("--unkeyed", help="Where fragments without a code are kept (default: beside the index)")
    p.add_argument("--flush-every", type=int, default=FLUSH_EVERY,
                   help="Flush after this many fragments (0: per batch only)")
    p.add_argument("--only", action="append", metavar="FIELD",
                   help="Only merge these fields into existing records (repeatable)")
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser("scrape", help="Scrape one filtered listing URL")
    p.add_argument("url", help="Filter listing URL")
    p.add_argument("--field", required=True, help="Index field the filter maps to (e.g. colors)")
    p.add_argument("--label", required=True, help="Filter label recorded for each product")
    p.add_argument("--max-pages", type=int, default=MAX_LISTING_PAGES)
    p.add_argument("--index", default=str(INDEX_FILE), help="Index JSON path")
    p.add_argument("--flush-every", type=int, default=FLUSH_EVERY)
    p.add_argument("--unkeyed", help="Where fragments without a code are kept (default: beside the index)")
    p.set_defaults(func=cmd_scrape)

    p = sub.add_parser("check", help="Validate, repair and de-duplicate codes")
    p.add_argument("--index", default=str(INDEX_FILE), help="Index JSON path")
    p.add_argument("--details", default=str(DETAILS_FILE), help="Detail records used as evidence")
    p.add_argument("--dry-run", action="store_true", help="Report only, do not rewrite")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("report", help="List products missing fields and print coverage")
    p.add_argument("fields", nargs="*", help="Fields to report (default: finish)")
    p.add_argument("--index", default=str(INDEX_FILE), help="Index JSON path")
    p.add_argument("--csv", nargs="?", const=str(COVERAGE_FILE), help="Also write coverage CSV")
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("update-details", help="Fill detail records from the index")
    p.add_argument("--index", default=str(INDEX_FILE), help="Index JSON path")
    p.add_argument("--details", default=str(DETAILS_FILE), help="Detail JSON path")
    p.set_defaults(func=cmd_update_details)

    p = sub.add_parser("rescale", help="Recompute texture_scale of detail records")
    p.add_argument("--details", default=str(DETAILS_FILE), help="Detail JSON path")
    p.set_defaults(func=cmd_rescale)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        log_file=Path(args.log_file) if args.log_file else None,
    )
    return args.func(args)
