"""Command line batch runner: fetch a sequence range and export it to Excel."""

from __future__ import annotations

import argparse
from typing import Sequence

from . import config
from .batch import OutageDetected, run_batch
from .cancellation import REASON_USER, CancelSignal
from .config_validation import validate_runtime_config
from .export_excel import export_records_to_excel
from .filters import apply_filters, parse_department_list
from .identifiers import InvalidIdentifierError
from .progress import percent_complete
from .utils import setup_run_logger

EXIT_OK = 0
EXIT_NO_RESULTS = 1
EXIT_OUTAGE = 2
EXIT_INVALID = 3
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the batch CLI."""

    parser = argparse.ArgumentParser(
        description="Fetch a range of processes from the public-records portal.",
    )
    parser.add_argument("--prefix", required=True, help="Process prefix (up to 3 digits).")
    parser.add_argument("--year", required=True, help="Process year.")
    parser.add_argument("--start", type=int, default=config.DEFAULT_RANGE_START)
    parser.add_argument("--end", type=int, default=config.DEFAULT_RANGE_END)
    parser.add_argument(
        "--first-only",
        action="store_true",
        help="Keep only the most recent movement of each process.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="In-flight lookups (defaults to RECORDS_BATCH_CONCURRENCY).",
    )
    parser.add_argument("--setores", default="", help="Comma-separated origin departments.")
    parser.add_argument("--nome", default="", help="Interested party / requester substring.")
    parser.add_argument("--output", default=None, help="Workbook base name.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the batch CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        validate_runtime_config("cli")
    except ValueError as exc:
        parser.error(str(exc))

    setup_run_logger()
    signal = CancelSignal()

    def _print_progress(completed: int, total: int, warning: bool) -> None:
        suffix = " (connection failure)" if warning else ""
        print(f"\r{percent_complete(completed, total):3d}% {completed}/{total}{suffix}", end="", flush=True)

    try:
        result = run_batch(
            args.prefix,
            args.start,
            args.end,
            args.year,
            first_only=args.first_only,
            concurrency=args.concurrency,
            progress=_print_progress,
            signal=signal,
        )
    except InvalidIdentifierError as exc:
        print(f"Invalid input: {exc}")
        return EXIT_INVALID
    except OutageDetected as exc:
        print(f"\nPortal appears to be offline: {exc}")
        return EXIT_OUTAGE
    except KeyboardInterrupt:
        signal.cancel(REASON_USER)
        print("\nCancelled.")
        return EXIT_CANCELLED
    print()

    if result.cancelled:
        print("Cancelled.")
        return EXIT_CANCELLED

    records = apply_filters(
        result.records,
        departments=parse_department_list(args.setores),
        name=args.nome,
    )
    if not records:
        print("No processes found.")
        return EXIT_NO_RESULTS

    name = args.output or f"{args.prefix}_{args.year}{'_firstOnly' if args.first_only else ''}"
    path = export_records_to_excel(records, name)
    print(f"Exported {len(records)} records to {path}")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
