"""Command-line entry point for building the revenue report from a data snapshot."""
import argparse
import sys
from pathlib import Path
from typing import Any, Dict

from revenue_report.core.logging import configure_logging
from revenue_report.processing.pipeline import ReportUnavailableError, run_report


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI entry point."""

    parser = argparse.ArgumentParser(description="Build the payment revenue report")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("dummy_data"),
        help="Directory holding the JSON table snapshot",
    )
    parser.add_argument("--month", type=int, help="Report month (1-12), defaults to the current month")
    parser.add_argument("--year", type=int, help="Report year, defaults to the current year")
    parser.add_argument("--date-from", help="Explicit period start (YYYY-MM-DD or ISO timestamp)")
    parser.add_argument("--date-to", help="Explicit period end, inclusive")
    parser.add_argument(
        "--status",
        choices=["approved", "all"],
        help="Include only approved/matched bank payments or all of them",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("output/revenue_report.csv"),
        help="CSV file to write the report rows to",
    )
    parser.add_argument(
        "--sink",
        choices=["csv", "excel", "sheets", "json"],
        default="csv",
        help="Where to forward report rows after writing the CSV",
    )
    parser.add_argument(
        "--excel-output",
        type=Path,
        default=Path("output/revenue_report.xlsx"),
        help="Excel file to write when --sink=excel",
    )
    parser.add_argument(
        "--json-output",
        type=Path,
        default=Path("output/revenue_report.json"),
        help="JSON file with the full report when --sink=json",
    )
    parser.add_argument(
        "--spreadsheet-id",
        help="Google Sheets spreadsheet ID for the sheets sink",
    )
    parser.add_argument(
        "--worksheet",
        default="Sheet1",
        help="Worksheet title inside the Google Sheets document",
    )
    parser.add_argument(
        "--service-account",
        type=Path,
        help="Path to a Google service account JSON key used for Sheets pushes",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of writing an empty report when the data directory is missing",
    )
    return parser


def _request_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    request: Dict[str, Any] = {}
    if args.date_from:
        request["dateFrom"] = args.date_from
    if args.date_to:
        request["dateTo"] = args.date_to
    if args.month is not None:
        request["month"] = args.month
    if args.year is not None:
        request["year"] = args.year
    if args.status:
        request["status"] = args.status
    return request


def main() -> None:
    """Entrypoint for running the report from the command line."""

    configure_logging()
    args = build_parser().parse_args()
    try:
        output_path = run_report(
            args.data_dir,
            args.output,
            request=_request_from_args(args),
            sink=args.sink,
            spreadsheet_id=args.spreadsheet_id,
            worksheet_title=args.worksheet,
            service_account_path=args.service_account,
            excel_path=args.excel_output,
            json_path=args.json_output,
            strict=args.strict,
        )
    except ReportUnavailableError as exc:
        print(f"Report unavailable: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Wrote {output_path}")


if __name__ == "__main__":
    main()
