"""Helper sinks for exporting report rows beyond CSV output."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable

from revenue_report.reporting.templates import REPORT_HEADERS, render_csv


def ensure_output_dir(output_path: Path) -> None:
    """Create parent folders for sink outputs when missing."""

    output_path.parent.mkdir(parents=True, exist_ok=True)


def push_to_google_sheets(
    rows: Iterable[Dict[str, Any]],
    spreadsheet_id: str,
    worksheet_title: str = "Sheet1",
    service_account_path: Path | None = None,
) -> None:
    """Replace a Google Sheets worksheet with the report rows using a service account."""

    rows = list(rows)
    if not rows:
        return

    try:
        import gspread
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError("gspread is required for Google Sheets sinks") from exc

    client = (
        gspread.service_account(filename=str(service_account_path))
        if service_account_path
        else gspread.service_account()
    )
    worksheet = client.open_by_key(spreadsheet_id).worksheet(worksheet_title)
    worksheet.clear()
    worksheet.append_rows([REPORT_HEADERS] + [[row.get(h, "") for h in REPORT_HEADERS] for row in rows])


def write_excel(rows: Iterable[Dict[str, Any]], output_path: Path) -> None:
    """Write report rows to an Excel workbook using openpyxl."""

    rows = list(rows)

    try:
        from openpyxl import Workbook
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError("openpyxl is required for Excel sinks") from exc

    ensure_output_dir(output_path)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "revenue_report"
    sheet.append(REPORT_HEADERS)
    for row in rows:
        sheet.append([row.get(header, "") for header in REPORT_HEADERS])
    workbook.save(output_path)


def write_csv(rows: Iterable[Dict[str, Any]], output_path: Path) -> None:
    """Write report rows to a CSV file; the header is written even with no rows."""

    ensure_output_dir(output_path)
    output_path.write_text(render_csv(rows), encoding="utf-8")


def write_json(report: Dict[str, Any], output_path: Path) -> None:
    """Dump the full nested report, e.g. for the dashboard or downstream jobs."""

    ensure_output_dir(output_path)
    output_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
