"""Report assembly and export sinks."""
from revenue_report.reporting.sinks import push_to_google_sheets, write_csv, write_excel, write_json
from revenue_report.reporting.templates import REPORT_HEADERS, assemble_report, empty_report, render_csv, report_to_rows

__all__ = [
    "REPORT_HEADERS",
    "assemble_report",
    "empty_report",
    "push_to_google_sheets",
    "render_csv",
    "report_to_rows",
    "write_csv",
    "write_excel",
    "write_json",
]
