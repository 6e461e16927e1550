"""Report orchestration: load, resolve, aggregate, classify and export."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from revenue_report.core.dates import normalize_status_scope, resolve_date_range
from revenue_report.core.settings import ReportSettings
from revenue_report.core.utils import load_env_file, to_iso
from revenue_report.ingestion.catalog import load_product_catalog, load_product_links
from revenue_report.ingestion.payments import PaymentLoader
from revenue_report.ingestion.proformas import load_proformas
from revenue_report.ingestion.sources import ReportDataSource, open_snapshot_store
from revenue_report.processing.aggregation import AggregationResult, aggregate_payments
from revenue_report.processing.context import ReportContext
from revenue_report.processing.crm import CrmClient, HttpCrmClient
from revenue_report.processing.matchers import MATCHERS, Matcher
from revenue_report.processing.status import DealStatusEvaluator, finalize_status
from revenue_report.reporting.sinks import push_to_google_sheets, write_csv, write_excel, write_json
from revenue_report.reporting.templates import assemble_report, empty_report, render_csv, report_to_rows

DEFAULT_SERVICE_ACCOUNT_PATHS = [
    Path("secrets/service_account.json"),
    Path("credentials/service_account.json"),
]
DEFAULT_SHEETS_ENV_FILE = Path("secrets/sheets.env")
_SHEETS_ENV_LOADED = False


logger = logging.getLogger(__name__)


class ReportUnavailableError(RuntimeError):
    """Raised in strict mode when the report data source is not configured."""


class RevenueReportService:
    """Build revenue reports from injected data sources.

    Nothing is cached between calls: every request builds its own lookup
    tables in a ``ReportContext``. Any failure while building a report is
    logged and turned into an empty report with the request's filters.
    """

    def __init__(
        self,
        store: Optional[ReportDataSource],
        crm_client: Optional[CrmClient] = None,
        settings: Optional[ReportSettings] = None,
        matchers: Sequence[Matcher] = MATCHERS,
    ) -> None:
        self.store = store
        self.crm_client = crm_client
        self.settings = settings or ReportSettings()
        self.matchers = tuple(matchers)

    def _filters(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        date_range = resolve_date_range(request)
        return {
            "dateFrom": to_iso(date_range.date_from),
            "dateTo": to_iso(date_range.date_to),
            "status": normalize_status_scope(request.get("status"), self.settings.default_status_scope),
        }

    def build(self, request: Optional[Mapping[str, Any]] = None) -> tuple[ReportContext, AggregationResult]:
        """Run loading and aggregation; raises on unexpected failures."""

        request = request or {}
        context = ReportContext(
            date_range=resolve_date_range(request),
            status_scope=normalize_status_scope(request.get("status"), self.settings.default_status_scope),
            settings=self.settings,
        )
        context.catalog = load_product_catalog(self.store)
        loader = PaymentLoader(self.store, self.settings)
        payments = loader.load(context.date_range, context.status_scope, context.catalog)
        context.alerts.extend(loader.alerts)
        context.proformas = load_proformas(
            self.store,
            payments,
            base_currency=self.settings.base_currency,
            deal_base_url=self.settings.crm_deal_base_url,
        )
        context.product_links = load_product_links(self.store, payments)

        result = aggregate_payments(payments, context, self.matchers)
        evaluator = (
            DealStatusEvaluator(self.crm_client, self.store, self.settings) if self.crm_client is not None else None
        )
        for aggregate in result.aggregates():
            aggregate.status = finalize_status(aggregate, self.settings, evaluator)
        return context, result

    def get_report(self, request: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        request = request or {}
        filters = self._filters(request)
        if self.store is None:
            logger.error("Report data source is not configured; returning an empty report")
            return empty_report(filters)
        try:
            context, result = self.build(request)
        except Exception:
            logger.error("Failed to build revenue report for %s", filters, exc_info=True)
            return empty_report(filters)

        for alert in context.alerts:
            logger.warning("Alert: %s", alert)
        return assemble_report(result.groups.values(), result.summary.to_dict(), filters)

    def report_rows(self, request: Optional[Mapping[str, Any]] = None) -> List[Dict[str, str]]:
        return report_to_rows(self.get_report(request))

    def export_csv(self, request: Optional[Mapping[str, Any]] = None) -> str:
        return render_csv(self.report_rows(request))


def _ensure_sheets_env() -> None:
    """Populate Google Sheets env vars from secrets/sheets.env."""

    global _SHEETS_ENV_LOADED
    if _SHEETS_ENV_LOADED:
        return
    _SHEETS_ENV_LOADED = True

    env_path = Path(os.getenv("GOOGLE_SHEETS_ENV_FILE", DEFAULT_SHEETS_ENV_FILE))
    load_env_file(env_path)


def _default_service_account_path() -> Optional[Path]:
    for candidate in DEFAULT_SERVICE_ACCOUNT_PATHS:
        if candidate.exists():
            return candidate
    return None


def _resolve_sheets_target(
    spreadsheet_id: Optional[str],
    worksheet_title: str,
    explicit_account_path: Optional[Path],
) -> Dict[str, Any]:
    _ensure_sheets_env()
    spreadsheet_id = spreadsheet_id or os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID")
    if not spreadsheet_id:
        raise ValueError("spreadsheet_id is required when sink='sheets'")

    account_env = os.getenv("GOOGLE_SHEETS_SERVICE_ACCOUNT")
    account_path = explicit_account_path or (Path(account_env) if account_env else _default_service_account_path())
    if not account_path:
        raise ValueError(
            "Provide --service-account pointing to your Google credentials or place a file at "
            f"{DEFAULT_SERVICE_ACCOUNT_PATHS[0]}"
        )

    return {
        "spreadsheet_id": spreadsheet_id,
        "worksheet_title": worksheet_title,
        "service_account_path": account_path,
    }


def _push_rows_to_sheets(rows: Iterable[Dict[str, Any]], target: Dict[str, Any]) -> None:
    rows = list(rows)
    push_to_google_sheets(
        rows,
        spreadsheet_id=target["spreadsheet_id"],
        worksheet_title=target["worksheet_title"],
        service_account_path=target["service_account_path"],
    )
    logger.info(
        "Pushed %d rows to Google Sheets document %s (worksheet %s)",
        len(rows),
        target["spreadsheet_id"],
        target["worksheet_title"],
    )


def run_report(
    data_dir: Optional[Path],
    output_path: Path,
    request: Optional[Mapping[str, Any]] = None,
    sink: str = "csv",
    spreadsheet_id: str | None = None,
    worksheet_title: str = "Sheet1",
    service_account_path: Path | None = None,
    excel_path: Path | None = None,
    json_path: Path | None = None,
    strict: bool = False,
    settings: Optional[ReportSettings] = None,
    crm_client: Optional[CrmClient] = None,
) -> Path:
    """Build the report from a snapshot directory and write the CSV export.

    The rows are then forwarded to the optional ``sink``. With ``strict``
    an unavailable data directory raises ``ReportUnavailableError`` instead
    of producing an empty export.
    """

    logger.info("Revenue report starting for data dir %s", data_dir)
    store = open_snapshot_store(data_dir)
    if store is None and strict:
        raise ReportUnavailableError(f"Report data directory {data_dir} is not available")

    settings = settings or ReportSettings.from_env()
    if crm_client is None:
        crm_client = HttpCrmClient.from_env()
    service = RevenueReportService(store, crm_client=crm_client, settings=settings)
    report = service.get_report(request)
    rows = report_to_rows(report)
    write_csv(rows, output_path)
    logger.info("Wrote CSV output with %d rows to %s", len(rows), output_path)

    if sink == "excel":
        excel_target = excel_path or output_path.with_suffix(".xlsx")
        write_excel(rows, excel_target)
        logger.info("Wrote Excel output to %s", excel_target)
    elif sink == "sheets":
        sheets_target = _resolve_sheets_target(
            spreadsheet_id=spreadsheet_id,
            worksheet_title=worksheet_title,
            explicit_account_path=service_account_path,
        )
        _push_rows_to_sheets(rows, sheets_target)
    elif sink == "json":
        json_target = json_path or output_path.with_suffix(".json")
        write_json(report, json_target)
        logger.info("Wrote JSON report to %s", json_target)
    return output_path
