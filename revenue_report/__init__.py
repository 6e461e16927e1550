"""Payment revenue report: reconcile incoming payments per product and payer."""
from revenue_report.core import (
    DateRange,
    Payment,
    ProductGroup,
    Proforma,
    ReportSettings,
    configure_logging,
    normalize_product_key,
    resolve_date_range,
)
from revenue_report.ingestion import PaymentLoader, SnapshotStore, open_snapshot_store
from revenue_report.processing import (
    HttpCrmClient,
    ReportUnavailableError,
    RevenueReportService,
    aggregate_payments,
    classify_amounts,
    run_report,
)
from revenue_report.reporting import REPORT_HEADERS, render_csv, report_to_rows

__all__ = [
    "REPORT_HEADERS",
    "DateRange",
    "HttpCrmClient",
    "Payment",
    "PaymentLoader",
    "ProductGroup",
    "Proforma",
    "ReportSettings",
    "ReportUnavailableError",
    "RevenueReportService",
    "SnapshotStore",
    "aggregate_payments",
    "classify_amounts",
    "configure_logging",
    "normalize_product_key",
    "open_snapshot_store",
    "render_csv",
    "report_to_rows",
    "resolve_date_range",
    "run_report",
]
