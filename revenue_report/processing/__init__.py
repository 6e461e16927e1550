"""Product resolution, aggregation, status classification and report orchestration."""
from revenue_report.processing.aggregation import AggregationResult, aggregate_payments
from revenue_report.processing.context import ReportContext
from revenue_report.processing.crm import Deal, HttpCrmClient
from revenue_report.processing.matchers import MATCHERS, canonicalize_matches, resolve_product
from revenue_report.processing.pipeline import ReportUnavailableError, RevenueReportService, run_report
from revenue_report.processing.status import classify_amounts, classify_payment, finalize_status

__all__ = [
    "AggregationResult",
    "Deal",
    "HttpCrmClient",
    "MATCHERS",
    "ReportContext",
    "ReportUnavailableError",
    "RevenueReportService",
    "aggregate_payments",
    "canonicalize_matches",
    "classify_amounts",
    "classify_payment",
    "finalize_status",
    "resolve_product",
    "run_report",
]
