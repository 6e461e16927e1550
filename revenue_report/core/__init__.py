"""Core building blocks for the revenue report package."""
from revenue_report.core.dates import normalize_status_scope, resolve_date_range
from revenue_report.core.logging import configure_logging
from revenue_report.core.models import DateRange, Payment, ProductGroup, Proforma
from revenue_report.core.normalize import normalize_key_value, normalize_product_key, normalize_whitespace
from revenue_report.core.settings import ReportSettings

__all__ = [
    "configure_logging",
    "DateRange",
    "Payment",
    "ProductGroup",
    "Proforma",
    "ReportSettings",
    "normalize_key_value",
    "normalize_product_key",
    "normalize_whitespace",
    "normalize_status_scope",
    "resolve_date_range",
]
