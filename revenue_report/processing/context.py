"""Request-scoped state threaded through one report computation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from revenue_report.core.models import DateRange, ProductLink
from revenue_report.core.settings import ReportSettings
from revenue_report.ingestion.catalog import ProductCatalog
from revenue_report.ingestion.proformas import ProformaIndex


@dataclass
class ReportContext:
    """Lookup tables built for a single request and discarded afterwards."""

    date_range: DateRange
    status_scope: str
    settings: ReportSettings = field(default_factory=ReportSettings)
    catalog: ProductCatalog = field(default_factory=ProductCatalog)
    proformas: ProformaIndex = field(default_factory=ProformaIndex)
    product_links: Dict[str, ProductLink] = field(default_factory=dict)
    alerts: List[str] = field(default_factory=list)
