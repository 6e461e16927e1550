"""Data ingestion package: collaborator contracts, feeds, proformas and catalog."""
from revenue_report.ingestion.catalog import ProductCatalog, find_strict_match, load_product_catalog, load_product_links
from revenue_report.ingestion.payments import PaymentLoader, drop_session_duplicates
from revenue_report.ingestion.proformas import ProformaIndex, convert_to_base, load_proformas
from revenue_report.ingestion.sources import ReportDataSource, SnapshotStore, open_snapshot_store

__all__ = [
    "PaymentLoader",
    "ProductCatalog",
    "ProformaIndex",
    "ReportDataSource",
    "SnapshotStore",
    "convert_to_base",
    "drop_session_duplicates",
    "find_strict_match",
    "load_product_catalog",
    "load_product_links",
    "load_proformas",
    "open_snapshot_store",
]
