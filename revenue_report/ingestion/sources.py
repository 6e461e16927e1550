"""Collaborator contracts consumed by the report and a file-backed implementation.

The report only reads from its data sources. Production deployments plug in
database-backed repositories; ``SnapshotStore`` serves the same contracts from
a directory of JSON table dumps, which is what the CLI, the dashboard and the
tests run against.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

TABLE_FILES = {
    "bank_payments": "bank_payments.json",
    "payment_product_links": "payment_product_links.json",
    "income_categories": "income_categories.json",
    "gateway_sessions": "gateway_sessions.json",
    "gateway_deletions": "gateway_deletions.json",
    "gateway_event_items": "gateway_event_items.json",
    "product_links": "product_links.json",
    "proformas": "proformas.json",
    "products": "products.json",
}


class BankLedgerStore(Protocol):
    def list_bank_payments(self) -> List[Row]: ...

    def list_payment_product_links(self, payment_ids: Iterable[str]) -> List[Row]: ...


class IncomeCategoryService(Protocol):
    def list_income_categories(self) -> List[Row]: ...


class GatewayRepository(Protocol):
    def list_gateway_sessions(
        self, deal_id: Optional[str] = None, session_ids: Optional[Iterable[str]] = None
    ) -> List[Row]: ...

    def list_gateway_deletions(self, reasons: Iterable[str]) -> List[Row]: ...

    def list_gateway_event_items(self) -> List[Row]: ...

    def list_product_links(self, ids: Iterable[str]) -> Dict[str, Row]: ...


class AccountingStore(Protocol):
    def list_proformas(
        self, ids: Iterable[str], fullnumbers: Iterable[str], statuses: Iterable[str]
    ) -> List[Row]: ...


class ProductCatalogStore(Protocol):
    def list_products(self) -> List[Row]: ...


class ReportDataSource(
    BankLedgerStore, IncomeCategoryService, GatewayRepository, AccountingStore, ProductCatalogStore, Protocol
):
    """Everything the report reads, bundled for convenience."""


class SnapshotStore:
    """Serve report tables from ``<data_dir>/<table>.json`` files.

    Each file holds a JSON list of row objects. Missing files are empty
    tables; unreadable or malformed files raise so the caller's degradation
    seam logs them.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def _read_table(self, table: str) -> List[Row]:
        path = self.data_dir / TABLE_FILES[table]
        if not path.exists():
            logger.debug("Table %s not found under %s; treating as empty", table, self.data_dir)
            return []
        rows = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(rows, list):
            raise ValueError(f"{path.name} must contain a JSON list of rows")
        return [row for row in rows if isinstance(row, dict)]

    def list_bank_payments(self) -> List[Row]:
        return self._read_table("bank_payments")

    def list_payment_product_links(self, payment_ids: Iterable[str]) -> List[Row]:
        wanted = {str(payment_id) for payment_id in payment_ids}
        return [row for row in self._read_table("payment_product_links") if str(row.get("payment_id")) in wanted]

    def list_income_categories(self) -> List[Row]:
        return self._read_table("income_categories")

    def list_gateway_sessions(
        self, deal_id: Optional[str] = None, session_ids: Optional[Iterable[str]] = None
    ) -> List[Row]:
        rows = self._read_table("gateway_sessions")
        if deal_id is not None:
            rows = [row for row in rows if str(row.get("deal_id")) == str(deal_id)]
        if session_ids is not None:
            wanted = set(session_ids)
            rows = [row for row in rows if row.get("session_id") in wanted]
        return rows

    def list_gateway_deletions(self, reasons: Iterable[str]) -> List[Row]:
        wanted = set(reasons)
        return [row for row in self._read_table("gateway_deletions") if row.get("reason") in wanted]

    def list_gateway_event_items(self) -> List[Row]:
        return self._read_table("gateway_event_items")

    def list_product_links(self, ids: Iterable[str]) -> Dict[str, Row]:
        wanted = {str(link_id) for link_id in ids}
        return {
            str(row["id"]): row
            for row in self._read_table("product_links")
            if row.get("id") is not None and str(row["id"]) in wanted
        }

    def list_proformas(
        self, ids: Iterable[str], fullnumbers: Iterable[str], statuses: Iterable[str]
    ) -> List[Row]:
        wanted_ids = {str(value) for value in ids}
        wanted_numbers = {str(value).strip() for value in fullnumbers}
        allowed = set(statuses)
        return [
            row
            for row in self._read_table("proformas")
            if row.get("status", "active") in allowed
            and (
                str(row.get("id")) in wanted_ids
                or str(row.get("fullnumber") or "").strip() in wanted_numbers
            )
        ]

    def list_products(self) -> List[Row]:
        return self._read_table("products")


def open_snapshot_store(data_dir: Optional[Path]) -> Optional[SnapshotStore]:
    """Return a store for an existing directory, or ``None`` when unconfigured."""

    if data_dir is None or not Path(data_dir).is_dir():
        logger.error("Report data directory %s is not available", data_dir)
        return None
    return SnapshotStore(Path(data_dir))
