"""Resolve the sales documents referenced by loaded payments."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from revenue_report.core.models import UNTITLED_NAME, Buyer, Payment, PrimaryProduct, Proforma
from revenue_report.core.normalize import normalize_product_key
from revenue_report.core.utils import to_int, to_number
from revenue_report.ingestion.sources import AccountingStore, Row

logger = logging.getLogger(__name__)

PROFORMA_STATUSES = ("active", "deleted")


def convert_to_base(amount: Any, currency: Optional[str], exchange_rate: Any, base_currency: str = "PLN") -> Optional[float]:
    """Convert a face value to the base currency.

    A foreign amount without a positive exchange rate is unknown (``None``);
    a missing rate is never read as 1.
    """

    numeric_amount = to_number(amount)
    if numeric_amount is None:
        return None
    if (currency or base_currency).upper() == base_currency.upper():
        return numeric_amount
    rate = to_number(exchange_rate)
    if rate and rate > 0:
        return numeric_amount * rate
    return None


def build_deal_url(deal_id: Any, base_url: str) -> Optional[str]:
    if deal_id is None or not base_url:
        return None
    trimmed = str(deal_id).strip()
    if not trimmed:
        return None
    return f"{base_url}{quote(trimmed, safe='')}"


@dataclass
class ProformaIndex:
    by_id: Dict[str, Proforma] = field(default_factory=dict)
    by_fullnumber: Dict[str, Proforma] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_id)

    def add(self, proforma: Proforma) -> None:
        self.by_id[proforma.id] = proforma
        if proforma.fullnumber:
            self.by_fullnumber[proforma.fullnumber.strip()] = proforma

    def for_payment(self, payment: Payment) -> Optional[Proforma]:
        proforma = None
        if payment.proforma_id:
            proforma = self.by_id.get(str(payment.proforma_id))
        if proforma is None and payment.proforma_fullnumber:
            proforma = self.by_fullnumber.get(payment.proforma_fullnumber.strip())
        return proforma

    def values(self) -> List[Proforma]:
        return list(self.by_id.values())


def collect_proforma_refs(payments: Iterable[Payment]) -> Tuple[List[str], List[str]]:
    """Return the distinct proforma ids and fullnumbers referenced by payments."""

    ids: Dict[str, None] = {}
    fullnumbers: Dict[str, None] = {}
    for payment in payments:
        if payment.proforma_id:
            ids[str(payment.proforma_id)] = None
        if payment.proforma_fullnumber and payment.proforma_fullnumber.strip():
            fullnumbers[payment.proforma_fullnumber.strip()] = None
    return list(ids), list(fullnumbers)


def _primary_product(record_id: str, products: Any) -> PrimaryProduct:
    if not isinstance(products, list) or not products:
        return PrimaryProduct(key=f"proforma:{record_id}", name=UNTITLED_NAME)
    first = products[0] or {}
    nested = first.get("products") or {}
    product_id = first.get("product_id") or nested.get("id")
    numeric_id = to_int(product_id)
    if numeric_id is not None:
        product_id = numeric_id
    name = nested.get("name") or first.get("name") or UNTITLED_NAME
    key = f"id:{product_id}" if product_id is not None else f"key:{normalize_product_key(name)}"
    return PrimaryProduct(key=key, name=name, id=product_id)


def proforma_from_row(row: Row, base_currency: str = "PLN", deal_base_url: str = "") -> Optional[Proforma]:
    if not row or row.get("id") is None:
        return None
    record_id = str(row["id"])
    currency = (row.get("currency") or base_currency).upper()
    exchange_rate = to_number(row.get("currency_exchange"))
    total = to_number(row.get("total")) or 0.0
    payments_total = to_number(row.get("payments_total")) or 0.0

    payments_total_pln = to_number(row.get("payments_total_pln"))
    if payments_total_pln is None:
        payments_rate = to_number(row.get("payments_currency_exchange")) or exchange_rate
        payments_total_pln = convert_to_base(payments_total, currency, payments_rate, base_currency)

    deal_id = row.get("deal_id") or row.get("pipedrive_deal_id")
    return Proforma(
        id=record_id,
        currency=currency,
        total=total,
        product=_primary_product(record_id, row.get("products") or row.get("proforma_products")),
        fullnumber=row.get("fullnumber"),
        issued_at=row.get("issued_at"),
        exchange_rate=exchange_rate,
        total_pln=convert_to_base(total, currency, exchange_rate, base_currency),
        payments_total=payments_total,
        payments_total_pln=payments_total_pln,
        payments_count=to_int(row.get("payments_count")),
        buyer=Buyer(
            name=row.get("buyer_name") or row.get("buyer_alt_name"),
            alt_name=row.get("buyer_alt_name"),
            email=row.get("buyer_email"),
            phone=row.get("buyer_phone"),
            street=row.get("buyer_street"),
            zip=row.get("buyer_zip"),
            city=row.get("buyer_city"),
            country=row.get("buyer_country"),
        ),
        deal_id=str(deal_id) if deal_id else None,
        deal_url=build_deal_url(deal_id, deal_base_url),
    )


def load_proformas(
    store: Optional[AccountingStore],
    payments: Iterable[Payment],
    base_currency: str = "PLN",
    deal_base_url: str = "",
) -> ProformaIndex:
    """Batch-load proformas referenced by ``payments``; failures yield an empty index."""

    index = ProformaIndex()
    ids, fullnumbers = collect_proforma_refs(payments)
    if store is None or not (ids or fullnumbers):
        return index
    try:
        rows = store.list_proformas(ids, fullnumbers, PROFORMA_STATUSES)
    except Exception as exc:
        logger.warning(
            "Failed to load proformas for report (%d ids, %d fullnumbers): %s",
            len(ids),
            len(fullnumbers),
            exc,
        )
        return index

    for row in rows:
        proforma = proforma_from_row(row, base_currency, deal_base_url)
        if proforma is not None:
            index.add(proforma)
    logger.info("Resolved %d proformas for %d references", len(index), len(ids) + len(fullnumbers))
    return index
