"""Data models shared by the loaders, the aggregation engine, and the exporters."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

SOURCE_BANK = "bank"
SOURCE_GATEWAY_SESSION = "gateway_session"
SOURCE_GATEWAY_EVENT = "gateway_event"
GATEWAY_SOURCES = (SOURCE_GATEWAY_SESSION, SOURCE_GATEWAY_EVENT)

UNMATCHED_KEY = "unmatched"
UNMATCHED_NAME = "Uncategorized"
UNTITLED_NAME = "Untitled"


@dataclass
class ProductHints:
    """Raw product identifiers carried by a payment before resolution."""

    catalog_product_id: Optional[Any] = None
    link_id: Optional[str] = None
    crm_product_id: Optional[str] = None
    product_name: Optional[str] = None
    event_key: Optional[str] = None
    event_label: Optional[str] = None


@dataclass
class Payment:
    """A single incoming payment normalized from one of the three feeds."""

    id: str
    source: str
    amount: float
    currency: str = "PLN"
    date: Optional[datetime] = None
    description: Optional[str] = None
    amount_pln: Optional[float] = None
    payer_name: Optional[str] = None
    payer_normalized_name: Optional[str] = None
    deal_id: Optional[str] = None
    proforma_id: Optional[str] = None
    proforma_fullnumber: Optional[str] = None
    manual_status: Optional[str] = None
    match_status: Optional[str] = None
    native_status: Optional[str] = None
    session_id: Optional[str] = None
    hints: ProductHints = field(default_factory=ProductHints)

    @property
    def is_gateway(self) -> bool:
        return self.source in GATEWAY_SOURCES


@dataclass
class Buyer:
    name: Optional[str] = None
    alt_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.alt_name


@dataclass
class PrimaryProduct:
    """First product line of a proforma, used as a last-resort product key."""

    key: str
    name: str
    id: Optional[Any] = None


@dataclass
class Proforma:
    """Sales document with face values and their base-currency equivalents.

    ``total_pln`` and ``payments_total_pln`` stay ``None`` when the document
    is in a foreign currency without a recorded exchange rate.
    """

    id: str
    currency: str
    total: float
    product: PrimaryProduct
    fullnumber: Optional[str] = None
    issued_at: Optional[str] = None
    exchange_rate: Optional[float] = None
    total_pln: Optional[float] = None
    payments_total: float = 0.0
    payments_total_pln: Optional[float] = None
    payments_count: Optional[int] = None
    buyer: Buyer = field(default_factory=Buyer)
    deal_id: Optional[str] = None
    deal_url: Optional[str] = None

    def payment_summary(self) -> Dict[str, Optional[float]]:
        remaining = None
        if self.total_pln is not None and self.payments_total_pln is not None:
            remaining = max(self.total_pln - self.payments_total_pln, 0.0)
        return {
            "total": self.total,
            "total_pln": self.total_pln,
            "paid": self.payments_total,
            "paid_pln": self.payments_total_pln,
            "remaining_pln": remaining,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["payment_summary"] = self.payment_summary()
        return data


@dataclass
class CatalogProduct:
    id: Any
    name: str
    normalized_name: Optional[str] = None


@dataclass
class ProductLink:
    """Cross-reference row tying a gateway product link to a catalog product."""

    id: str
    catalog_product_id: Optional[int] = None
    crm_product_id: Optional[str] = None
    crm_product_name: Optional[str] = None


@dataclass(frozen=True)
class ProductMatch:
    """Outcome of product-key resolution for one payment."""

    key: str
    name: str
    product_id: Optional[Any] = None
    matched_by: str = "unmatched"


@dataclass(frozen=True)
class PaymentStatus:
    code: str
    label: str
    class_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "label": self.label, "class_name": self.class_name}


@dataclass
class PaymentEntry:
    """A payment as it appears inside an aggregate of the report."""

    payment: Payment
    amount_pln: Optional[float]
    status: PaymentStatus
    proforma: Optional[Proforma] = None

    def to_dict(self) -> Dict[str, Any]:
        payment = self.payment
        return {
            "id": payment.id,
            "date": payment.date.isoformat() if payment.date else None,
            "description": payment.description,
            "amount": payment.amount,
            "currency": payment.currency,
            "amount_pln": self.amount_pln,
            "payer_name": payment.payer_name,
            "payer_normalized_name": payment.payer_normalized_name,
            "manual_status": payment.manual_status,
            "match_status": payment.match_status,
            "status": self.status.to_dict(),
            "source": payment.source,
            "native_status": payment.native_status,
            "proforma_id": self.proforma.id if self.proforma else None,
        }


@dataclass
class Totals:
    """Running per-currency and base-currency sums, rounded only on output."""

    payments_count: int = 0
    currency_totals: Dict[str, float] = field(default_factory=dict)
    pln_total: float = 0.0

    def add(self, amount: float, currency: Optional[str], amount_pln: Optional[float]) -> None:
        self.payments_count += 1
        if currency:
            key = currency.upper()
            self.currency_totals[key] = self.currency_totals.get(key, 0.0) + amount
        if amount_pln is not None:
            self.pln_total += amount_pln


@dataclass
class PayerAggregate:
    key: str
    source: str
    proforma: Optional[Proforma] = None
    deal_id: Optional[str] = None
    deal_url: Optional[str] = None
    totals: Totals = field(default_factory=Totals)
    entries: List[PaymentEntry] = field(default_factory=list)
    payer_names: List[str] = field(default_factory=list)
    first_payment_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    status: Optional[PaymentStatus] = None

    def add(self, entry: PaymentEntry) -> None:
        payment = entry.payment
        self.entries.append(entry)
        self.totals.add(payment.amount, payment.currency, entry.amount_pln)
        if payment.payer_name and payment.payer_name not in self.payer_names:
            self.payer_names.append(payment.payer_name)
        if payment.date:
            if self.first_payment_date is None or payment.date < self.first_payment_date:
                self.first_payment_date = payment.date
            if self.last_payment_date is None or payment.date > self.last_payment_date:
                self.last_payment_date = payment.date


@dataclass
class ProductGroup:
    key: str
    name: str
    source: str
    product_id: Optional[Any] = None
    totals: Totals = field(default_factory=Totals)
    proforma_ids: Set[str] = field(default_factory=set)
    aggregates: Dict[str, PayerAggregate] = field(default_factory=dict)


@dataclass
class ReportSummary:
    payments_count: int = 0
    products_count: int = 0
    currency_totals: Dict[str, float] = field(default_factory=dict)
    total_pln: float = 0.0
    unmatched_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payments_count": self.payments_count,
            "products_count": self.products_count,
            "currency_totals": {cur: round(value, 2) for cur, value in self.currency_totals.items()},
            "total_pln": round(self.total_pln, 2),
            "unmatched_count": self.unmatched_count,
        }


@dataclass(frozen=True)
class DateRange:
    date_from: datetime
    date_to: datetime

    def contains(self, moment: datetime) -> bool:
        return self.date_from <= moment <= self.date_to
