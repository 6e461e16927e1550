"""Settlement status classification for payments and payer aggregates."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from revenue_report.core.models import SOURCE_BANK, PayerAggregate, Payment, PaymentStatus, Proforma
from revenue_report.core.settings import DEFAULT_AMOUNT_TOLERANCE, ReportSettings
from revenue_report.core.utils import to_number
from revenue_report.ingestion.proformas import convert_to_base
from revenue_report.ingestion.sources import GatewayRepository, Row
from revenue_report.processing.crm import CrmClient

logger = logging.getLogger(__name__)

PAID = PaymentStatus("paid", "Paid", "matched")
OVERPAID = PaymentStatus("overpaid", "Overpaid", "needs_review")
PARTIAL = PaymentStatus("partial", "Partially paid", "needs_review")
UNPAID = PaymentStatus("unpaid", "Awaiting payment", "unmatched")
UNKNOWN = PaymentStatus("unknown", "Status unknown", "auto")
PENDING = PaymentStatus("pending", "Processing", "needs_review")
FAILED = PaymentStatus("failed", "Failed", "unmatched")
REJECTED = PaymentStatus("rejected", "Rejected", "unmatched manual")
UNLINKED = PaymentStatus("unmatched", "Not linked", "unmatched")

_PENDING_NATIVE = {"pending", "processing"}
_FAILED_NATIVE = {"failed", "canceled", "cancelled"}


def classify_amounts(total: Optional[float], paid: Optional[float], tolerance: float = DEFAULT_AMOUNT_TOLERANCE) -> PaymentStatus:
    """Compare what was paid against what is owed, within ``tolerance``."""

    total = total or 0.0
    paid = paid or 0.0
    if total <= 0:
        return UNKNOWN
    if paid >= total + tolerance:
        return OVERPAID
    if paid >= total - tolerance:
        return PAID
    if paid > 0:
        return PARTIAL
    return UNPAID


def _native_status(native: Optional[str]) -> PaymentStatus:
    code = (native or "").strip().lower()
    if code in _PENDING_NATIVE:
        return PENDING
    if code in _FAILED_NATIVE:
        return FAILED
    return PAID


def proforma_status(proforma: Proforma, base_currency: str = "PLN", tolerance: float = DEFAULT_AMOUNT_TOLERANCE) -> PaymentStatus:
    """Status of a document from its lifetime paid total, not the report window."""

    total = proforma.total_pln
    if total is None:
        total = convert_to_base(proforma.total, proforma.currency, proforma.exchange_rate, base_currency)
    return classify_amounts(total, proforma.payments_total_pln or 0.0, tolerance)


def classify_payment(payment: Payment, proforma: Optional[Proforma], settings: Optional[ReportSettings] = None) -> PaymentStatus:
    settings = settings or ReportSettings()
    if proforma is not None:
        return proforma_status(proforma, settings.base_currency, settings.amount_tolerance)
    if payment.is_gateway:
        return _native_status(payment.native_status)
    if payment.source == SOURCE_BANK and payment.manual_status == "rejected":
        return REJECTED
    return UNLINKED


def _is_paid_session(row: Row) -> bool:
    return row.get("payment_status") == "paid" or row.get("status") == "processed"


class DealStatusEvaluator:
    """Derive a status for an unlinked gateway aggregate from its CRM deal.

    The deal value is compared against every paid gateway session ever
    recorded for the deal, converted to the base currency.
    """

    def __init__(self, crm_client: CrmClient, gateway: GatewayRepository, settings: Optional[ReportSettings] = None) -> None:
        self.crm_client = crm_client
        self.gateway = gateway
        self.settings = settings or ReportSettings()

    def _deal_value_in_base(self, value: float, currency: str, paid_rows: Iterable[Row], total_paid: float) -> Optional[float]:
        if currency == self.settings.base_currency:
            return value
        paid_rows = list(paid_rows)
        for row in paid_rows:
            rate = to_number(row.get("exchange_rate"))
            if rate and rate > 0:
                return value * rate
        original_total = sum(to_number(row.get("original_amount")) or 0.0 for row in paid_rows)
        if original_total > 0:
            return value * total_paid / original_total
        return None

    def evaluate(self, deal_id: str) -> Optional[PaymentStatus]:
        deal = self.crm_client.get_deal(deal_id)
        if deal is None or deal.value is None:
            return None
        paid_rows = [row for row in self.gateway.list_gateway_sessions(deal_id=deal_id) if _is_paid_session(row)]
        total_paid = sum(to_number(row.get("amount_pln")) or 0.0 for row in paid_rows)
        deal_value = self._deal_value_in_base(deal.value, deal.currency, paid_rows, total_paid)
        if deal_value is None:
            logger.info("No exchange rate to compare deal %s value in %s", deal_id, deal.currency)
            return None
        return classify_amounts(deal_value, total_paid, self.settings.amount_tolerance)


def _fallback_status(aggregate: PayerAggregate) -> PaymentStatus:
    return next((entry.status for entry in aggregate.entries if entry.status), UNLINKED)


def finalize_status(
    aggregate: PayerAggregate,
    settings: Optional[ReportSettings] = None,
    evaluator: Optional[DealStatusEvaluator] = None,
) -> PaymentStatus:
    """Compute an aggregate's status at read time from its full payment history."""

    settings = settings or ReportSettings()
    if aggregate.proforma is not None:
        return proforma_status(aggregate.proforma, settings.base_currency, settings.amount_tolerance)

    if aggregate.deal_id and evaluator is not None and aggregate.entries:
        try:
            status = evaluator.evaluate(aggregate.deal_id)
        except Exception as exc:
            logger.warning("Failed to determine payment status for deal %s: %s", aggregate.deal_id, exc)
            status = None
        if status is not None:
            return status
    return _fallback_status(aggregate)
