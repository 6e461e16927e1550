"""Group resolved payments into product groups and payer/deal aggregates."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from revenue_report.core.models import (
    SOURCE_BANK,
    SOURCE_GATEWAY_EVENT,
    UNMATCHED_KEY,
    PayerAggregate,
    Payment,
    PaymentEntry,
    ProductGroup,
    ProductMatch,
    Proforma,
    ReportSummary,
)
from revenue_report.core.normalize import normalize_key_value
from revenue_report.core.settings import ReportSettings
from revenue_report.ingestion.proformas import build_deal_url, convert_to_base
from revenue_report.processing.context import ReportContext
from revenue_report.processing.matchers import MATCHERS, Matcher, canonicalize_matches, resolve_product
from revenue_report.processing.status import UNLINKED, classify_payment

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    groups: Dict[str, ProductGroup] = field(default_factory=dict)
    summary: ReportSummary = field(default_factory=ReportSummary)

    def aggregates(self) -> List[PayerAggregate]:
        return [aggregate for group in self.groups.values() for aggregate in group.aggregates.values()]


def payment_amount_in_base(payment: Payment, proforma: Optional[Proforma], settings: ReportSettings) -> Optional[float]:
    """Base-currency value of a payment, or ``None`` when no rate is known."""

    if payment.is_gateway and payment.amount_pln is not None:
        return payment.amount_pln
    if payment.currency == settings.base_currency:
        return payment.amount
    if proforma is not None and proforma.currency == payment.currency:
        return convert_to_base(payment.amount, payment.currency, proforma.exchange_rate, settings.base_currency)
    return None


def build_payment_entry(payment: Payment, proforma: Optional[Proforma], settings: ReportSettings) -> PaymentEntry:
    return PaymentEntry(
        payment=payment,
        amount_pln=payment_amount_in_base(payment, proforma, settings),
        status=classify_payment(payment, proforma, settings),
        proforma=proforma,
    )


def aggregate_key(payment: Payment, product_key: str, proforma: Optional[Proforma]) -> str:
    payer = payment.payer_normalized_name or payment.payer_name
    if payment.is_gateway and payer:
        deal_key = f"deal:{payment.deal_id}" if payment.deal_id else "deal:none"
        return f"{payment.source}:{normalize_key_value(payer)}:{product_key}:{deal_key}"
    if proforma is not None:
        return f"proforma:{proforma.id}"
    return f"payment:{payment.id}"


def _group_source(payment: Payment) -> str:
    return "product" if payment.source == SOURCE_BANK else payment.source


def _new_aggregate(key: str, payment: Payment, proforma: Optional[Proforma], settings: ReportSettings) -> PayerAggregate:
    deal_id = payment.deal_id or (proforma.deal_id if proforma else None)
    deal_url = proforma.deal_url if proforma and proforma.deal_url else build_deal_url(deal_id, settings.crm_deal_base_url)
    return PayerAggregate(key=key, source=payment.source, proforma=proforma, deal_id=deal_id, deal_url=deal_url)


def _summarize(groups: Dict[str, ProductGroup]) -> ReportSummary:
    summary = ReportSummary(products_count=len(groups))
    for group in groups.values():
        summary.payments_count += group.totals.payments_count
        summary.total_pln += group.totals.pln_total
        for currency, amount in group.totals.currency_totals.items():
            summary.currency_totals[currency] = summary.currency_totals.get(currency, 0.0) + amount
    unmatched = groups.get(UNMATCHED_KEY)
    if unmatched is not None:
        summary.unmatched_count = sum(
            1
            for aggregate in unmatched.aggregates.values()
            for entry in aggregate.entries
            if entry.status.code == UNLINKED.code
        )
    return summary


def aggregate_payments(
    payments: Iterable[Payment],
    context: ReportContext,
    matchers: Sequence[Matcher] = MATCHERS,
) -> AggregationResult:
    """Resolve every payment's final product key, then insert each payment once.

    Groups and aggregates keep the order in which payments arrive, so an
    unchanged payment list always yields the same report.
    """

    payments = list(payments)
    matches: List[ProductMatch] = canonicalize_matches(resolve_product(payment, context, matchers) for payment in payments)

    groups: Dict[str, ProductGroup] = {}
    for payment, match in zip(payments, matches):
        proforma = context.proformas.for_payment(payment)
        entry = build_payment_entry(payment, proforma, context.settings)

        group = groups.get(match.key)
        if group is None:
            group = ProductGroup(key=match.key, name=match.name, source=_group_source(payment), product_id=match.product_id)
            groups[match.key] = group
        if payment.source == SOURCE_GATEWAY_EVENT:
            group.source = SOURCE_GATEWAY_EVENT
        group.totals.add(payment.amount, payment.currency, entry.amount_pln)
        if proforma is not None:
            group.proforma_ids.add(proforma.id)

        key = aggregate_key(payment, match.key, proforma)
        aggregate = group.aggregates.get(key)
        if aggregate is None:
            aggregate = _new_aggregate(key, payment, proforma, context.settings)
            group.aggregates[key] = aggregate
        aggregate.add(entry)
        logger.debug("Payment %s -> %s via %s (%s)", payment.id, match.key, match.matched_by, key)

    summary = _summarize(groups)
    logger.info(
        "Aggregated %d payments into %d products (%d unmatched)",
        summary.payments_count,
        summary.products_count,
        summary.unmatched_count,
    )
    return AggregationResult(groups=groups, summary=summary)
