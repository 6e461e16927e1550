"""Load the bank, gateway-session and gateway-event feeds as unified payments."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from revenue_report.core.models import (
    SOURCE_BANK,
    SOURCE_GATEWAY_EVENT,
    SOURCE_GATEWAY_SESSION,
    DateRange,
    Payment,
    ProductHints,
)
from revenue_report.core.normalize import normalize_whitespace
from revenue_report.core.settings import ReportSettings
from revenue_report.core.utils import parse_datetime, to_number
from revenue_report.ingestion.catalog import ProductCatalog, find_strict_match
from revenue_report.ingestion.sources import ReportDataSource, Row

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DROPPED_EVENT_STATUSES = {"unpaid", "canceled", "cancelled"}


def _newest_first(payments: List[Payment]) -> List[Payment]:
    return sorted(payments, key=lambda payment: payment.date or _EPOCH, reverse=True)


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _nonzero(value: Any) -> Optional[float]:
    number = to_number(value)
    return number if number else None


def drop_session_duplicates(event_payments: Iterable[Payment], session_payments: Iterable[Payment]) -> List[Payment]:
    """Remove event line items whose session already came through the session feed."""

    known_sessions = {payment.session_id for payment in session_payments if payment.session_id}
    event_payments = list(event_payments)
    kept = [payment for payment in event_payments if not payment.session_id or payment.session_id not in known_sessions]
    if len(kept) != len(event_payments):
        logger.info(
            "Dropped %d gateway event items already covered by session payments",
            len(event_payments) - len(kept),
        )
    return kept


class PaymentLoader:
    """Fetch and filter the three payment feeds for one report request.

    Each feed is loaded independently: a failing feed is logged, recorded in
    ``alerts`` and contributes no payments while the others still load.
    """

    def __init__(self, store: ReportDataSource, settings: Optional[ReportSettings] = None) -> None:
        self.store = store
        self.settings = settings or ReportSettings()
        self.alerts: List[str] = []

    def load(self, date_range: DateRange, status_scope: str, catalog: ProductCatalog) -> List[Payment]:
        bank = self._guarded("bank", lambda: self.load_bank_payments(date_range, status_scope))
        sessions = self._guarded("gateway session", lambda: self.load_session_payments(date_range))
        events = self._guarded("gateway event", lambda: self.load_event_payments(date_range, catalog))
        events = drop_session_duplicates(events, sessions)
        logger.info(
            "Loaded %d bank, %d gateway session and %d gateway event payments",
            len(bank),
            len(sessions),
            len(events),
        )
        return bank + sessions + events

    def _guarded(self, feed: str, loader: Callable[[], List[Payment]]) -> List[Payment]:
        try:
            return loader()
        except Exception as exc:
            logger.warning("Failed to load %s payments for report: %s", feed, exc, exc_info=True)
            self.alerts.append(f"{feed} feed unavailable: {exc}")
            return []

    # -- bank ledger -------------------------------------------------------

    def refunds_category_id(self) -> Optional[str]:
        try:
            categories = self.store.list_income_categories()
        except Exception as exc:
            logger.warning("Failed to resolve refunds income category id: %s", exc)
            return None
        for category in categories:
            if self.settings.is_refunds_category(category.get("name")):
                return _as_str(category.get("id"))
        return None

    def load_bank_payments(self, date_range: DateRange, status_scope: str) -> List[Payment]:
        refunds_id = self.refunds_category_id()
        selected: List[tuple[Row, datetime]] = []
        for row in self.store.list_bank_payments():
            if row.get("direction") != "in" or row.get("deleted_at"):
                continue
            if row.get("manual_status") == "rejected":
                continue
            if status_scope != "all" and not (
                row.get("manual_status") == "approved" or row.get("match_status") == "matched"
            ):
                continue
            operation_date = parse_datetime(row.get("operation_date"))
            if operation_date is None or not date_range.contains(operation_date):
                continue
            if refunds_id is not None and _as_str(row.get("income_category_id")) == refunds_id:
                continue
            selected.append((row, operation_date))

        links = self._bank_product_links([row.get("id") for row, _ in selected])
        payments = [
            self._bank_payment(row, operation_date, links.get(str(row.get("id"))))
            for row, operation_date in selected
        ]
        return _newest_first(payments)

    def _bank_product_links(self, payment_ids: List[Any]) -> Dict[str, Any]:
        ids = [str(payment_id) for payment_id in payment_ids if payment_id is not None]
        if not ids:
            return {}
        try:
            rows = self.store.list_payment_product_links(ids)
        except Exception as exc:
            logger.warning("Failed to load payment product links for report: %s", exc)
            return {}
        return {str(row.get("payment_id")): row.get("product_id") for row in rows}

    def _bank_payment(self, row: Row, operation_date: datetime, linked_product_id: Any) -> Payment:
        return Payment(
            id=str(row.get("id")),
            source=SOURCE_BANK,
            amount=to_number(row.get("amount")) or 0.0,
            currency=(row.get("currency") or self.settings.base_currency).upper(),
            date=operation_date,
            description=row.get("description"),
            payer_name=row.get("payer_name"),
            payer_normalized_name=row.get("payer_normalized_name"),
            proforma_id=_as_str(row.get("manual_proforma_id") or row.get("proforma_id")),
            proforma_fullnumber=_as_str(row.get("manual_proforma_fullnumber") or row.get("proforma_fullnumber")),
            manual_status=row.get("manual_status"),
            match_status=row.get("match_status"),
            hints=ProductHints(catalog_product_id=linked_product_id),
        )

    # -- gateway sessions --------------------------------------------------

    def _refunded_session_ids(self) -> Set[str]:
        try:
            deletions = self.store.list_gateway_deletions(self.settings.gateway_refund_reasons)
        except Exception as exc:
            logger.warning("Failed to load gateway refunds for report: %s", exc)
            return set()
        return {str(row["payment_id"]) for row in deletions if row.get("payment_id")}

    def load_session_payments(self, date_range: DateRange) -> List[Payment]:
        refunded = self._refunded_session_ids()
        payments: List[Payment] = []
        unattributable = 0
        for row in self.store.list_gateway_sessions():
            if "status" in row and row["status"] not in (None, "processed"):
                continue
            paid_at = parse_datetime(row.get("processed_at")) or parse_datetime(row.get("created_at"))
            if paid_at is None or not date_range.contains(paid_at):
                continue
            session_id = _as_str(row.get("session_id"))
            if session_id and session_id in refunded:
                continue
            # Legacy rows carry no payment_status at all and are kept.
            if row.get("payment_status") not in (None, "paid"):
                continue
            metadata = (row.get("raw_payload") or {}).get("metadata") or {}
            if not (row.get("product_id") or row.get("deal_id") or metadata.get("product_id") or metadata.get("product_name")):
                unattributable += 1
                continue
            payments.append(self._session_payment(row, paid_at, metadata))

        if unattributable:
            logger.info("Skipped %d gateway sessions without product linkage", unattributable)
        return _newest_first(payments)

    def _session_payment(self, row: Row, paid_at: datetime, metadata: Dict[str, Any]) -> Payment:
        currency = (row.get("currency") or self.settings.base_currency).upper()
        original_amount = _nonzero(row.get("original_amount"))
        precomputed = _nonzero(row.get("amount_pln"))
        if original_amount is not None:
            amount = original_amount
        elif precomputed is not None:
            amount, currency = precomputed, self.settings.base_currency
        else:
            amount = to_number(row.get("amount")) or 0.0

        session_id = _as_str(row.get("session_id"))
        document_number = row.get("invoice_number") or row.get("receipt_number")
        return Payment(
            id=f"gateway_session_{session_id or row.get('id')}",
            source=SOURCE_GATEWAY_SESSION,
            amount=amount,
            currency=currency,
            date=paid_at,
            description=f"Gateway payment: {session_id or 'unknown'}",
            amount_pln=precomputed,
            payer_name=row.get("customer_name") or row.get("company_name"),
            deal_id=_as_str(row.get("deal_id")),
            proforma_fullnumber=_as_str(document_number),
            manual_status="approved",
            match_status="matched",
            native_status=row.get("payment_status"),
            session_id=session_id,
            hints=ProductHints(
                link_id=_as_str(row.get("product_id")),
                crm_product_id=_as_str(metadata.get("product_id")),
                product_name=metadata.get("product_name") or metadata.get("crm_product_name"),
            ),
        )

    # -- gateway events ----------------------------------------------------

    def _session_paid_dates(self, session_ids: List[str]) -> Dict[str, Optional[datetime]]:
        if not session_ids:
            return {}
        rows = self.store.list_gateway_sessions(session_ids=session_ids)
        return {
            str(row["session_id"]): parse_datetime(row.get("processed_at")) or parse_datetime(row.get("created_at"))
            for row in rows
            if row.get("session_id")
        }

    def load_event_payments(self, date_range: DateRange, catalog: ProductCatalog) -> List[Payment]:
        items = self.store.list_gateway_event_items()
        session_ids = sorted({str(item["session_id"]) for item in items if item.get("session_id")})
        paid_dates = self._session_paid_dates(session_ids)

        payments: List[Payment] = []
        for item in items:
            if item.get("payment_status") in DROPPED_EVENT_STATUSES:
                continue
            session_id = _as_str(item.get("session_id"))
            paid_at = (
                paid_dates.get(session_id or "")
                or parse_datetime(item.get("created_at"))
                or parse_datetime(item.get("updated_at"))
            )
            if paid_at is not None and not date_range.contains(paid_at):
                continue
            payments.append(self._event_payment(item, paid_at, catalog))
        return _newest_first(payments)

    def _event_payment(self, item: Row, paid_at: Optional[datetime], catalog: ProductCatalog) -> Payment:
        product = (
            catalog.get(item.get("product_id"))
            or find_strict_match(catalog, item.get("event_key"))
            or find_strict_match(catalog, item.get("event_label"))
        )
        name = (product.name if product else None) or item.get("event_label") or item.get("event_key") or "Event"
        payer = item.get("customer_name") or item.get("customer_email")
        return Payment(
            id=f"gateway_event_{item.get('line_item_id')}",
            source=SOURCE_GATEWAY_EVENT,
            amount=to_number(item.get("amount")) or 0.0,
            currency=(item.get("currency") or self.settings.base_currency).upper(),
            date=paid_at,
            description=f"Event: {name}",
            amount_pln=_nonzero(item.get("amount_pln")),
            payer_name=payer,
            payer_normalized_name=normalize_whitespace(payer) or None,
            deal_id=_as_str(item.get("deal_id")),
            manual_status="approved",
            match_status="matched",
            native_status=item.get("payment_status") or "paid",
            session_id=_as_str(item.get("session_id")),
            hints=ProductHints(
                catalog_product_id=product.id if product else None,
                crm_product_id=_as_str(item.get("crm_product_id")),
                product_name=name,
                event_key=item.get("event_key"),
                event_label=item.get("event_label"),
            ),
        )
