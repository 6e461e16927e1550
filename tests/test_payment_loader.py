"""Payment feeds are filtered, deduplicated and degrade independently."""
import logging

from conftest import InMemoryStore

from revenue_report.core.dates import resolve_date_range
from revenue_report.core.models import SOURCE_BANK, SOURCE_GATEWAY_EVENT, SOURCE_GATEWAY_SESSION
from revenue_report.ingestion.catalog import load_product_catalog
from revenue_report.ingestion.payments import PaymentLoader

SEPTEMBER = resolve_date_range({"month": 9, "year": 2026})


def _load(store, scope="approved"):
    loader = PaymentLoader(store)
    payments = loader.load(SEPTEMBER, scope, load_product_catalog(store))
    return loader, payments


def _ids(payments, source):
    return {payment.id for payment in payments if payment.source == source}


def test_bank_feed_exclusions(snapshot_store):
    _, payments = _load(snapshot_store)

    assert _ids(payments, SOURCE_BANK) == {"1001", "1002", "1007"}


def test_all_scope_keeps_unapproved_but_never_rejected(snapshot_store):
    _, payments = _load(snapshot_store, scope="all")

    bank_ids = _ids(payments, SOURCE_BANK)
    assert "1006" in bank_ids
    assert "1004" not in bank_ids
    assert "1003" not in bank_ids


def test_bank_payment_carries_linked_catalog_product(snapshot_store):
    _, payments = _load(snapshot_store)

    linked = next(payment for payment in payments if payment.id == "1007")
    assert linked.hints.catalog_product_id == 103


def test_session_feed_filters(snapshot_store, caplog):
    caplog.set_level(logging.INFO)
    _, payments = _load(snapshot_store)

    assert _ids(payments, SOURCE_GATEWAY_SESSION) == {
        "gateway_session_cs_001",
        "gateway_session_cs_002",
        "gateway_session_cs_006",
    }
    assert "Skipped 1 gateway sessions without product linkage" in caplog.text


def test_session_amount_prefers_original_currency(snapshot_store):
    _, payments = _load(snapshot_store)

    euro = next(payment for payment in payments if payment.id == "gateway_session_cs_002")
    assert (euro.amount, euro.currency, euro.amount_pln) == (250.0, "EUR", 1062.5)
    assert euro.hints.crm_product_id == "104"


def test_event_duplicate_of_session_is_counted_once(snapshot_store, caplog):
    caplog.set_level(logging.INFO)
    _, payments = _load(snapshot_store)

    assert _ids(payments, SOURCE_GATEWAY_EVENT) == {"gateway_event_li_2", "gateway_event_li_4"}
    assert sum(1 for payment in payments if payment.session_id == "cs_001") == 1
    assert "Dropped 1 gateway event items" in caplog.text


def test_event_payer_falls_back_to_email(snapshot_store):
    _, payments = _load(snapshot_store)

    event = next(payment for payment in payments if payment.id == "gateway_event_li_2")
    assert event.payer_name == "ola@example.com"
    assert event.hints.catalog_product_id == 101


def test_failing_feed_degrades_to_empty(caplog):
    store = InMemoryStore(
        {
            "bank_payments": [
                {
                    "id": 1,
                    "direction": "in",
                    "operation_date": "2026-09-02",
                    "amount": 100,
                    "currency": "PLN",
                    "manual_status": "approved",
                }
            ],
            "gateway_event_items": [
                {"line_item_id": "a", "session_id": "cs_x", "amount": 10, "currency": "PLN", "created_at": "2026-09-03T10:00:00Z"}
            ],
        },
        failing={"gateway_sessions"},
    )
    caplog.set_level(logging.WARNING)

    loader, payments = _load(store)

    assert {payment.source for payment in payments} == {SOURCE_BANK}
    assert "Failed to load gateway session payments" in caplog.text
    assert any("gateway session feed unavailable" in alert for alert in loader.alerts)
    # The event feed joins sessions for paid dates, so it fails alongside them.
    assert any("gateway event feed unavailable" in alert for alert in loader.alerts)


def test_refunds_category_lookup_failure_keeps_bank_feed(caplog):
    store = InMemoryStore(
        {
            "bank_payments": [
                {
                    "id": 5,
                    "direction": "in",
                    "operation_date": "2026-09-02",
                    "amount": 100,
                    "manual_status": "approved",
                    "income_category_id": 9,
                }
            ]
        },
        failing={"income_categories"},
    )
    caplog.set_level(logging.WARNING)

    _, payments = _load(store)

    assert [payment.id for payment in payments] == ["5"]
    assert payments[0].currency == "PLN"
    assert "Failed to resolve refunds income category id" in caplog.text
