"""Settlement statuses use a tolerance band and lifetime payment totals."""
import logging

import pytest
from conftest import FakeCrmClient, InMemoryStore

from revenue_report.core.models import (
    SOURCE_BANK,
    SOURCE_GATEWAY_EVENT,
    SOURCE_GATEWAY_SESSION,
    PayerAggregate,
    Payment,
    PaymentEntry,
    PrimaryProduct,
    Proforma,
)
from revenue_report.core.settings import ReportSettings
from revenue_report.processing.crm import Deal
from revenue_report.processing.status import (
    PAID,
    UNLINKED,
    DealStatusEvaluator,
    classify_amounts,
    classify_payment,
    finalize_status,
)


@pytest.mark.parametrize(
    "total, paid, expected",
    [
        (5000, 5000, "paid"),
        (5000, 2450, "partial"),
        (5000, 0, "unpaid"),
        (5000, 5004, "paid"),
        (5000, 4996, "paid"),
        (5000, 5006, "overpaid"),
        (0, 0, "unknown"),
        (None, 100, "unknown"),
    ],
)
def test_classify_amounts_with_default_tolerance(total, paid, expected):
    assert classify_amounts(total, paid).code == expected


def test_tolerance_is_configurable():
    assert classify_amounts(5000, 4990, tolerance=20).code == "paid"
    assert classify_amounts(5000, 4990, tolerance=0).code == "partial"


def _proforma(**overrides) -> Proforma:
    values = dict(
        id="pf-1",
        currency="PLN",
        total=5000.0,
        total_pln=5000.0,
        payments_total=5000.0,
        payments_total_pln=5000.0,
        product=PrimaryProduct("id:1", "Kurs", 1),
    )
    values.update(overrides)
    return Proforma(**values)


def _entry(payment: Payment, proforma=None) -> PaymentEntry:
    return PaymentEntry(payment, payment.amount, classify_payment(payment, proforma), proforma)


def test_proforma_status_uses_lifetime_paid_total():
    proforma = _proforma()
    aggregate = PayerAggregate(key="proforma:pf-1", source=SOURCE_BANK, proforma=proforma)
    # Only the second instalment falls inside the report window.
    aggregate.add(_entry(Payment(id="b1", source=SOURCE_BANK, amount=2450.0, proforma_id="pf-1"), proforma))

    assert finalize_status(aggregate).code == "paid"


def test_foreign_proforma_without_rate_is_unknown():
    proforma = _proforma(currency="EUR", total_pln=None, payments_total_pln=None)

    assert classify_payment(Payment(id="b", source=SOURCE_BANK, amount=1.0, currency="EUR"), proforma).code == "unknown"


@pytest.mark.parametrize(
    "native, expected",
    [("paid", "paid"), (None, "paid"), ("processing", "pending"), ("failed", "failed"), ("cancelled", "failed")],
)
def test_gateway_native_status_without_proforma(native, expected):
    payment = Payment(id="g", source=SOURCE_GATEWAY_SESSION, amount=1.0, native_status=native)

    assert classify_payment(payment, None).code == expected


def test_rejected_and_unlinked_bank_payments():
    rejected = Payment(id="r", source=SOURCE_BANK, amount=1.0, manual_status="rejected")
    loose = Payment(id="l", source=SOURCE_BANK, amount=1.0, manual_status="approved")

    assert classify_payment(rejected, None).code == "rejected"
    assert classify_payment(loose, None) == UNLINKED


def _gateway_aggregate(deal_id="7001") -> PayerAggregate:
    aggregate = PayerAggregate(key="gateway_session:anna:id:101:deal:7001", source=SOURCE_GATEWAY_SESSION, deal_id=deal_id)
    aggregate.add(_entry(Payment(id="s1", source=SOURCE_GATEWAY_SESSION, amount=1500.0, deal_id=deal_id, native_status="paid")))
    return aggregate


def test_deal_value_compared_with_all_paid_sessions(snapshot_store):
    # Deal 7001 has three paid sessions of 1500, one of them before the report window.
    settled = DealStatusEvaluator(FakeCrmClient({"7001": Deal("7001", 4500.0, "PLN")}), snapshot_store)
    short = DealStatusEvaluator(FakeCrmClient({"7001": Deal("7001", 6000.0, "PLN")}), snapshot_store)

    assert finalize_status(_gateway_aggregate(), evaluator=settled).code == "paid"
    assert finalize_status(_gateway_aggregate(), evaluator=short).code == "partial"


def test_foreign_deal_value_uses_session_exchange_rate(snapshot_store):
    evaluator = DealStatusEvaluator(FakeCrmClient({"7002": Deal("7002", 250.0, "EUR")}), snapshot_store)

    assert evaluator.evaluate("7002").code == "paid"


def test_foreign_deal_without_rate_falls_back():
    store = InMemoryStore({"gateway_sessions": [{"session_id": "x", "deal_id": "9", "payment_status": "paid", "amount_pln": 100}]})
    evaluator = DealStatusEvaluator(FakeCrmClient({"9": Deal("9", 25.0, "USD")}), store)

    assert evaluator.evaluate("9") is None
    assert finalize_status(_gateway_aggregate("9"), evaluator=evaluator) == PAID


def test_crm_failure_falls_back_to_payment_status(snapshot_store, caplog):
    caplog.set_level(logging.WARNING)
    crm = FakeCrmClient(error=RuntimeError("CRM down"))
    evaluator = DealStatusEvaluator(crm, snapshot_store)

    status = finalize_status(_gateway_aggregate(), ReportSettings(), evaluator)

    assert status == PAID
    assert crm.calls == ["7001"]
    assert "Failed to determine payment status for deal 7001" in caplog.text


def test_aggregate_without_proforma_or_deal_takes_first_payment_status():
    event = PayerAggregate(key="gateway_event:ola:event:jazz:deal:none", source=SOURCE_GATEWAY_EVENT)
    event.add(_entry(Payment(id="e", source=SOURCE_GATEWAY_EVENT, amount=10.0, native_status="processing")))
    loose = PayerAggregate(key="payment:b", source=SOURCE_BANK)
    loose.add(_entry(Payment(id="b", source=SOURCE_BANK, amount=10.0, manual_status="approved")))

    assert finalize_status(event).code == "pending"
    assert finalize_status(loose) == UNLINKED
    assert finalize_status(PayerAggregate(key="empty", source=SOURCE_BANK)) == UNLINKED
