"""CRM client requests and configuration."""
import pytest
import requests

from revenue_report.core.settings import ReportSettings
from revenue_report.processing.crm import HttpCrmClient


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        return self.response


def test_get_deal_parses_envelope():
    session = FakeSession(FakeResponse({"success": True, "data": {"id": 7001, "value": "4500", "currency": "pln", "title": "NY trip"}}))
    client = HttpCrmClient("https://crm.example.com/api/v1/", "secret", session=session)

    deal = client.get_deal("7001")

    assert (deal.id, deal.value, deal.currency, deal.title) == ("7001", 4500.0, "PLN", "NY trip")
    assert session.requests == [("https://crm.example.com/api/v1/deals/7001", {"api_token": "secret"}, 30)]


def test_unsuccessful_envelope_returns_none():
    client = HttpCrmClient("https://crm.example.com", "secret", session=FakeSession(FakeResponse({"success": False})))

    assert client.get_deal("1") is None


def test_http_errors_propagate():
    client = HttpCrmClient("https://crm.example.com", "secret", session=FakeSession(FakeResponse({}, status_code=503)))

    with pytest.raises(requests.HTTPError):
        client.get_deal("1")


def test_from_env_requires_url_and_token(monkeypatch):
    assert HttpCrmClient.from_env() is None

    monkeypatch.setenv("CRM_API_URL", "https://crm.example.com")
    monkeypatch.setenv("CRM_API_TOKEN", "token")
    client = HttpCrmClient.from_env()

    assert client is not None
    assert client.base_url == "https://crm.example.com"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("REPORT_AMOUNT_TOLERANCE", "10,5")
    monkeypatch.setenv("REPORT_DEFAULT_STATUS", "ALL")
    monkeypatch.setenv("REPORT_BASE_CURRENCY", "eur")
    monkeypatch.setenv("GATEWAY_REFUND_REASONS", "deal_lost, chargeback ,")

    settings = ReportSettings.from_env()

    assert settings.amount_tolerance == 10.5
    assert settings.default_status_scope == "all"
    assert settings.base_currency == "EUR"
    assert settings.gateway_refund_reasons == ("deal_lost", "chargeback")
    assert settings.is_refunds_category("Zwroty od klientów")
    assert not settings.is_refunds_category("Sprzedaż")


def test_invalid_tolerance_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("REPORT_AMOUNT_TOLERANCE", "-3")

    assert ReportSettings.from_env().amount_tolerance == 5.0
