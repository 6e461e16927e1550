"""Logging coverage to ensure degradations are surfaced without stopping the run."""
import logging
from pathlib import Path

from conftest import InMemoryStore

import revenue_report.processing.pipeline as pipeline
from revenue_report.core.logging import configure_logging
from revenue_report.processing.pipeline import RevenueReportService


def test_catalog_and_proforma_failures_are_warnings(caplog):
    store = InMemoryStore(
        {
            "bank_payments": [
                {
                    "id": 1,
                    "direction": "in",
                    "operation_date": "2026-09-02",
                    "amount": 100,
                    "manual_status": "approved",
                    "proforma_id": "pf-1",
                }
            ]
        },
        failing={"products", "proformas"},
    )
    caplog.set_level(logging.WARNING)

    report = RevenueReportService(store).get_report({"month": 9, "year": 2026})

    assert report["summary"]["payments_count"] == 1
    assert report["products"][0]["key"] == "unmatched"
    assert "Failed to load product catalog" in caplog.text
    assert "Failed to load proformas" in caplog.text


def test_feed_alerts_are_logged_by_the_service(caplog):
    store = InMemoryStore(failing={"bank_payments"})
    caplog.set_level(logging.WARNING)

    RevenueReportService(store).get_report({"month": 9, "year": 2026})

    assert "Alert: bank feed unavailable" in caplog.text


def test_pipeline_logs_summary(tmp_path: Path, dummy_data_dir: Path, caplog):
    """Running the report should emit a helpful summary message."""

    output_path = tmp_path / "output.csv"
    caplog.set_level("INFO")

    pipeline.run_report(dummy_data_dir, output_path, {"month": 9, "year": 2026})

    assert any("Wrote CSV output with 7 rows" in message for message in caplog.messages)
    assert any("Aggregated 8 payments into 4 products" in message for message in caplog.messages)


def test_configure_logging_reads_env_level(monkeypatch):
    calls = {}
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))

    configure_logging()

    assert calls["level"] == "DEBUG"
    assert "%(name)s" in calls["format"]
