"""Streamlit dashboard to browse the revenue report per product and payer."""
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

import streamlit as st

# Allow running via "streamlit run revenue_report/ui/dashboard.py" without installing the package
# by ensuring the repository root is on ``sys.path``.
if __package__ in {None, ""}:
    import sys

    sys.path.append(str(Path(__file__).resolve().parents[2]))

from revenue_report.core.logging import configure_logging
from revenue_report.core.settings import ReportSettings
from revenue_report.core.utils import get_config_value
from revenue_report.ingestion.sources import open_snapshot_store
from revenue_report.processing.crm import HttpCrmClient
from revenue_report.processing.pipeline import RevenueReportService
from revenue_report.reporting.templates import render_csv, report_to_rows


def _status_badge(status: Dict[str, Any] | None) -> str:
    """Return a color-coded label for the aggregate status."""

    if not status:
        return "⚪ Unknown"
    mapping = {
        "paid": "🟢",
        "overpaid": "🟠",
        "partial": "🟡",
        "pending": "🟡",
        "unpaid": "🔴",
        "failed": "🔴",
        "rejected": "🔴",
    }
    return f"{mapping.get(status.get('code'), '⚪')} {status.get('label', '')}"


def _load_report(data_dir: str, request: Dict[str, Any]) -> Dict[str, Any]:
    """Build the report once per distinct request to keep the app responsive."""

    cache_key = (data_dir, tuple(sorted(request.items())))
    if st.session_state.get("report_key") != cache_key:
        settings = ReportSettings.from_env()
        service = RevenueReportService(
            open_snapshot_store(Path(data_dir)),
            crm_client=HttpCrmClient.from_env(),
            settings=settings,
        )
        with st.spinner("Building revenue report..."):
            st.session_state.report = service.get_report(request)
        st.session_state.report_key = cache_key
    return st.session_state.report


def _summary_metrics(report: Dict[str, Any]) -> None:
    summary = report["summary"]
    row = st.columns(4)
    row[0].metric("Payments", summary["payments_count"])
    row[1].metric("Products", summary["products_count"])
    row[2].metric("Total (base currency)", f"{summary['total_pln']:,.2f}")
    row[3].metric("Unmatched", summary["unmatched_count"])
    if summary["currency_totals"]:
        st.caption(
            " | ".join(f"{currency}: {amount:,.2f}" for currency, amount in summary["currency_totals"].items())
        )


def _product_rows(report: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "Product": group["name"],
            "Key": group["key"],
            "Source": group["source"],
            "Payments": group["totals"]["payments_count"],
            "Proformas": group["totals"]["proforma_count"],
            "Total": group["totals"]["pln_total"],
        }
        for group in report["products"]
    ]


def _entry_rows(group: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "Payer": ", ".join(entry["payer_names"]) or "-",
            "Status": _status_badge(entry["status"]),
            "Payments": entry["totals"]["payments_count"],
            "Amount": ", ".join(f"{amount:,.2f} {cur}" for cur, amount in entry["totals"]["currency_totals"].items()),
            "Total": entry["totals"]["pln_total"],
            "Proforma": (entry["proforma"] or {}).get("fullnumber") or "",
            "Deal": entry["stripe_deal_id"] or (entry["proforma"] or {}).get("deal_id") or "",
            "First payment": entry["first_payment_date"] or "",
        }
        for entry in group["entries"]
    ]


def main() -> None:
    """Launch the revenue report dashboard."""

    configure_logging()
    st.set_page_config(page_title="Revenue Report", layout="wide", initial_sidebar_state="expanded")
    st.title("Payment Revenue Report")
    st.caption("Incoming payments grouped by product, payer and deal for the selected period.")

    today = date.today()
    with st.sidebar:
        st.subheader("Period")
        data_dir = st.text_input("Data directory", value=get_config_value("REPORT_DATA_DIR", "dummy_data"))
        month = st.selectbox("Month", list(range(1, 13)), index=today.month - 1)
        year = st.number_input("Year", min_value=2000, max_value=9999, value=today.year, step=1)
        status = st.radio("Payments", ["approved", "all"], horizontal=True)

    report = _load_report(data_dir, {"month": int(month), "year": int(year), "status": status})
    filters = report["filters"]
    st.caption(f"{filters['dateFrom']} to {filters['dateTo']} ({filters['status']})")
    _summary_metrics(report)

    if not report["products"]:
        st.info("No payments found for the selected period.")
        return

    st.subheader("Products")
    st.dataframe(_product_rows(report), use_container_width=True, hide_index=True)

    st.subheader("Payers")
    for group in report["products"]:
        with st.expander(f"{group['name']} ({group['totals']['payments_count']} payments)", expanded=False):
            st.dataframe(_entry_rows(group), use_container_width=True, hide_index=True)

    st.download_button(
        "Download CSV",
        data=render_csv(report_to_rows(report)),
        file_name=f"revenue_report_{int(year)}_{int(month):02d}.csv",
        mime="text/csv",
    )


if __name__ == "__main__":
    main()
