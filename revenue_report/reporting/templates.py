"""Shape aggregation results into the public report and its flat export rows."""
from __future__ import annotations

import csv
import io
import re
from typing import Any, Dict, Iterable, List

from revenue_report.core.models import PayerAggregate, ProductGroup, Totals
from revenue_report.core.utils import to_iso

REPORT_HEADERS = [
    "product_key",
    "product_name",
    "proforma_id",
    "first_payment_date",
    "payer",
    "buyer",
    "amount",
    "currency",
    "amount_pln",
    "payment_status",
    "proforma_fullnumber",
    "proforma_issue_date",
    "proforma_total_pln",
    "deal_id",
    "deal_url",
]

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def _currency_totals(totals: Totals) -> Dict[str, float]:
    return {currency.upper(): round(amount, 2) for currency, amount in totals.currency_totals.items()}


def serialize_aggregate(aggregate: PayerAggregate) -> Dict[str, Any]:
    proforma = aggregate.proforma
    payer_names = list(aggregate.payer_names)
    if not payer_names and proforma is not None and proforma.buyer.display_name:
        payer_names = [proforma.buyer.display_name]
    status = aggregate.status or next((entry.status for entry in aggregate.entries), None)
    return {
        "key": aggregate.key,
        "proforma": proforma.to_dict() if proforma else None,
        "source": aggregate.source,
        "stripe_deal_id": aggregate.deal_id,
        "stripe_deal_url": aggregate.deal_url,
        "totals": {
            "payments_count": aggregate.totals.payments_count,
            "currency_totals": _currency_totals(aggregate.totals),
            "pln_total": round(aggregate.totals.pln_total, 2),
        },
        "payments": [entry.to_dict() for entry in aggregate.entries],
        "payer_names": payer_names,
        "first_payment_date": to_iso(aggregate.first_payment_date),
        "last_payment_date": to_iso(aggregate.last_payment_date),
        "status": status.to_dict() if status else None,
        "lifetime_payment_count": (
            proforma.payments_count
            if proforma is not None and proforma.payments_count is not None
            else aggregate.totals.payments_count
        ),
    }


def serialize_group(group: ProductGroup) -> Dict[str, Any]:
    return {
        "key": group.key,
        "name": group.name,
        "product_id": group.product_id,
        "source": group.source,
        "totals": {
            "payments_count": group.totals.payments_count,
            "proforma_count": len(group.proforma_ids),
            "currency_totals": _currency_totals(group.totals),
            "pln_total": round(group.totals.pln_total, 2),
        },
        "entries": [serialize_aggregate(aggregate) for aggregate in group.aggregates.values()],
    }


def assemble_report(groups: Iterable[ProductGroup], summary: Dict[str, Any], filters: Dict[str, Any]) -> Dict[str, Any]:
    """Build ``{products, summary, filters}`` with the largest products first."""

    ordered = sorted(groups, key=lambda group: (-round(group.totals.pln_total, 2), group.name.casefold(), group.key))
    return {
        "products": [serialize_group(group) for group in ordered],
        "summary": summary,
        "filters": filters,
    }


def empty_report(filters: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "products": [],
        "summary": {
            "payments_count": 0,
            "products_count": 0,
            "currency_totals": {},
            "total_pln": 0,
            "unmatched_count": 0,
        },
        "filters": filters,
    }


def _format_amount(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ""
    return f"{value:.2f}"


def entry_to_row(group: Dict[str, Any], entry: Dict[str, Any]) -> Dict[str, str]:
    proforma = entry.get("proforma") or {}
    buyer = proforma.get("buyer") or {}
    currency_totals = entry["totals"].get("currency_totals") or {}
    currency = proforma.get("currency") or next(iter(currency_totals), "PLN")
    summary = proforma.get("payment_summary") or {}
    total_pln = summary.get("total_pln", proforma.get("total_pln"))
    status = entry.get("status") or {}
    return {
        "product_key": group.get("key") or "",
        "product_name": group.get("name") or "",
        "proforma_id": proforma.get("id") or "",
        "first_payment_date": entry.get("first_payment_date") or "",
        "payer": ", ".join(entry.get("payer_names") or []),
        "buyer": buyer.get("name") or buyer.get("alt_name") or "",
        "amount": _format_amount(currency_totals.get(currency)),
        "currency": currency,
        "amount_pln": _format_amount(entry["totals"].get("pln_total")),
        "payment_status": status.get("label") or "",
        "proforma_fullnumber": proforma.get("fullnumber") or "",
        "proforma_issue_date": proforma.get("issued_at") or "",
        "proforma_total_pln": _format_amount(total_pln),
        "deal_id": proforma.get("deal_id") or entry.get("stripe_deal_id") or "",
        "deal_url": proforma.get("deal_url") or entry.get("stripe_deal_url") or "",
    }


def report_to_rows(report: Dict[str, Any]) -> List[Dict[str, str]]:
    """Flatten a report into one export row per payer aggregate."""

    return [entry_to_row(group, entry) for group in report.get("products", []) for entry in group.get("entries", [])]


def _single_line(value: Any) -> str:
    return _LINE_BREAKS.sub(" ", "" if value is None else str(value))


def render_csv(rows: Iterable[Dict[str, Any]]) -> str:
    """Render export rows as CSV text, header first, one record per line."""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=REPORT_HEADERS, lineterminator="\n", extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({header: _single_line(row.get(header, "")) for header in REPORT_HEADERS})
    return buffer.getvalue()
