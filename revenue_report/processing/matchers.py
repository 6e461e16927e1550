"""Ordered product-key matchers and the canonicalization pass that follows them.

Every matcher is a pure function ``(payment, context) -> ProductMatch | None``.
``resolve_product`` tries them in ``MATCHERS`` order and stops at the first
hit. ``canonicalize_matches`` then rewrites the keys with knowledge of the
whole payment set, so a name-only match lands in the id-keyed group of the
same product before any group is created.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from revenue_report.core.models import (
    SOURCE_GATEWAY_EVENT,
    SOURCE_GATEWAY_SESSION,
    UNMATCHED_KEY,
    UNMATCHED_NAME,
    UNTITLED_NAME,
    Payment,
    ProductMatch,
)
from revenue_report.core.normalize import is_meaningful_key, normalize_product_key
from revenue_report.core.utils import to_int
from revenue_report.ingestion.catalog import find_strict_match
from revenue_report.processing.context import ReportContext

logger = logging.getLogger(__name__)

Matcher = Callable[[Payment, ReportContext], Optional[ProductMatch]]

UNMATCHED = ProductMatch(key=UNMATCHED_KEY, name=UNMATCHED_NAME)


def _id_key(product_id: object) -> str:
    return f"id:{product_id}"


def match_catalog_id(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    product = context.catalog.get(payment.hints.catalog_product_id)
    if product is None:
        return None
    return ProductMatch(_id_key(product.id), product.name, product.id, "catalog_id")


def match_product_link(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    if payment.source != SOURCE_GATEWAY_SESSION or not payment.hints.link_id:
        return None
    link = context.product_links.get(payment.hints.link_id)
    if link is None:
        return None

    name = link.crm_product_name or UNTITLED_NAME
    if link.catalog_product_id is not None:
        product = context.catalog.get(link.catalog_product_id)
        return ProductMatch(
            _id_key(link.catalog_product_id),
            product.name if product else name,
            link.catalog_product_id,
            "product_link",
        )

    normalized = normalize_product_key(name)
    for proforma in context.proformas.values():
        primary = proforma.product
        if primary.id is not None and normalize_product_key(primary.name) == normalized:
            return ProductMatch(_id_key(primary.id), primary.name, primary.id, "product_link")
    return ProductMatch(f"key:{normalized}", name, None, "product_link")


def match_crm_product(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    crm_id = payment.hints.crm_product_id
    if payment.source != SOURCE_GATEWAY_SESSION or not crm_id:
        return None
    fallback_name = payment.hints.product_name or f"CRM product {crm_id}"
    numeric_id = to_int(crm_id)
    if numeric_id is None:
        return ProductMatch(f"crm:{crm_id}", fallback_name, None, "crm_product")
    product = context.catalog.get(numeric_id)
    return ProductMatch(_id_key(numeric_id), product.name if product else fallback_name, numeric_id, "crm_product")


def match_product_name(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    name = payment.hints.product_name
    if payment.source != SOURCE_GATEWAY_SESSION or not name:
        return None
    return ProductMatch(f"name:{normalize_product_key(name)}", name, None, "product_name")


def match_event(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    if payment.source != SOURCE_GATEWAY_EVENT:
        return None
    hints = payment.hints
    product = (
        context.catalog.get(hints.catalog_product_id)
        or context.catalog.get(hints.crm_product_id)
        or find_strict_match(context.catalog, hints.event_key)
        or find_strict_match(context.catalog, hints.event_label)
    )
    if product is not None:
        return ProductMatch(_id_key(product.id), product.name, product.id, "event")

    fallback_name = hints.event_label or hints.event_key or hints.product_name
    normalized = normalize_product_key(fallback_name)
    if is_meaningful_key(normalized):
        key = f"event:{normalized}"
    elif hints.event_key:
        key = f"event:{hints.event_key}"
    else:
        return None
    return ProductMatch(key, fallback_name or "Event", None, "event_fallback")


def match_proforma_product(payment: Payment, context: ReportContext) -> Optional[ProductMatch]:
    proforma = context.proformas.for_payment(payment)
    if proforma is None:
        return None
    primary = proforma.product
    return ProductMatch(primary.key, primary.name or UNTITLED_NAME, primary.id, "proforma")


MATCHERS: Tuple[Matcher, ...] = (
    match_catalog_id,
    match_product_link,
    match_crm_product,
    match_product_name,
    match_event,
    match_proforma_product,
)


def resolve_product(payment: Payment, context: ReportContext, matchers: Sequence[Matcher] = MATCHERS) -> ProductMatch:
    for matcher in matchers:
        match = matcher(payment, context)
        if match is not None:
            return match
    return UNMATCHED


def canonicalize_matches(matches: Iterable[ProductMatch]) -> List[ProductMatch]:
    """Give every product exactly one key across the whole payment set.

    Matches carrying a product id are keyed ``id:<product_id>``. Matches
    without one adopt the id of an id-bearing match with the same
    normalized name, or else the first key seen for that name.
    """

    matches = list(matches)
    id_names: Dict[str, str] = {}
    name_to_id: Dict[str, object] = {}
    conflicts: Set[Tuple[str, str]] = set()

    for match in matches:
        if match.product_id is None:
            continue
        id_key = str(match.product_id)
        if id_names.get(id_key) in (None, UNTITLED_NAME):
            id_names[id_key] = match.name
        normalized = normalize_product_key(match.name)
        if not is_meaningful_key(normalized):
            continue
        owner = name_to_id.setdefault(normalized, match.product_id)
        if str(owner) != id_key and (str(owner), id_key) not in conflicts:
            conflicts.add((str(owner), id_key))
            logger.warning(
                "Products %s and %s share the name %r; name-only payments go to %s",
                owner,
                match.product_id,
                match.name,
                owner,
            )

    name_keys: Dict[str, Tuple[str, str]] = {}
    canonical: List[ProductMatch] = []
    for match in matches:
        if match.product_id is not None:
            canonical.append(replace(match, key=_id_key(match.product_id), name=id_names[str(match.product_id)]))
            continue
        normalized = normalize_product_key(match.name)
        if match.key == UNMATCHED_KEY or not is_meaningful_key(normalized):
            canonical.append(match)
            continue
        if normalized in name_to_id:
            product_id = name_to_id[normalized]
            canonical.append(
                replace(match, key=_id_key(product_id), name=id_names[str(product_id)], product_id=product_id)
            )
            continue
        key, name = name_keys.setdefault(normalized, (match.key, match.name))
        canonical.append(replace(match, key=key, name=name))
    return canonical
