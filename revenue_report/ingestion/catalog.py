"""Load the canonical product catalog with precomputed comparison keys."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from revenue_report.core.models import SOURCE_GATEWAY_SESSION, UNTITLED_NAME, CatalogProduct, ProductLink
from revenue_report.core.normalize import is_meaningful_key, normalize_product_key
from revenue_report.core.utils import to_int
from revenue_report.ingestion.sources import ProductCatalogStore, Row

logger = logging.getLogger(__name__)


class ProductCatalog:
    """Catalog products indexed by id and by normalized name."""

    def __init__(self, products: Iterable[CatalogProduct] = ()) -> None:
        self.by_id: Dict[str, CatalogProduct] = {}
        self.by_normalized_name: Dict[str, CatalogProduct] = {}
        for product in products:
            self.add(product)

    def __len__(self) -> int:
        return len(self.by_id)

    def add(self, product: CatalogProduct) -> None:
        if product.id is not None and product.id != "":
            self.by_id[str(product.id)] = product
        if is_meaningful_key(product.normalized_name):
            existing = self.by_normalized_name.get(product.normalized_name)
            if existing is not None and existing.id != product.id:
                # Two catalog rows fold to the same key; keep the first one seen.
                logger.warning(
                    "Catalog products %s and %s share normalized name %r",
                    existing.id,
                    product.id,
                    product.normalized_name,
                )
                return
            self.by_normalized_name[product.normalized_name] = product

    def get(self, raw_id: Any) -> Optional[CatalogProduct]:
        if raw_id is None or raw_id == "":
            return None
        return self.by_id.get(str(raw_id))

    def lookup_name(self, raw_name: Any) -> Optional[CatalogProduct]:
        """Index lookup by normalized name; callers must still verify the hit."""

        if not isinstance(raw_name, str):
            return None
        normalized = normalize_product_key(raw_name)
        if not is_meaningful_key(normalized):
            return None
        return self.by_normalized_name.get(normalized)

    def products(self) -> List[CatalogProduct]:
        return list(self.by_id.values())


def catalog_product_from_row(row: Row) -> Optional[CatalogProduct]:
    raw_id = row.get("id")
    if raw_id is None or raw_id == "":
        return None
    numeric_id = to_int(raw_id)
    product_id = numeric_id if numeric_id is not None else raw_id

    normalized = None
    stored = row.get("normalized_name")
    if isinstance(stored, str) and is_meaningful_key(normalize_product_key(stored)):
        normalized = normalize_product_key(stored)
    elif row.get("name") and is_meaningful_key(normalize_product_key(row["name"])):
        normalized = normalize_product_key(row["name"])

    return CatalogProduct(id=product_id, name=row.get("name") or UNTITLED_NAME, normalized_name=normalized)


def load_product_catalog(store: Optional[ProductCatalogStore]) -> ProductCatalog:
    """Fetch every catalog product; failures degrade to an empty catalog."""

    if store is None:
        return ProductCatalog()
    try:
        rows = store.list_products()
    except Exception:
        logger.warning("Failed to load product catalog for report", exc_info=True)
        return ProductCatalog()

    catalog = ProductCatalog(
        product for product in (catalog_product_from_row(row) for row in rows) if product is not None
    )
    logger.info("Loaded %d catalog products", len(catalog))
    return catalog


# Shorter keys would contain-match far too many catalog names.
MIN_CONTAINMENT_KEY_LENGTH = 3


def _confirms(product: CatalogProduct, needle: str, normalized: str) -> bool:
    name = product.name or ""
    return normalize_product_key(name) == normalized or needle in name.casefold()


def find_strict_match(catalog: ProductCatalog, text: Any) -> Optional[CatalogProduct]:
    """Find the catalog product an event key or label refers to.

    A normalized-name index hit only counts when the product name literally
    contains ``text`` (case-insensitive) or normalizes to the same key.
    Without a confirmed hit the catalog is scanned for names containing
    ``text``; a single candidate wins and several are treated as ambiguous.
    """

    if not isinstance(text, str) or not text.strip():
        return None
    needle = " ".join(text.split()).casefold()
    normalized = normalize_product_key(text)
    if not is_meaningful_key(normalized):
        return None

    hit = catalog.lookup_name(text)
    if hit is not None:
        if _confirms(hit, needle, normalized):
            return hit
        logger.debug("Rejected catalog hit %s (%s) for %r", hit.id, hit.name, text)

    if len(normalized) < MIN_CONTAINMENT_KEY_LENGTH:
        return None
    candidates = [product for product in catalog.products() if _confirms(product, needle, normalized)]
    if len(candidates) == 1:
        return candidates[0]
    if candidates:
        logger.debug("Ambiguous catalog match for %r: %s", text, [product.id for product in candidates])
    return None


def load_product_links(store: Any, payments: Iterable[Any]) -> Dict[str, ProductLink]:
    """Fetch cross-reference rows for gateway-session payments that carry a link id."""

    link_ids = sorted(
        {
            payment.hints.link_id
            for payment in payments
            if payment.source == SOURCE_GATEWAY_SESSION and payment.hints.link_id
        }
    )
    if store is None or not link_ids:
        return {}
    try:
        rows = store.list_product_links(link_ids)
    except Exception as exc:
        logger.warning("Failed to load product links for %d gateway payments: %s", len(link_ids), exc)
        return {}

    links: Dict[str, ProductLink] = {}
    for link_id, row in rows.items():
        catalog_id = row.get("catalog_product_id", row.get("camp_product_id"))
        links[str(link_id)] = ProductLink(
            id=str(link_id),
            catalog_product_id=to_int(catalog_id),
            crm_product_id=str(row["crm_product_id"]) if row.get("crm_product_id") else None,
            crm_product_name=row.get("crm_product_name"),
        )
    return links
