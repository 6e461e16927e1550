"""Product-key resolution follows a strict priority order and stable keys."""
import logging

from revenue_report.core.dates import resolve_date_range
from revenue_report.core.models import (
    SOURCE_BANK,
    SOURCE_GATEWAY_EVENT,
    SOURCE_GATEWAY_SESSION,
    CatalogProduct,
    Payment,
    PrimaryProduct,
    ProductHints,
    ProductLink,
    ProductMatch,
    Proforma,
)
from revenue_report.core.normalize import normalize_product_key
from revenue_report.ingestion.catalog import ProductCatalog, find_strict_match
from revenue_report.ingestion.proformas import ProformaIndex
from revenue_report.processing.context import ReportContext
from revenue_report.processing.matchers import (
    canonicalize_matches,
    match_event,
    match_product_link,
    resolve_product,
)


def _catalog() -> ProductCatalog:
    return ProductCatalog(
        [
            CatalogProduct(101, "Sylwester NY2026 Zakopane", "sylwester ny2026 zakopane"),
            # Stored key collides with the event code of an unrelated product.
            CatalogProduct(102, "Czarna Stodoła", "ny2026"),
            CatalogProduct(103, "Kurs fotografii", normalize_product_key("Kurs fotografii")),
        ]
    )


def _context(**overrides) -> ReportContext:
    context = ReportContext(date_range=resolve_date_range({"month": 9, "year": 2026}), status_scope="approved")
    context.catalog = _catalog()
    for name, value in overrides.items():
        setattr(context, name, value)
    return context


def _payment(source=SOURCE_GATEWAY_SESSION, **hints) -> Payment:
    return Payment(id="p", source=source, amount=100.0, hints=ProductHints(**hints))


def test_ny2026_event_resolves_to_matching_catalog_entry():
    match = resolve_product(_payment(SOURCE_GATEWAY_EVENT, event_key="NY2026"), _context())

    assert match.key == "id:101"
    assert match.name == "Sylwester NY2026 Zakopane"


def test_normalized_index_hit_alone_is_rejected():
    catalog = _catalog()

    assert catalog.lookup_name("NY2026").id == 102
    assert find_strict_match(catalog, "NY2026").id == 101
    assert find_strict_match(catalog, "Stodoła").id == 102


def test_ambiguous_containment_is_not_resolved():
    catalog = ProductCatalog([CatalogProduct(1, "Jazz Night A", "jazz night a"), CatalogProduct(2, "Jazz Night B", "jazz night b")])

    assert find_strict_match(catalog, "Jazz Night") is None


def test_unresolved_event_gets_fallback_key_without_id():
    match = match_event(_payment(SOURCE_GATEWAY_EVENT, event_key="JAZZ", event_label="Jazz Night Kraków"), _context())

    assert match == ProductMatch("event:jazz night krakow", "Jazz Night Kraków", None, "event_fallback")


def test_direct_catalog_id_wins_over_everything():
    payment = _payment(catalog_product_id=103, link_id="link-1", crm_product_id="101", product_name="Other")
    links = {"link-1": ProductLink("link-1", catalog_product_id=101)}

    assert resolve_product(payment, _context(product_links=links)).key == "id:103"


def test_link_with_catalog_id():
    links = {"link-1": ProductLink("link-1", catalog_product_id=101, crm_product_name="NY trip")}

    match = match_product_link(_payment(link_id="link-1"), _context(product_links=links))

    assert (match.key, match.name, match.product_id) == ("id:101", "Sylwester NY2026 Zakopane", 101)


def test_link_without_catalog_id_uses_proforma_product_with_same_name():
    links = {"link-2": ProductLink("link-2", crm_product_name="Warsztaty  CERAMIKI")}
    proformas = ProformaIndex()
    proformas.add(Proforma(id="pf", currency="PLN", total=10, product=PrimaryProduct("id:104", "Warsztaty ceramiki", 104)))

    match = match_product_link(_payment(link_id="link-2"), _context(product_links=links, proformas=proformas))

    assert match.key == "id:104"


def test_link_without_any_id_uses_name_key():
    links = {"link-2": ProductLink("link-2", crm_product_name="Warsztaty ceramiki")}

    match = match_product_link(_payment(link_id="link-2"), _context(product_links=links))

    assert match.key == "key:warsztaty ceramiki"
    assert match.product_id is None


def test_crm_product_ids():
    context = _context()

    assert resolve_product(_payment(crm_product_id="103"), context).key == "id:103"
    numeric_unknown = resolve_product(_payment(crm_product_id="555", product_name="Yoga"), context)
    assert (numeric_unknown.key, numeric_unknown.name) == ("id:555", "Yoga")
    assert resolve_product(_payment(crm_product_id="abc"), context).key == "crm:abc"


def test_product_name_hint():
    assert resolve_product(_payment(product_name="Joga  Poranna"), _context()).key == "name:joga poranna"


def test_bank_payment_falls_back_to_proforma_product_then_unmatched():
    proformas = ProformaIndex()
    proformas.add(Proforma(id="pf-1", currency="PLN", total=10, product=PrimaryProduct("key:kurs", "Kurs")))
    linked = Payment(id="b", source=SOURCE_BANK, amount=10.0, proforma_id="pf-1")
    orphan = Payment(id="c", source=SOURCE_BANK, amount=10.0)

    assert resolve_product(linked, _context(proformas=proformas)).key == "key:kurs"
    assert resolve_product(orphan, _context()).key == "unmatched"


def test_canonicalization_moves_name_only_matches_into_id_group():
    matches = [
        ProductMatch("name:kurs fotografii", "Kurs  Fotografii", None, "product_name"),
        ProductMatch("id:103", "Kurs fotografii", 103, "catalog_id"),
        ProductMatch("key:kurs fotografii", "kurs fotografii", None, "proforma"),
    ]

    canonical = canonicalize_matches(matches)

    assert {match.key for match in canonical} == {"id:103"}
    assert {match.name for match in canonical} == {"Kurs fotografii"}


def test_canonicalization_unifies_name_only_keys():
    canonical = canonicalize_matches(
        [
            ProductMatch("name:joga", "Joga", None, "product_name"),
            ProductMatch("key:joga", "JOGA", None, "product_link"),
            ProductMatch("unmatched", "Uncategorized"),
        ]
    )

    assert [match.key for match in canonical] == ["name:joga", "name:joga", "unmatched"]


def test_canonicalization_is_order_independent_for_id_groups():
    forward = [ProductMatch("name:x", "Product X", None), ProductMatch("id:7", "Product X", 7)]

    assert {m.key for m in canonicalize_matches(forward)} == {m.key for m in canonicalize_matches(reversed(forward))} == {"id:7"}


def test_duplicate_products_sharing_a_name_are_reported(caplog):
    caplog.set_level(logging.WARNING)

    canonical = canonicalize_matches(
        [
            ProductMatch("id:1", "Joga", 1),
            ProductMatch("id:2", "Joga", 2),
            ProductMatch("name:joga", "Joga", None),
        ]
    )

    assert [match.key for match in canonical] == ["id:1", "id:2", "id:1"]
    assert "share the name" in caplog.text
