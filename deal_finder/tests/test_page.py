import json

from deal_finder.models import VOLUME, Size
from deal_finder.page import JSONLD_MISMATCH, is_bot_wall, read_page


def _html(product=None, title="", og_title="", h1="", extra=""):
    ld = f'<script type="application/ld+json">{json.dumps(product)}</script>' if product else ""
    og = f'<meta property="og:title" content="{og_title}">' if og_title else ""
    return (
        f"<html><head><title>{title}</title>{og}{ld}</head>"
        f"<body><h1>{h1}</h1>{extra}</body></html>"
    )


PRODUCT = {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Hydrating Facial Cleanser 3 fl oz",
    "brand": {"@type": "Brand", "name": "CeraVe"},
    "gtin12": "301871239012",
    "sku": "CV-HFC-3",
    "color": "Fragrance Free",
    "offers": {"@type": "Offer", "price": "12.99", "priceCurrency": "USD"},
}


def test_read_page_extracts_jsonld_identity():
    r = read_page(
        _html(PRODUCT, title="CeraVe Hydrating Facial Cleanser | Ulta", h1="CeraVe Hydrating Facial Cleanser"),
        "https://www.ulta.com/p/hydrating-facial-cleanser",
    )
    assert r.identity.brand == "CeraVe"
    assert r.identity.gtin == "301871239012"
    assert r.identity.sku == "CV-HFC-3"
    assert r.identity.size == Size(89.0, VOLUME)
    assert r.identity.scent_shade == "fragrance free"
    assert r.signals.url_host == "ulta.com"
    assert r.signals.h1 == "CeraVe Hydrating Facial Cleanser"
    assert r.warnings == []


def test_product_inside_graph():
    graph = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "BreadcrumbList", "itemListElement": [
                {"@type": "ListItem", "position": 1, "name": "Skin Care"},
                {"@type": "ListItem", "position": 2, "name": "Cleansers"},
            ]},
            {"@type": "Product", "name": "Gentle Cleanser", "brand": "Cetaphil"},
        ],
    }
    r = read_page(_html(graph, title="Cetaphil Gentle Cleanser"), "https://www.dermstore.com/p/x")
    assert r.identity.brand == "Cetaphil"
    assert r.signals.breadcrumbs == ("Skin Care", "Cleansers")


def test_og_title_preferred():
    r = read_page(_html(og_title="Dove Body Wash", title="Shop | Dove"), "https://dove.com/x")
    assert r.signals.title == "Dove Body Wash"


def test_breadcrumb_nav_fallback():
    nav = '<nav aria-label="Breadcrumb"><ol><li>Beauty</li><li>Face</li></ol></nav>'
    r = read_page(_html(title="x", extra=nav), "https://www.example.com/item/1")
    assert r.signals.breadcrumbs == ("Beauty", "Face")


def test_marketplace_jsonld_is_flagged():
    r = read_page(
        _html(PRODUCT, title="CeraVe Hydrating Facial Cleanser"),
        "https://www.amazon.com/dp/B01MSSDEPK",
    )
    assert JSONLD_MISMATCH in r.warnings


def test_brand_not_visible_is_flagged():
    r = read_page(
        _html(PRODUCT, title="Hydrating Facial Cleanser"),
        "https://www.ulta.com/p/x",
    )
    assert JSONLD_MISMATCH in r.warnings


def test_malformed_jsonld_ignored():
    html = '<html><head><title>T</title><script type="application/ld+json">{not json</script></head></html>'
    r = read_page(html, "https://www.ulta.com/p/x")
    assert r.identity.brand == ""
    assert r.warnings == []


def test_bot_wall_titles():
    assert is_bot_wall("<html><head><title>Just a moment...</title></head></html>")
    assert is_bot_wall("<html><head><title>Robot or human?</title></head></html>")
    assert is_bot_wall("")


def test_bot_wall_markers_need_two():
    assert is_bot_wall("<html><body>Cloudflare Ray ID: 123</body></html>")
    assert not is_bot_wall("<html><head><title>CeraVe Cleanser</title></head><body>Protected by recaptcha</body></html>")


def test_short_real_page_is_not_a_bot_wall():
    assert not is_bot_wall("<html><head><title>Cleanser</title></head><body>$9.99</body></html>")
