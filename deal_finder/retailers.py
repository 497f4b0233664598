from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

UNKNOWN_RETAILER = "Online Store"

# CSS selector plus the attribute holding the price; None means element text.
PriceSelector = tuple[str, str | None]


@dataclass(frozen=True)
class Retailer:
    name: str
    domain: str
    product_paths: tuple[re.Pattern[str], ...] = ()
    price_selectors: tuple[PriceSelector, ...] = ()

    def owns(self, host: str) -> bool:
        host = host.lower().removeprefix("www.")
        return host == self.domain or host.endswith("." + self.domain)

    def is_product_path(self, url: str) -> bool:
        return any(p.search(url) for p in self.product_paths)


def _paths(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


RETAILERS: tuple[Retailer, ...] = (
    Retailer(
        name="Amazon",
        domain="amazon.com",
        product_paths=_paths(r"/dp/", r"/gp/product/"),
        price_selectors=(
            (".a-price .a-offscreen", None),
            ("#priceblock_ourprice", None),
            ("#priceblock_dealprice", None),
            (".a-price-whole", None),
        ),
    ),
    Retailer(
        name="Walmart",
        domain="walmart.com",
        product_paths=_paths(r"/ip/"),
        price_selectors=(
            ("[itemprop='price']", "content"),
            ("[data-testid='price-wrap']", None),
            (".price-characteristic", None),
            ("span[class*='price']", None),
        ),
    ),
    Retailer(
        name="Target",
        domain="target.com",
        product_paths=_paths(r"/p/", r"/-a-"),
        price_selectors=(
            ("[data-test='product-price']", None),
            ("[data-test*='price']", None),
            ("span[class*='Price']", None),
        ),
    ),
    Retailer(
        name="Sephora",
        domain="sephora.com",
        product_paths=_paths(r"/product/"),
        price_selectors=(
            ("[data-at='price']", None),
            ("span[class*='price']", None),
        ),
    ),
    Retailer(
        name="Ulta",
        domain="ulta.com",
        product_paths=_paths(r"/p/", r"/productid/"),
        price_selectors=(
            (".ProductPricingPanel__price", None),
            ("[class*='ProductPrice']", None),
        ),
    ),
    Retailer(name="DermStore", domain="dermstore.com"),
    Retailer(name="iHerb", domain="iherb.com"),
    Retailer(name="Vitacost", domain="vitacost.com"),
)

RETAIL_DOMAINS: tuple[str, ...] = tuple(r.domain for r in RETAILERS)

_GENERIC_PRODUCT_PATH = re.compile(r"/(?:product|item|p|pd|dp)/", re.IGNORECASE)
_PRODUCT_ID_SEGMENT = re.compile(r"/[A-Z0-9]{8,}")
_LISTING_PATH = re.compile(r"/(?:browse|category|search|shop|all-products|catalog)\b|/c/", re.IGNORECASE)


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def retailer_for_url(url: str) -> Retailer | None:
    host = host_of(url)
    for r in RETAILERS:
        if r.owns(host):
            return r
    return None


def retailer_by_name(name: str) -> Retailer | None:
    for r in RETAILERS:
        if r.name == name:
            return r
    return None


def retailer_name(url: str) -> str:
    r = retailer_for_url(url)
    return r.name if r else UNKNOWN_RETAILER


def is_direct_product_url(url: str) -> bool:
    """True unless the URL looks like a category, search or browse page.

    Known product shapes are accepted first; anything unrecognised is let
    through, since price extraction still has to find a price on the page.
    """
    r = retailer_for_url(url)
    if r is not None and r.is_product_path(url):
        return True
    path = urlparse(url).path
    if _GENERIC_PRODUCT_PATH.search(path) or _PRODUCT_ID_SEGMENT.search(path):
        return True
    if _LISTING_PATH.search(path):
        return False
    return True
