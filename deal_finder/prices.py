from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from bs4 import BeautifulSoup

from .models import DEFAULT_CURRENCY
from .page import parse_jsonld, pick_product_node
from .retailers import PriceSelector, Retailer

MIN_BARE_PRICE = 1
MAX_BARE_PRICE = 10_000


def _strip_commas(m: re.Match[str]) -> float:
    return float(m.group(1).replace(",", ""))


def _bounded_integer(m: re.Match[str]) -> float | None:
    val = float(m.group(1))
    if MIN_BARE_PRICE <= val <= MAX_BARE_PRICE:
        return val
    return None


# First match wins; later patterns are looser and only run when earlier ones miss.
_PRICE_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], float | None]]] = [
    (re.compile(r"\$\s*(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)"), _strip_commas),
    (re.compile(r"(\d{1,4}\.\d{2})"), _strip_commas),
    (re.compile(r"(\d{1,3}(?:,\d{3})+)"), _strip_commas),
    (re.compile(r"(\d+)"), _bounded_integer),
]


def parse_price(text: str | None) -> float | None:
    """Pull a price out of a fragment like "$1,299.99", "Now 19.99" or "24"."""
    if not text:
        return None
    cleaned = re.sub(r"[a-zA-Z]", " ", text)
    for pattern, convert in _PRICE_PATTERNS:
        m = pattern.search(cleaned)
        if m:
            return convert(m)
    return None


class PriceAdapter(Protocol):
    name: str

    def try_extract(self, soup: BeautifulSoup) -> float | None:
        ...


@dataclass(frozen=True)
class SelectorPriceAdapter:
    """Try CSS selectors in order; the first one yielding a price wins."""

    name: str
    selectors: tuple[PriceSelector, ...]

    def try_extract(self, soup: BeautifulSoup) -> float | None:
        for css, attr in self.selectors:
            node = soup.select_one(css)
            if node is None:
                continue
            raw = node.get(attr) if attr else node.get_text(" ", strip=True)
            price = parse_price(str(raw)) if raw else None
            if price is not None:
                return price
        return None


def _jsonld_offer(soup: BeautifulSoup) -> dict[str, Any] | None:
    node = pick_product_node(parse_jsonld(soup))
    if not node:
        return None
    offers = node.get("offers") or {}
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    return offers if isinstance(offers, dict) else None


def offer_currency(soup: BeautifulSoup) -> str | None:
    """ISO currency code from the JSON-LD offer, if the page declares one."""
    offers = _jsonld_offer(soup)
    raw = offers.get("priceCurrency") if offers else None
    if not isinstance(raw, str) or not raw.strip():
        return None
    return raw.strip().upper()


@dataclass(frozen=True)
class JsonLdPriceAdapter:
    """Offer price from a schema.org Product node."""

    name: str = "jsonld"

    def try_extract(self, soup: BeautifulSoup) -> float | None:
        offers = _jsonld_offer(soup)
        if offers is None:
            return None
        raw = offers.get("price") or offers.get("lowPrice")
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw) if raw > 0 else None
        if not isinstance(raw, str):
            return None
        return parse_price(raw)


GENERIC_ADAPTERS: tuple[PriceAdapter, ...] = (
    JsonLdPriceAdapter(),
    SelectorPriceAdapter(
        name="generic",
        selectors=(
            ("[itemprop='price']", "content"),
            ("meta[property='product:price:amount']", "content"),
            (".price", None),
            ("[class*='price']", None),
        ),
    ),
)


def adapters_for(retailer: Retailer | None) -> list[PriceAdapter]:
    chain: list[PriceAdapter] = []
    if retailer is not None and retailer.price_selectors:
        chain.append(SelectorPriceAdapter(name=retailer.name, selectors=retailer.price_selectors))
    chain.extend(GENERIC_ADAPTERS)
    return chain


def extract_offer(html: str, retailer: Retailer | None) -> tuple[float | None, str]:
    """Price from the first adapter that finds one, plus the offer currency."""
    soup = BeautifulSoup(html, "lxml")
    currency = offer_currency(soup) or DEFAULT_CURRENCY
    for adapter in adapters_for(retailer):
        price = adapter.try_extract(soup)
        if price is not None:
            return price, currency
    return None, currency


def extract_price(html: str, retailer: Retailer | None) -> float | None:
    return extract_offer(html, retailer)[0]
