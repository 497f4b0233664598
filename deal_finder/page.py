"""Read identity evidence out of a fetched product page.

JSON-LD is treated as a candidate source, not as truth: marketplaces often
serve stale structured data, so it is cross-checked against what the page
visibly shows and any disagreement is reported as a warning.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup
from loguru import logger

from .models import PageSignals, ProductIdentity
from .normalize import normalize_size
from .retailers import host_of

JSONLD_MISMATCH = "jsonld_mismatch"

_MARKETPLACE_HOST = re.compile(r"amazon\.|ebay\.|walmart\.|target\.", re.IGNORECASE)

BOT_WALL_TITLES = (
    "access denied",
    "just a moment",
    "checking your browser",
    "attention required",
    "cloudflare",
    "403 forbidden",
    "403 error",
    "captcha",
    "robot or human",
    "please verify",
    "security check",
    "bot protection",
    "are you a robot",
    "verify you are human",
)

BOT_WALL_MARKERS = (
    "cloudflare",
    "ray id",
    "cf-ray",
    "perimeterx",
    "datadome",
    "imperva",
    "recaptcha",
    "hcaptcha",
    "please enable cookies",
    "enable javascript and cookies",
    "checking your browser before accessing",
)


@dataclass(frozen=True)
class PageReading:
    signals: PageSignals
    identity: ProductIdentity
    warnings: list[str] = field(default_factory=list)


def _is_product(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    t = node.get("@type")
    return t == "Product" or (isinstance(t, list) and "Product" in t)


def parse_jsonld(soup: BeautifulSoup) -> list[Any]:
    nodes: list[Any] = []
    for tag in soup.find_all("script", type="application/ld+json"):
        text = tag.string or tag.get_text() or ""
        if not text.strip():
            continue
        try:
            nodes.append(json.loads(text))
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
    return nodes


def pick_product_node(nodes: list[Any]) -> dict[str, Any] | None:
    """Find a schema.org Product at top level, inside @graph, or in a list."""
    for node in nodes:
        if _is_product(node):
            return node
        if isinstance(node, dict) and isinstance(node.get("@graph"), list):
            for sub in node["@graph"]:
                if _is_product(sub):
                    return sub
        if isinstance(node, list):
            for item in node:
                if _is_product(item):
                    return item
    return None


def _text(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    if isinstance(value, dict):
        value = value.get("name", "")
    return str(value).strip() if value is not None else ""


def identity_from_jsonld(nodes: list[Any]) -> ProductIdentity:
    product = pick_product_node(nodes)
    if not product:
        return ProductIdentity()

    name = _text(product.get("name"))
    gtin = None
    for key in ("gtin", "gtin13", "gtin14", "gtin12", "gtin8"):
        if product.get(key):
            gtin = _text(product[key])
            break
    sku = _text(product.get("sku")) or _text(product.get("mpn")) or None
    size = normalize_size(_text(product.get("size"))) or normalize_size(name)
    scent = _text(product.get("scent")) or _text(product.get("color")) or None

    return ProductIdentity(
        brand=_text(product.get("brand")),
        name=name,
        size=size,
        scent_shade=scent.lower() if scent else None,
        gtin=gtin,
        sku=sku,
    )


def _breadcrumbs(soup: BeautifulSoup, nodes: list[Any]) -> tuple[str, ...]:
    for node in nodes:
        candidates = node.get("@graph", [node]) if isinstance(node, dict) else node
        if not isinstance(candidates, list):
            continue
        for item in candidates:
            if isinstance(item, dict) and item.get("@type") == "BreadcrumbList":
                crumbs = []
                for el in item.get("itemListElement") or []:
                    if isinstance(el, dict):
                        label = _text(el.get("name") or el.get("item"))
                        if label:
                            crumbs.append(label)
                if crumbs:
                    return tuple(crumbs)

    nav = soup.select_one("nav[aria-label*='readcrumb'], .breadcrumb, .breadcrumbs, [class*='Breadcrumb']")
    if nav is None:
        return ()
    links = nav.select("li") or nav.select("a")
    return tuple(t for t in (el.get_text(" ", strip=True) for el in links) if t)


def extract_signals(soup: BeautifulSoup, url: str, nodes: list[Any] | None = None) -> PageSignals:
    og = soup.select_one("meta[property='og:title']")
    title = og.get("content", "").strip() if og else ""
    if not title and soup.title and soup.title.string:
        title = soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    return PageSignals(
        title=title,
        h1=h1.get_text(" ", strip=True) if h1 else "",
        breadcrumbs=_breadcrumbs(soup, parse_jsonld(soup) if nodes is None else nodes),
        url_host=host_of(url).removeprefix("www."),
    )


def sanity_check(identity: ProductIdentity, signals: PageSignals) -> list[str]:
    """Flag JSON-LD that disagrees with the visible page."""
    warnings: list[str] = []
    if not identity.brand and not identity.name:
        return warnings

    if identity.brand and _MARKETPLACE_HOST.search(signals.url_host):
        warnings.append(JSONLD_MISMATCH)
        logger.info("Marketplace JSON-LD may be stale: {}", signals.url_host)

    visible = f"{signals.title} {signals.h1}".lower()
    brand = identity.brand.lower()
    if brand and len(brand) > 3 and brand not in visible:
        warnings.append(JSONLD_MISMATCH)
        logger.info("JSON-LD brand {!r} not visible on page", identity.brand)

    if identity.name and signals.title:
        json_tokens = [w for w in identity.name.lower().split() if len(w) >= 3]
        title_tokens = signals.title.lower().split()
        if len(json_tokens) >= 3:
            overlap = sum(1 for tok in json_tokens if any(tok in t for t in title_tokens))
            if overlap / len(json_tokens) < 0.4:
                warnings.append(JSONLD_MISMATCH)
                logger.info("Low JSON-LD name overlap: {!r} vs {!r}", identity.name, signals.title)

    return warnings


def read_page(html: str, url: str) -> PageReading:
    soup = BeautifulSoup(html, "lxml")
    nodes = parse_jsonld(soup)
    signals = extract_signals(soup, url, nodes)
    identity = identity_from_jsonld(nodes)
    return PageReading(signals=signals, identity=identity, warnings=sanity_check(identity, signals))


def is_bot_wall(html: str) -> bool:
    """Challenge pages often answer 200 OK; spot them before parsing."""
    if not html or not html.strip():
        return True
    lower = html.lower()

    m = re.search(r"<title[^>]*>([\s\S]*?)</title>", lower)
    if m and any(p in m.group(1).strip() for p in BOT_WALL_TITLES):
        return True

    m = re.search(r"<meta[^>]+property=[\"']og:title[\"'][^>]+content=[\"']([^\"']+)[\"']", lower)
    if m and any(p in m.group(1).strip() for p in BOT_WALL_TITLES):
        return True

    sample = lower[:3000]
    return sum(1 for marker in BOT_WALL_MARKERS if marker in sample) >= 2
