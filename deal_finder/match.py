from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from .models import DEFAULT_CURRENCY, Candidate, SearchHit
from .normalize import format_size, parse_quantity, price_per_unit
from .retailers import is_direct_product_url, retailer_name

_BRAND_RE = re.compile(r"^([A-Z][\w'&.-]*(?:\s+[A-Z][\w'&.-]*)?)")

_SHADE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r",\s*([A-Za-z\s]+(?:Black|Brown|Beige|Nude|Red|Pink|Blue|Green|Bronze|Gold|Silver|Clear|Natural))",
        re.IGNORECASE,
    ),
    re.compile(r"\"([^\"]+)\""),
    re.compile(r"\b(Blackest Black|Very Black|Black Brown|Soft Black|Deep Brown|Natural|Nude)\b", re.IGNORECASE),
]

_PRODUCT_TYPES_RE = re.compile(
    r"\b(mascara|lipstick|foundation|concealer|blush|eyeliner|eyeshadow|powder|cream|lotion|"
    r"serum|cleanser|moisturizer|sunscreen|balm|gloss|primer)\b",
    re.IGNORECASE,
)
_MARKETING_RE = re.compile(
    r"\b(washable|waterproof|longwear|matte|satin|sheer|shimmer|hydrating|volumizing)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TitleIdentifiers:
    brand: str | None
    product_line: str | None
    shade: str | None

    def line_tokens(self) -> list[str]:
        if not self.product_line:
            return []
        return [t for t in self.product_line.lower().split() if len(t) >= 3]


def extract_identifiers(title: str) -> TitleIdentifiers:
    """Split a product title into brand, shade and the remaining product line."""
    title = title.strip()
    m = _BRAND_RE.match(title)
    brand = m.group(1).strip() if m else None

    shade = None
    for pattern in _SHADE_PATTERNS:
        sm = pattern.search(title)
        if sm:
            shade = sm.group(1).strip()
            break

    line = title
    if brand:
        line = line.replace(brand, "", 1)
    if shade:
        line = line.replace(shade, "", 1)
    line = _PRODUCT_TYPES_RE.sub("", line)
    line = _MARKETING_RE.sub("", line)
    line = re.sub(r"[,()\"]", " ", line)
    line = re.sub(r"\s+", " ", line).strip()

    return TitleIdentifiers(brand=brand, product_line=line or None, shade=shade)


def matches_identifiers(title: str, origin: TitleIdentifiers) -> bool:
    """Brand must appear and at least half of the product-line tokens.

    Shade is only reported: retailers format it too inconsistently to gate on.
    """
    lower = title.lower()
    if origin.brand and origin.brand.lower() not in lower:
        return False

    tokens = origin.line_tokens()
    if tokens:
        matched = [t for t in tokens if t in lower]
        if len(matched) < len(tokens) * 0.5:
            return False

    if origin.shade and origin.shade.lower() not in lower:
        logger.warning("Shade mismatch: origin={!r} result={!r}", origin.shade, title)
    return True


def filter_hits(hits: list[SearchHit], product_title: str) -> list[SearchHit]:
    origin = extract_identifiers(product_title)
    logger.info(
        "Origin identifiers: brand={!r} line={!r} shade={!r}",
        origin.brand, origin.product_line, origin.shade,
    )
    kept: list[SearchHit] = []
    for hit in hits:
        if not is_direct_product_url(hit.url):
            logger.info("Skipped non-product URL: {}", hit.url)
            continue
        if not matches_identifiers(hit.title, origin):
            logger.info("Skipped non-matching product: {}", hit.title)
            continue
        kept.append(hit)
    return kept


def extract_product_name(title: str, retailer: str) -> str:
    """Strip retailer prefix, call-to-action words and inline prices."""
    s = re.sub(r"^" + re.escape(retailer) + r"\s*[-:]?\s*", "", title, flags=re.IGNORECASE)
    s = re.sub(r"^(buy|shop|get|find)\s+", "", s, flags=re.IGNORECASE)
    s = re.sub(r"price:\s*\$?\s*\d+(?:\.\d{2})?", "", s, flags=re.IGNORECASE)
    s = re.sub(r"\$\s*\d+(?:\.\d{2})?", "", s)
    s = re.sub(r"\s+[-–—]\s+", " - ", s)
    return re.sub(r"\s+", " ", s).strip()


def build_candidate(
    *,
    url: str,
    title: str,
    price: float | None = None,
    retailer: str | None = None,
    snippet: str = "",
    currency: str = DEFAULT_CURRENCY,
) -> Candidate:
    retailer = retailer or retailer_name(url)
    size = parse_quantity(title)
    product_name = extract_product_name(title, retailer)
    display_name = f"{product_name} - {format_size(size)}" if size else product_name
    return Candidate(
        retailer=retailer,
        url=url,
        raw_title=title,
        product_name=product_name,
        display_name=display_name,
        price=price,
        size=size,
        price_per_unit=price_per_unit(price, size),
        snippet=snippet,
        currency=currency,
    )
