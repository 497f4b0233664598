from __future__ import annotations

import re
import unicodedata

from .models import VOLUME, WEIGHT, Quantity, Size

ML_PER_FL_OZ = 29.5735
G_PER_OZ = 28.3495
G_PER_LB = 453.592

_NUM = r"(\d+(?:\.\d+)?)"

# Order matters: "fl oz" must be tried before bare "oz", and "ml" before "l".
_SIZE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(_NUM + r"\s*(?:fl\.?\s*oz\.?|fluid\s*ounces?)", re.IGNORECASE), "fl oz"),
    (re.compile(_NUM + r"\s*(?:ml|milliliters?|millilitres?)\b", re.IGNORECASE), "ml"),
    (re.compile(_NUM + r"\s*(?:l|liters?|litres?)\b", re.IGNORECASE), "l"),
    (re.compile(_NUM + r"\s*(?:oz|ounces?)\b(?!\s*count)", re.IGNORECASE), "oz"),
    (re.compile(_NUM + r"\s*(?:g|grams?)\b", re.IGNORECASE), "g"),
    (re.compile(_NUM + r"\s*(?:kg|kilograms?)\b", re.IGNORECASE), "kg"),
    (re.compile(_NUM + r"\s*(?:lbs?|pounds?)\b", re.IGNORECASE), "lb"),
    (re.compile(r"(\d+)\s*[-/]?\s*pack\b", re.IGNORECASE), "pack"),
    (re.compile(r"(\d+)\s*(?:count|ct|tablets|capsules|pills)\b", re.IGNORECASE), "count"),
]

# unit -> (channel, canonical units per written unit)
_TO_CANONICAL: dict[str, tuple[str, float]] = {
    "fl oz": (VOLUME, ML_PER_FL_OZ),
    "ml": (VOLUME, 1.0),
    "l": (VOLUME, 1000.0),
    "oz": (WEIGHT, G_PER_OZ),
    "g": (WEIGHT, 1.0),
    "kg": (WEIGHT, 1000.0),
    "lb": (WEIGHT, G_PER_LB),
}

SCENT_ALIASES: dict[str, str] = {
    # fragrance-free
    "unscented": "fragrance-free",
    "zero fragrance": "fragrance-free",
    "no fragrance": "fragrance-free",
    "no scent": "fragrance-free",
    "fragrance free": "fragrance-free",
    "scent free": "fragrance-free",
    "scent-free": "fragrance-free",
    # typos
    "pepermint": "peppermint",
    "lavendar": "lavender",
    "eucaliptus": "eucalyptus",
    "camomile": "chamomile",
    # shades
    "nude": "natural",
    "beige": "natural",
    "fair": "light",
    "medium tan": "medium",
}


def normalize_brand(brand: str | None) -> str:
    """Canonical form used for brand comparisons.

    "L'Oréal Paris" -> "loreal", "Dr. Bronner's" -> "dr bronners".
    """
    if not brand:
        return ""
    s = brand.lower()
    s = re.sub(r"['‘’`]", "", s)
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"\bl\s?oreal paris\b", "loreal", s)
    s = re.sub(r"\bdr\b\.?\s*", "dr ", s)
    return re.sub(r"\s+", " ", s).strip()


def parse_quantity(text: str | None) -> Quantity | None:
    """Find the first size in free text, keeping the unit as written."""
    if not text:
        return None
    s = re.sub(r"\s+", " ", text)
    for pattern, unit in _SIZE_PATTERNS:
        m = pattern.search(s)
        if m:
            return Quantity(amount=float(m.group(1)), unit=unit)
    return None


def quantity_to_size(q: Quantity | None) -> Size | None:
    """Convert a written quantity to its channel's canonical unit (unrounded)."""
    if q is None:
        return None
    conv = _TO_CANONICAL.get(q.unit)
    if conv is None:
        return None
    channel, factor = conv
    return Size(value=q.amount * factor, channel=channel)


def normalize_size(text: str | None) -> Size | None:
    """Parse a size string to whole millilitres (volume) or grams (weight).

    Counts and pack sizes have no channel and yield None.
    """
    size = quantity_to_size(parse_quantity(text))
    if size is None:
        return None
    return Size(value=float(round(size.value)), channel=size.channel)


def sizes_match(wanted: Size | None, found: Size | None, *, tolerance: float = 0.10) -> bool:
    if wanted is None or found is None:
        return False
    if wanted.channel != found.channel:
        return False
    return abs(wanted.value - found.value) <= wanted.value * tolerance


def normalize_scent(scent: str | None, aliases: dict[str, str] | None = None) -> str | None:
    if not scent:
        return None
    table = SCENT_ALIASES if aliases is None else aliases
    lower = re.sub(r"\s+", " ", scent.lower()).strip()
    if not lower:
        return None
    return table.get(lower, lower)


def price_per_unit(price: float | None, size: Quantity | None) -> float | None:
    """Price per fl oz (volume) or per oz (weight)."""
    if not price or size is None or size.amount <= 0:
        return None
    canonical = quantity_to_size(size)
    if canonical is None:
        return None
    per = ML_PER_FL_OZ if canonical.channel == VOLUME else G_PER_OZ
    units = canonical.value / per
    if units <= 0:
        return None
    return price / units


def format_size(size: Quantity) -> str:
    return f"{size.amount:g} {size.unit}"
