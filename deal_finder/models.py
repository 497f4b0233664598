from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

VOLUME = "volume"
WEIGHT = "weight"

DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class Size:
    """A size in the canonical unit of its channel.

    Volume is stored in millilitres, weight in grams. Two sizes are only
    comparable when their channels are equal.
    """

    value: float
    channel: str  # VOLUME or WEIGHT


@dataclass(frozen=True)
class Quantity:
    """A size as written on a listing, e.g. 3 "fl oz" or 30 "count"."""

    amount: float
    unit: str  # fl oz, oz, ml, l, g, kg, lb, count, pack


@dataclass(frozen=True)
class ProductIdentity:
    brand: str = ""
    name: str = ""
    size: Size | None = None
    form: str | None = None          # e.g. "serum", "soap", "capsule"
    scent_shade: str | None = None   # normalized, e.g. "fragrance-free"
    gtin: str | None = None
    sku: str | None = None
    region: str | None = None


@dataclass(frozen=True)
class PageSignals:
    """Visible evidence captured from a product page."""

    title: str = ""
    h1: str = ""
    breadcrumbs: tuple[str, ...] = ()
    url_host: str = ""


class GateReason(str, Enum):
    NONE = "none"
    BRAND_MISMATCH = "brand_mismatch"
    LOW_SCORE = "low_score"
    GTIN_CONFLICT = "gtin_conflict"
    SIZE_MISMATCH = "size_mismatch"
    SCENT_MISMATCH = "scent_mismatch"


@dataclass(frozen=True)
class GateBreakdown:
    brand_match: bool = False
    name_tokens_matched: int = 0
    name_tokens_total: int = 0
    size_match: bool = False
    form_match: bool = False
    scent_match: bool = False
    gtin_valid: bool = False
    gtin_match: bool = False
    domain_boost: float = 0.0


@dataclass(frozen=True)
class IdentityGateResult:
    score: float
    passed: bool
    reason: GateReason = GateReason.NONE
    breakdown: GateBreakdown = field(default_factory=GateBreakdown)


@dataclass(frozen=True)
class SearchHit:
    """A single raw result from the external search index."""

    title: str
    url: str
    content_snippet: str = ""


@dataclass(frozen=True)
class Candidate:
    """A retail listing considered for the deal list."""

    retailer: str
    url: str
    raw_title: str
    product_name: str
    display_name: str
    price: float | None = None
    size: Quantity | None = None
    price_per_unit: float | None = None
    snippet: str = ""
    currency: str = DEFAULT_CURRENCY

    @property
    def key(self) -> tuple[str, str]:
        return (self.retailer, self.url)


@dataclass(frozen=True)
class CachedDeal:
    product_id: str
    retailer: str
    deal_url: str
    title: str
    price: float | None
    currency: str = DEFAULT_CURRENCY
    availability: str = "Unknown"
    search_query: str | None = None
    expires_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.product_id, self.retailer, self.deal_url)
