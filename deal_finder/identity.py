"""Product identity scoring.

Decides whether a page describes the product we want, not merely a product
with a similar name. Brand is a hard gate; after it passes the score is
additive:

    brand gate passed        3.0
    manufacturer domain     +0.5
    name tokens             +0.0 .. +1.0
    size within 10%         +1.0
    form in title           +0.5
    scent/shade             +0.75
    GTIN equal and valid    +5.0

A page passes when the total reaches the threshold (4.0 by default).
"""
from __future__ import annotations

from .gtin import canonical_gtin, digits_only, is_valid_gtin
from .models import (
    GateBreakdown,
    GateReason,
    IdentityGateResult,
    PageSignals,
    ProductIdentity,
)
from .normalize import normalize_brand, normalize_scent, normalize_size, sizes_match

DEFAULT_THRESHOLD = 4.0

BRAND_BASE = 3.0
DOMAIN_BOOST = 0.5
SIZE_POINTS = 1.0
FORM_POINTS = 0.5
SCENT_POINTS = 0.75
GTIN_POINTS = 5.0

STOP_WORDS = frozenset({"the", "and", "for", "with", "from", "this", "that"})

# Keys are normalize_brand() forms.
MANUFACTURER_DOMAINS: dict[str, tuple[str, ...]] = {
    "cerave": ("cerave.com",),
    "loreal": ("lorealparisusa.com", "loreal.com", "lorealparis.com"),
    "neutrogena": ("neutrogena.com",),
    "clinique": ("clinique.com",),
    "the ordinary": ("theordinary.com", "deciem.com"),
    "dr bronner": ("drbronner.com",),
    "olay": ("olay.com",),
    "aveeno": ("aveeno.com",),
    "dove": ("dove.com",),
    "eucerin": ("eucerin.com", "eucerin-us.com"),
    "vaseline": ("vaseline.com",),
}


def build_identity(
    *,
    brand: str,
    name: str,
    size: str | None = None,
    form: str | None = None,
    scent_shade: str | None = None,
    gtin: str | None = None,
    sku: str | None = None,
    region: str | None = None,
    scent_aliases: dict[str, str] | None = None,
) -> ProductIdentity:
    """Build an identity from free-text fields, normalizing size and scent."""
    return ProductIdentity(
        brand=brand.strip(),
        name=name.strip(),
        size=normalize_size(size),
        form=form.strip().lower() if form and form.strip() else None,
        scent_shade=normalize_scent(scent_shade, scent_aliases),
        gtin=gtin or None,
        sku=sku or None,
        region=region or None,
    )


def domain_boost(
    url_host: str,
    brand: str,
    manufacturer_domains: dict[str, tuple[str, ...]] | None = None,
) -> float:
    if not url_host or not brand:
        return 0.0
    table = MANUFACTURER_DOMAINS if manufacturer_domains is None else manufacturer_domains
    wanted = normalize_brand(brand)
    host = url_host.lower().removeprefix("www.")
    for key, domains in table.items():
        if key in wanted and any(host == d or host.endswith("." + d) for d in domains):
            return DOMAIN_BOOST
    return 0.0


def name_tokens(name: str) -> list[str]:
    return [t for t in name.lower().split() if len(t) >= 3 and t not in STOP_WORDS]


def _same_gtin(a: str, b: str) -> bool:
    ca = canonical_gtin(a) or digits_only(a)
    cb = canonical_gtin(b) or digits_only(b)
    return bool(ca) and ca == cb


def score_identity(
    page: PageSignals,
    extracted: ProductIdentity,
    wanted: ProductIdentity,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    manufacturer_domains: dict[str, tuple[str, ...]] | None = None,
    scent_aliases: dict[str, str] | None = None,
) -> IdentityGateResult:
    title_text = (page.title or page.h1 or "").lower()

    want_brand = normalize_brand(wanted.brand)
    found_brand = normalize_brand(extracted.brand)
    visible = normalize_brand(f"{page.title} {page.h1}")
    brand_match = bool(want_brand) and (want_brand in found_brand or want_brand in visible)
    if not brand_match:
        return IdentityGateResult(score=0.0, passed=False, reason=GateReason.BRAND_MISMATCH)

    score = BRAND_BASE

    boost = domain_boost(page.url_host, wanted.brand, manufacturer_domains)
    score += boost

    tokens = name_tokens(wanted.name)
    matched = [t for t in tokens if t in title_text]
    if tokens:
        score += len(matched) / len(tokens)

    size_match = sizes_match(wanted.size, extracted.size)
    if size_match:
        score += SIZE_POINTS

    form_match = bool(wanted.form) and wanted.form.lower() in title_text
    if form_match:
        score += FORM_POINTS

    scent_match = False
    want_scent = normalize_scent(wanted.scent_shade, scent_aliases)
    if want_scent:
        found_scent = normalize_scent(extracted.scent_shade, scent_aliases)
        scent_match = want_scent in title_text or found_scent == want_scent
        if scent_match:
            score += SCENT_POINTS

    gtin_valid = False
    gtin_match = False
    if wanted.gtin and extracted.gtin:
        gtin_valid = is_valid_gtin(extracted.gtin)
        if _same_gtin(wanted.gtin, extracted.gtin):
            if not gtin_valid:
                return IdentityGateResult(
                    score=0.0,
                    passed=False,
                    reason=GateReason.GTIN_CONFLICT,
                    breakdown=GateBreakdown(
                        brand_match=True,
                        name_tokens_matched=len(matched),
                        name_tokens_total=len(tokens),
                        size_match=size_match,
                        form_match=form_match,
                        scent_match=scent_match,
                        domain_boost=boost,
                    ),
                )
            gtin_match = True
            score += GTIN_POINTS

    passed = score >= threshold
    reason = GateReason.NONE
    if not passed:
        if wanted.size is not None and not size_match:
            reason = GateReason.SIZE_MISMATCH
        elif want_scent and not scent_match:
            reason = GateReason.SCENT_MISMATCH
        else:
            reason = GateReason.LOW_SCORE

    return IdentityGateResult(
        score=score,
        passed=passed,
        reason=reason,
        breakdown=GateBreakdown(
            brand_match=True,
            name_tokens_matched=len(matched),
            name_tokens_total=len(tokens),
            size_match=size_match,
            form_match=form_match,
            scent_match=scent_match,
            gtin_valid=gtin_valid,
            gtin_match=gtin_match,
            domain_boost=boost,
        ),
    )
