from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_serializer

from .models import DEFAULT_CURRENCY, Candidate, IdentityGateResult
from .normalize import format_size

NO_RESULTS_MESSAGE = "No shopping results found. Try searching manually on retailer websites."


class DealRequest(BaseModel):
    product_id: Optional[str] = None
    product_title: str
    product_url: Optional[str] = None
    numeric_grade: Optional[float] = None
    grade: Optional[str] = None
    ingredients: Optional[str] = None

    @field_validator("product_title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("product_title is required")
        return v


class DealOut(BaseModel):
    retailer: str
    price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    deal_url: str
    availability: str
    title: str
    display_name: str
    product_name: str
    size: Optional[str] = None
    price_per_unit: Optional[float] = None

    @classmethod
    def from_candidate(cls, c: Candidate, *, availability: str | None = None) -> "DealOut":
        return cls(
            retailer=c.retailer,
            price=c.price,
            currency=c.currency,
            deal_url=c.url,
            availability=availability or ("Available" if c.price is not None else "Check website"),
            title=c.raw_title,
            display_name=c.display_name or c.product_name or c.raw_title,
            product_name=c.product_name,
            size=format_size(c.size) if c.size else None,
            price_per_unit=c.price_per_unit,
        )


class DealsResponse(BaseModel):
    success: bool = True
    deals: list[DealOut] = Field(default_factory=list)
    cached: bool = False
    message: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_empty_message(self, handler):
        data = handler(self)
        if isinstance(data, dict) and data.get("message") is None:
            data.pop("message", None)
        return data


class VerifyRequest(BaseModel):
    url: str
    brand: str
    name: str
    size: Optional[str] = None
    form: Optional[str] = None
    scent_shade: Optional[str] = None
    gtin: Optional[str] = None

    @field_validator("url", "brand", "name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class VerifyResponse(BaseModel):
    url: str
    score: float
    passed: bool
    reason: str
    brand_match: bool
    name_tokens_matched: int
    name_tokens_total: int
    size_match: bool
    form_match: bool
    scent_match: bool
    gtin_valid: bool
    gtin_match: bool
    domain_boost: float
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, url: str, result: IdentityGateResult, warnings: list[str]) -> "VerifyResponse":
        b = result.breakdown
        return cls(
            url=url,
            score=result.score,
            passed=result.passed,
            reason=result.reason.value,
            brand_match=b.brand_match,
            name_tokens_matched=b.name_tokens_matched,
            name_tokens_total=b.name_tokens_total,
            size_match=b.size_match,
            form_match=b.form_match,
            scent_match=b.scent_match,
            gtin_valid=b.gtin_valid,
            gtin_match=b.gtin_match,
            domain_boost=b.domain_boost,
            warnings=list(warnings),
        )
