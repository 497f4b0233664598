from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from loguru import logger

from .errors import CacheError
from .models import DEFAULT_CURRENCY, Candidate, CachedDeal

DEALS_TABLE = "product_deals"
CONFLICT_COLUMNS = "product_id,retailer,deal_url"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DealCache(Protocol):
    def get(self, product_id: str, *, limit: int = 5) -> list[CachedDeal]:
        ...

    def put(self, deals: list[CachedDeal]) -> None:
        ...


def to_cached(
    candidates: list[Candidate],
    *,
    product_id: str,
    search_query: str,
    ttl: timedelta,
    now: datetime | None = None,
) -> list[CachedDeal]:
    """Rows worth caching: only candidates that resolved to a price."""
    expires = (now or utcnow()) + ttl
    return [
        CachedDeal(
            product_id=product_id,
            retailer=c.retailer,
            deal_url=c.url,
            title=c.raw_title,
            price=c.price,
            currency=c.currency,
            availability="Available",
            search_query=search_query,
            expires_at=expires,
        )
        for c in candidates
        if c.price is not None
    ]


class MemoryDealCache:
    """In-process cache with the same upsert and expiry semantics as the table."""

    def __init__(self, *, clock=utcnow):
        self._rows: dict[tuple[str, str, str], CachedDeal] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, product_id: str, *, limit: int = 5) -> list[CachedDeal]:
        now = self._clock()
        with self._lock:
            rows = [
                r for r in self._rows.values()
                if r.product_id == product_id and r.expires_at is not None and r.expires_at > now
            ]
        rows.sort(key=lambda r: (r.price is None, r.price or 0.0))
        return rows[:limit]

    def put(self, deals: list[CachedDeal]) -> None:
        with self._lock:
            for d in deals:
                self._rows[d.key] = d


class SupabaseDealCache:
    """Deal cache backed by the ``product_deals`` table."""

    def __init__(self, client: Any, *, table: str = DEALS_TABLE):
        self.client = client
        self.table = table

    def get(self, product_id: str, *, limit: int = 5) -> list[CachedDeal]:
        try:
            resp = (
                self.client.table(self.table)
                .select("*")
                .eq("product_id", product_id)
                .gt("expires_at", utcnow().isoformat())
                .order("price", desc=False)
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            raise CacheError(f"reading {self.table} failed: {exc}") from exc
        rows = getattr(resp, "data", None) or []
        try:
            return [_row_to_deal(r) for r in rows]
        except (AttributeError, TypeError, ValueError) as exc:
            raise CacheError(f"malformed row in {self.table}: {exc}") from exc

    def put(self, deals: list[CachedDeal]) -> None:
        if not deals:
            return
        records = [_deal_to_row(d) for d in deals]
        try:
            self.client.table(self.table).upsert(
                records, on_conflict=CONFLICT_COLUMNS, ignore_duplicates=False
            ).execute()
        except Exception as exc:
            raise CacheError(f"writing {self.table} failed: {exc}") from exc
        logger.info("Cached {} deals", len(records))


def _deal_to_row(d: CachedDeal) -> dict[str, Any]:
    return {
        "product_id": d.product_id,
        "product_title": d.title,
        "retailer": d.retailer,
        "price": d.price,
        "currency": d.currency,
        "deal_url": d.deal_url,
        "availability": d.availability,
        "search_query": d.search_query,
        "expires_at": d.expires_at.isoformat() if d.expires_at else None,
    }


def _row_to_deal(row: dict[str, Any]) -> CachedDeal:
    price = row.get("price")
    return CachedDeal(
        product_id=str(row.get("product_id") or ""),
        retailer=str(row.get("retailer") or ""),
        deal_url=str(row.get("deal_url") or ""),
        title=str(row.get("product_title") or ""),
        price=float(price) if price is not None else None,
        currency=row.get("currency") or DEFAULT_CURRENCY,
        availability=row.get("availability") or "Unknown",
        search_query=row.get("search_query"),
    )
