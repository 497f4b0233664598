from datetime import datetime, timedelta, timezone

import pytest

from deal_finder.cache import CONFLICT_COLUMNS, MemoryDealCache, SupabaseDealCache, to_cached
from deal_finder.errors import CacheError
from deal_finder.match import build_candidate
from deal_finder.models import CachedDeal

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _deal(url="https://www.amazon.com/dp/A", price=10.0, expires=NOW + timedelta(hours=1), product_id="p1"):
    return CachedDeal(
        product_id=product_id, retailer="Amazon", deal_url=url, title="CeraVe Cream 16 oz",
        price=price, availability="Available", expires_at=expires,
    )


def test_to_cached_keeps_priced_only():
    priced = build_candidate(url="https://www.amazon.com/dp/A", title="CeraVe Cream 16 oz", price=12.0)
    unpriced = build_candidate(url="https://www.amazon.com/dp/B", title="CeraVe Cream 8 oz")
    rows = to_cached([priced, unpriced], product_id="p1", search_query="CeraVe Cream",
                     ttl=timedelta(hours=24), now=NOW)
    assert len(rows) == 1
    assert rows[0].expires_at == NOW + timedelta(hours=24)
    assert rows[0].search_query == "CeraVe Cream"


def test_to_cached_keeps_candidate_currency():
    c = build_candidate(url="https://www.amazon.com/dp/A", title="CeraVe Cream 16 oz", price=12.0, currency="CAD")
    rows = to_cached([c], product_id="p1", search_query="q", ttl=timedelta(hours=1), now=NOW)
    assert rows[0].currency == "CAD"


def test_memory_cache_upserts_on_key():
    cache = MemoryDealCache(clock=lambda: NOW)
    cache.put([_deal(price=10.0)])
    cache.put([_deal(price=8.0)])
    rows = cache.get("p1")
    assert [r.price for r in rows] == [8.0]


def test_memory_cache_skips_expired_and_orders_by_price():
    cache = MemoryDealCache(clock=lambda: NOW)
    cache.put([
        _deal(url="https://x/1", price=9.0),
        _deal(url="https://x/2", price=4.0),
        _deal(url="https://x/3", price=1.0, expires=NOW - timedelta(seconds=1)),
        _deal(url="https://x/4", price=2.0, product_id="other"),
    ])
    assert [r.price for r in cache.get("p1")] == [4.0, 9.0]


class FakeQuery:
    def __init__(self, log, data=None, error=None):
        self.log = log
        self.data = data or []
        self.error = error

    def __getattr__(self, name):
        def call(*args, **kwargs):
            self.log.append((name, args, kwargs))
            return self
        return call

    def execute(self):
        if self.error:
            raise self.error
        return type("Resp", (), {"data": self.data})()


class FakeClient:
    def __init__(self, data=None, error=None):
        self.log = []
        self.data = data
        self.error = error

    def table(self, name):
        self.log.append(("table", (name,), {}))
        return FakeQuery(self.log, self.data, self.error)


def test_supabase_read_filters_and_parses():
    row = {
        "product_id": "p1", "retailer": "Amazon", "deal_url": "https://www.amazon.com/dp/A",
        "product_title": "CeraVe Cream 16 oz", "price": "12.5", "currency": "USD",
        "availability": "Available", "expires_at": "2026-01-02T00:00:00Z",
    }
    client = FakeClient(data=[row])
    deals = SupabaseDealCache(client).get("p1", limit=5)
    names = [entry[0] for entry in client.log]
    assert names == ["table", "select", "eq", "gt", "order", "limit"]
    assert client.log[0][1] == ("product_deals",)
    assert deals[0].price == 12.5
    assert deals[0].title == "CeraVe Cream 16 oz"
    assert deals[0].expires_at is None


def test_supabase_write_upserts_on_conflict_key():
    client = FakeClient()
    SupabaseDealCache(client).put([_deal()])
    name, args, kwargs = client.log[1]
    assert name == "upsert"
    assert kwargs["on_conflict"] == CONFLICT_COLUMNS
    assert args[0][0]["product_title"] == "CeraVe Cream 16 oz"
    assert args[0][0]["expires_at"] == (NOW + timedelta(hours=1)).isoformat()


def test_supabase_errors_become_cache_errors():
    with pytest.raises(CacheError):
        SupabaseDealCache(FakeClient(error=RuntimeError("boom"))).get("p1")
    with pytest.raises(CacheError):
        SupabaseDealCache(FakeClient(error=RuntimeError("boom"))).put([_deal()])


def test_supabase_read_ignores_expiry_timestamp_format():
    row = {
        "product_id": "p1", "retailer": "Amazon", "deal_url": "https://www.amazon.com/dp/A",
        "product_title": "CeraVe Cream 16 oz", "price": 9.99,
        "expires_at": "2026-01-02T00:00:00.12345+00:00",
    }
    deals = SupabaseDealCache(FakeClient(data=[row])).get("p1")
    assert deals[0].price == 9.99
    assert deals[0].currency == "USD"


def test_supabase_malformed_row_becomes_cache_error():
    row = {"product_id": "p1", "retailer": "Amazon", "deal_url": "https://x/1", "price": "abc"}
    with pytest.raises(CacheError):
        SupabaseDealCache(FakeClient(data=[row])).get("p1")
