from __future__ import annotations

import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from loguru import logger

from .browser import BrowserPageFetcher, browserless_ws_endpoint
from .cache import DealCache, to_cached
from .config import Config
from .errors import CacheError, DealFinderError, ExternalServiceError, ExtractionError, FetchError
from .http import CancelToken, PageFetcher
from .identity import score_identity
from .match import build_candidate, filter_hits
from .models import DEFAULT_CURRENCY, Candidate, CachedDeal, IdentityGateResult, ProductIdentity, SearchHit
from .page import PageReading, is_bot_wall, read_page
from .prices import extract_offer
from .rank import select_deals
from .retailers import is_direct_product_url, retailer_for_url
from .schemas import NO_RESULTS_MESSAGE, DealOut, DealRequest, DealsResponse
from .search import SearchBackend, SearchClient, build_deal_query

_POLL_S = 0.25


class Fetcher(Protocol):
    def fetch(self, url: str, *, cancel: CancelToken | None = None) -> str:
        ...


@dataclass(frozen=True)
class Verification:
    url: str
    result: IdentityGateResult
    reading: PageReading


def make_fetcher(cfg: Config) -> Fetcher:
    if cfg.browser_enabled:
        ws = browserless_ws_endpoint(base_ws_url=cfg.browserless_url, token=cfg.browserless_token)
        return BrowserPageFetcher(ws_endpoint=ws, timeout_s=cfg.fetch_timeout_s)
    return PageFetcher(timeout_s=cfg.fetch_timeout_s)


def rehydrate(deal: CachedDeal) -> DealOut:
    """Rebuild a full deal entry from a cached row's stored title."""
    c = build_candidate(
        url=deal.deal_url,
        title=deal.title,
        price=deal.price,
        retailer=deal.retailer,
        currency=deal.currency or DEFAULT_CURRENCY,
    )
    return DealOut.from_candidate(c, availability=deal.availability)


class DealFinder:
    """Resolve a product title to a ranked list of retail deals."""

    def __init__(
        self,
        cfg: Config,
        *,
        search: SearchBackend | None = None,
        fetcher: Fetcher | None = None,
        cache: DealCache | None = None,
    ):
        self.cfg = cfg
        self.search = search or SearchClient(api_url=cfg.search_api_url, api_key=cfg.search_api_key)
        self.fetcher = fetcher or make_fetcher(cfg)
        self.cache = cache

    def find_deals(self, request: DealRequest, *, cancel: CancelToken | None = None) -> DealsResponse:
        cancel = cancel or CancelToken()
        deadline = time.monotonic() + self.cfg.pipeline_deadline_s
        title = request.product_title

        if request.product_id and self.cache is not None:
            cached = self._read_cache(request.product_id)
            if cached:
                logger.info("Returning {} cached deals for {}", len(cached), request.product_id)
                return DealsResponse(deals=[rehydrate(d) for d in cached], cached=True)

        query = build_deal_query(title)
        hits = self._search_within(query, deadline)
        if hits is None or time.monotonic() >= deadline:
            return DealsResponse(message=NO_RESULTS_MESSAGE)

        hits = filter_hits(hits, title)[: self.cfg.max_candidates]
        if not hits:
            logger.info("No product pages left after filtering")
            return DealsResponse(message=NO_RESULTS_MESSAGE)

        offers = self._fetch_prices(hits, cancel, deadline)
        candidates = []
        for h in hits:
            price, currency = offers.get(h.url, (None, DEFAULT_CURRENCY))
            candidates.append(
                build_candidate(
                    url=h.url, title=h.title, price=price, snippet=h.content_snippet, currency=currency
                )
            )
        deals = select_deals(candidates, limit=self.cfg.max_deals)
        if not deals:
            return DealsResponse(message=NO_RESULTS_MESSAGE)

        if request.product_id and self.cache is not None and not cancel.cancelled:
            self._write_cache(request.product_id, query_title=title, deals=deals)

        logger.info("Found {} deals, sorted by best value", len(deals))
        return DealsResponse(deals=[DealOut.from_candidate(c) for c in deals], cached=False)

    def _search_within(self, query: str, deadline: float) -> list[SearchHit] | None:
        """Search hits, or None when the search fails or outlives the deadline."""
        pool = ThreadPoolExecutor(max_workers=1)
        fut = pool.submit(
            self.search.search, query, domains=self.cfg.retail_domains, max_results=self.cfg.search_max_results
        )
        try:
            return fut.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeout:
            logger.warning("Search did not finish before the deadline")
            fut.cancel()
            return None
        except ExternalServiceError as exc:
            logger.warning("Search failed: {}", exc)
            return None
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _fetch_prices(
        self, hits: list[SearchHit], cancel: CancelToken, deadline: float
    ) -> dict[str, tuple[float | None, str]]:
        prices: dict[str, tuple[float | None, str]] = {}
        token = cancel.child()
        pool = ThreadPoolExecutor(max_workers=max(1, self.cfg.fetch_concurrency))
        futures: dict[Future, str] = {}
        try:
            for h in hits:
                if h.url in futures.values():
                    continue
                futures[pool.submit(self._price_for, h.url, token)] = h.url

            pending = set(futures)
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0 or cancel.cancelled:
                    break
                done, pending = wait(pending, timeout=min(_POLL_S, remaining), return_when=FIRST_COMPLETED)
                for fut in done:
                    prices[futures[fut]] = fut.result()

            if pending:
                logger.warning(
                    "{} price fetches unfinished ({}); keeping them without a price",
                    len(pending), "cancelled" if cancel.cancelled else "deadline reached",
                )
                token.cancel()
                for fut in pending:
                    fut.cancel()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return prices

    def _price_for(self, url: str, cancel: CancelToken) -> tuple[float | None, str]:
        """Runs on a worker thread. Never raises; failures mean no price."""
        try:
            html = self.fetcher.fetch(url, cancel=cancel)
            if is_bot_wall(html):
                raise ExtractionError(f"bot protection page at {url}")
            price, currency = extract_offer(html, retailer_for_url(url))
        except DealFinderError as exc:
            logger.info("No price for {}: {}", url, exc)
            return None, DEFAULT_CURRENCY
        except Exception as exc:
            logger.warning("Unexpected error extracting price from {}: {!r}", url, exc)
            return None, DEFAULT_CURRENCY
        if price is None:
            logger.info("Could not extract price from {}", url)
        return price, currency

    def _read_cache(self, product_id: str) -> list[CachedDeal]:
        try:
            return self.cache.get(product_id, limit=self.cfg.max_deals)
        except CacheError as exc:
            logger.warning("Cache read failed: {}", exc)
            return []

    def _write_cache(self, product_id: str, *, query_title: str, deals: list[Candidate]) -> None:
        rows = to_cached(
            deals,
            product_id=product_id,
            search_query=query_title,
            ttl=timedelta(hours=self.cfg.cache_ttl_hours),
        )
        if not rows:
            return
        try:
            self.cache.put(rows)
        except CacheError as exc:
            logger.error("Cache error: {}", exc)

    def verify_listing(
        self, url: str, wanted: ProductIdentity, *, cancel: CancelToken | None = None
    ) -> Verification:
        """Fetch a product page and score it against the wanted identity.

        Raises FetchError when the page cannot be loaded and ExtractionError
        when it is a bot-protection page.
        """
        html = self.fetcher.fetch(url, cancel=cancel)
        if is_bot_wall(html):
            raise ExtractionError(f"bot protection page at {url}")
        reading = read_page(html, url)
        result = score_identity(
            reading.signals,
            reading.identity,
            wanted,
            threshold=self.cfg.identity_threshold,
            manufacturer_domains=self.cfg.manufacturer_domains,
            scent_aliases=self.cfg.scent_aliases,
        )
        logger.info(
            "Identity score {:.2f} for {} ({})", result.score, url, result.reason.value
        )
        return Verification(url=url, result=result, reading=reading)

    def find_verified_listing(
        self,
        query: str,
        wanted: ProductIdentity,
        *,
        domains: tuple[str, ...] | None = None,
        cancel: CancelToken | None = None,
    ) -> Verification | None:
        """First search hit on the allow-list that passes the identity gate."""
        cancel = cancel or CancelToken()
        try:
            hits = self.search.search(
                query,
                domains=domains or self.cfg.retail_domains,
                max_results=self.cfg.search_max_results,
            )
        except ExternalServiceError as exc:
            logger.warning("Search failed: {}", exc)
            return None

        for hit in hits:
            if cancel.cancelled:
                break
            if not is_direct_product_url(hit.url):
                logger.info("Skipped non-product URL: {}", hit.url)
                continue
            try:
                v = self.verify_listing(hit.url, wanted, cancel=cancel)
            except (FetchError, ExtractionError) as exc:
                logger.info("Skipped {}: {}", hit.url, exc)
                continue
            if v.result.passed:
                return v
        return None
