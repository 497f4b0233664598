from __future__ import annotations

from typing import Any, Protocol

import requests
from loguru import logger

from .errors import ExternalServiceError
from .http import HttpClient
from .models import SearchHit

PURCHASE_INTENT = "buy online"


class SearchBackend(Protocol):
    def search(self, query: str, *, domains: tuple[str, ...], max_results: int) -> list[SearchHit]:
        ...


def build_deal_query(product_title: str) -> str:
    title = product_title.strip().replace('"', "")
    return f'"{title}" {PURCHASE_INTENT}'


class SearchClient:
    """Web search restricted to a domain allow-list (Tavily API)."""

    def __init__(self, *, api_url: str, api_key: str, timeout_s: float = 15.0):
        self.http = HttpClient(base_url=api_url, token=api_key, timeout_s=timeout_s)

    def search(self, query: str, *, domains: tuple[str, ...], max_results: int = 15) -> list[SearchHit]:
        payload = {
            "query": query,
            "search_depth": "basic",
            "max_results": max_results,
            "include_domains": list(domains),
        }
        try:
            resp = self.http.post("/search", json=payload)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"search request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise ExternalServiceError(f"search API error {resp.status_code}: {resp.text[:300]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExternalServiceError(f"search API returned invalid JSON: {exc}") from exc

        hits = _parse_results(data.get("results") or [] if isinstance(data, dict) else [])
        logger.info("Search returned {} results for {!r}", len(hits), query)
        return hits[:max_results]


def _parse_results(rows: list[Any]) -> list[SearchHit]:
    hits: list[SearchHit] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        url = row.get("url")
        if not url:
            continue
        hits.append(
            SearchHit(
                title=str(row.get("title") or ""),
                url=str(url),
                content_snippet=str(row.get("content") or "")[:200],
            )
        )
    return hits
