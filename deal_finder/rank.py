from __future__ import annotations

import math

from loguru import logger

from .models import Candidate


def dedupe(candidates: list[Candidate]) -> list[Candidate]:
    """Keep the first candidate per (retailer, url)."""
    seen: dict[tuple[str, str], Candidate] = {}
    for c in candidates:
        if c.key in seen:
            logger.info("Skipped duplicate: {} - {}", c.retailer, c.display_name)
            continue
        seen[c.key] = c
    return list(seen.values())


def _sort_key(c: Candidate) -> tuple[int, float]:
    if c.price_per_unit is not None:
        return (0, c.price_per_unit)
    return (1, c.price if c.price is not None else math.inf)


def rank(candidates: list[Candidate]) -> list[Candidate]:
    """Best value first: per-unit price, then raw price, unpriced last."""
    return sorted(candidates, key=_sort_key)


def select_deals(candidates: list[Candidate], *, limit: int = 5) -> list[Candidate]:
    """Dedupe and rank, falling back to unpriced listings when nothing has a price."""
    priced = [c for c in candidates if c.price is not None]
    logger.info("Extracted prices for {} out of {} products", len(priced), len(candidates))
    pool = priced if priced else candidates
    return rank(dedupe(pool))[:limit]
