"""Deduplicate, rank, and quota-balance candidates into the daily item list."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from app.domain import NormalizedMarket, SourceTag

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_title(title: str | None) -> str:
    return _WHITESPACE_RUN.sub(" ", (title or "").lower()).strip()


def dedupe_by_title(candidates: Iterable[NormalizedMarket]) -> list[NormalizedMarket]:
    """Keep the first market per normalized title, dropping blank titles."""

    seen: set[str] = set()
    unique: list[NormalizedMarket] = []
    for market in candidates:
        key = normalize_title(market.title)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(market)
    return unique


def select_daily(
    candidates: Sequence[NormalizedMarket],
    target_count: int,
    quota_per_source: int,
    source_priority: Sequence[SourceTag | str] = (SourceTag.POLYMARKET, SourceTag.KALSHI),
) -> list[NormalizedMarket]:
    """Pick the daily items.

    Each source in ``source_priority`` first gets up to ``quota_per_source``
    of its best-ranked markets; remaining slots are filled from the overall
    ranking. Quota picks come first in priority order, then top-up picks in
    rank order. Never pads when fewer than ``target_count`` candidates exist.
    """

    if target_count <= 0:
        return []

    pool = sorted(dedupe_by_title(candidates), key=lambda market: -(market.liquidity or 0.0))

    picks: list[NormalizedMarket] = []
    chosen: set[str] = set()

    for raw_tag in dict.fromkeys(source_priority):
        tag = SourceTag(raw_tag)
        taken = 0
        for market in pool:
            if len(picks) >= target_count or taken >= quota_per_source:
                break
            if market.source != tag:
                continue
            picks.append(market)
            chosen.add(normalize_title(market.title))
            taken += 1

    for market in pool:
        if len(picks) >= target_count:
            break
        key = normalize_title(market.title)
        if key in chosen:
            continue
        chosen.add(key)
        picks.append(market)

    return picks


__all__ = ["dedupe_by_title", "normalize_title", "select_daily"]
