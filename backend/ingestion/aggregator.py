"""Concurrent fan-out across source adapters with settle-all semantics."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger

from app.core.config import settings
from app.domain import ForecastFilter, NormalizedMarket, SourceTag

from .base import SourceAdapter, SourceFetchResult
from .registry import build_adapter


def _isoformat_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def rank_by_liquidity(markets: Iterable[NormalizedMarket]) -> list[NormalizedMarket]:
    """Stable sort, highest liquidity first; missing liquidity sorts after every value."""

    return sorted(
        markets,
        key=lambda market: (market.liquidity is None, -(market.liquidity or 0.0)),
    )


@dataclass(slots=True)
class AggregationResult:
    updated_at: str
    results: list[NormalizedMarket] = field(default_factory=list)
    failed_sources: list[SourceTag] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)


class Aggregator:
    """Fetch the requested sources concurrently and merge whatever succeeded."""

    def __init__(
        self,
        *,
        adapter_factory: Callable[[SourceTag], SourceAdapter] = build_adapter,
        timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._adapter_factory = adapter_factory
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def aggregate(
        self,
        sources: Iterable[SourceTag],
        keywords: Iterable[str] = (),
        limit_per_source: int = 50,
    ) -> AggregationResult:
        tags = list(dict.fromkeys(sources))
        market_filter = ForecastFilter(
            keywords=frozenset(keyword.lower() for keyword in keywords if keyword),
            limit=limit_per_source,
        )

        tasks = [
            asyncio.wait_for(self._bounded_adapter(tag).fetch_result(market_filter), timeout=self.timeout)
            for tag in tags
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        merged: list[NormalizedMarket] = []
        failed: list[SourceTag] = []
        for tag, outcome in zip(tags, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.warning("Source {} timed out after {}s", tag.value, self.timeout)
                failed.append(tag)
            elif isinstance(outcome, BaseException):
                logger.opt(exception=outcome).warning("Source {} raised unexpectedly", tag.value)
                failed.append(tag)
            elif isinstance(outcome, SourceFetchResult) and not outcome.ok:
                failed.append(tag)
            else:
                merged.extend(outcome.markets)

        if tags and len(failed) == len(tags):
            logger.warning("All {} requested sources failed; returning no results", len(tags))

        ranked = rank_by_liquidity(merged)
        logger.info(
            "Aggregated {} markets from {} sources ({} failed)",
            len(ranked),
            len(tags),
            len(failed),
        )
        return AggregationResult(
            updated_at=_isoformat_utc(self._clock()),
            results=ranked,
            failed_sources=failed,
        )

    def _bounded_adapter(self, tag: SourceTag) -> SourceAdapter:
        # Adapters budget their secondary lookups against their own timeout,
        # which must not outlive the outer wait_for.
        adapter = self._adapter_factory(tag)
        adapter.timeout = min(adapter.timeout, self.timeout)
        return adapter


__all__ = ["AggregationResult", "Aggregator", "rank_by_liquidity"]
