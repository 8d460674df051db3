"""Shared contract and helpers for per-provider source adapters."""

from __future__ import annotations

import asyncio
import json
import math
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from app.core.config import settings
from app.domain import ForecastFilter, NormalizedMarket, SourceTag
from app.errors import UpstreamUnavailableError


def clamp_probability(value: Any) -> float | None:
    """Coerce an upstream price into [0, 1]; unparseable or non-finite values become None."""

    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return min(1.0, max(0.0, numeric))


def parse_non_negative(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return max(0.0, numeric)


def matches_keywords(market: NormalizedMarket, keywords: Iterable[str]) -> bool:
    """True when any keyword is a case-insensitive substring of title + category."""

    needles = [keyword.lower() for keyword in keywords if keyword]
    if not needles:
        return True
    haystack = f"{market.title} {market.category or ''}".lower()
    return any(needle in haystack for needle in needles)


@dataclass(slots=True)
class SourceFetchResult:
    """Outcome of one adapter call, kept for partial-failure accounting."""

    source: SourceTag
    markets: list[NormalizedMarket] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SourceAdapter(ABC):
    """Turn one provider's listing into normalized markets without ever raising.

    Subclasses implement :meth:`_fetch_markets`, which may raise freely; the
    public entry points catch every upstream failure and degrade to an empty
    result.
    """

    source: SourceTag
    # Keyword filtering happens after the upstream call, so filtered requests
    # scan a wider page to still fill ``limit``.
    keyword_scan_size: int = 200
    requires_http: bool = True

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self._deadline: float | None = None

    @abstractmethod
    async def _fetch_markets(
        self, client: httpx.AsyncClient | None, market_filter: ForecastFilter
    ) -> list[NormalizedMarket]:
        """Fetch and normalize provider markets; may raise on upstream failure."""

    async def fetch(self, market_filter: ForecastFilter) -> list[NormalizedMarket]:
        return (await self.fetch_result(market_filter)).markets

    async def fetch_result(self, market_filter: ForecastFilter) -> SourceFetchResult:
        self._deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            if self._client is not None or not self.requires_http:
                markets = await self._fetch_markets(self._client, market_filter)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    markets = await self._fetch_markets(client, market_filter)
        except (
            httpx.HTTPError,
            json.JSONDecodeError,
            ValidationError,
            UpstreamUnavailableError,
        ) as exc:
            logger.warning("Source {} unavailable: {}", self.source.value, exc)
            return SourceFetchResult(source=self.source, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("Source {} failed while normalizing markets", self.source.value)
            return SourceFetchResult(source=self.source, error=str(exc) or type(exc).__name__)

        selected = [
            market
            for market in markets
            if market.title and matches_keywords(market, market_filter.keywords)
        ]
        return SourceFetchResult(source=self.source, markets=selected[: max(market_filter.limit, 0)])

    def _remaining_budget(self) -> float:
        """Seconds left of this call's ``timeout``; the full timeout outside a call."""

        if self._deadline is None:
            return self.timeout
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    def _upstream_limit(self, market_filter: ForecastFilter) -> int:
        limit = max(market_filter.limit, 1)
        if market_filter.keywords:
            return max(limit, self.keyword_scan_size)
        return limit

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> Any:
        response.raise_for_status()
        return response.json()


__all__ = [
    "SourceAdapter",
    "SourceFetchResult",
    "clamp_probability",
    "matches_keywords",
    "parse_non_negative",
]
