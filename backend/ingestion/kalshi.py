from __future__ import annotations

import math
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from app.core.config import settings
from app.domain import ForecastFilter, NormalizedMarket, SourceTag
from app.errors import UpstreamUnavailableError

from .base import SourceAdapter, clamp_probability, parse_non_negative

KALSHI_MARKETS_HOME = "https://kalshi.com/markets"
CENTS_PER_DOLLAR = 100.0
# Kalshi rejects page sizes above this.
MAX_PAGE_SIZE = 1000


def _numeric(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    return numeric if math.isfinite(numeric) else None


def _cents_to_unit(cents: Any) -> float | None:
    numeric = _numeric(cents)
    return numeric / CENTS_PER_DOLLAR if numeric is not None else None


class KalshiMarketPayload(BaseModel):
    """Subset of a Kalshi ``/markets`` row; prices are in cents unless suffixed ``_dollars``."""

    model_config = ConfigDict(extra="ignore")

    ticker: str
    title: str = ""
    category: str | None = None
    close_time: str | None = None
    last_price: Any = None
    last_price_dollars: Any = None
    yes_bid: Any = None
    yes_ask: Any = None
    yes_price: Any = None
    liquidity: Any = None
    liquidity_dollars: Any = None

    @field_validator("ticker")
    @classmethod
    def _require_ticker(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("ticker is required")
        return value.strip()

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> str:
        return str(value or "").strip()

    def probability_units(self) -> float | None:
        """Yes price as a fraction of one dollar, before clamping.

        Kalshi reports ``last_price`` as 0 for markets that never traded, so a
        non-positive last price counts as missing and the quote midpoint wins.
        """

        last = _cents_to_unit(self.last_price)
        if last is not None and last > 0:
            return last
        last_dollars = _numeric(self.last_price_dollars)
        if last_dollars is not None and last_dollars > 0:
            return last_dollars
        bid = _cents_to_unit(self.yes_bid)
        ask = _cents_to_unit(self.yes_ask)
        if bid is not None and ask is not None:
            return (bid + ask) / 2.0
        return _cents_to_unit(self.yes_price)

    def liquidity_dollars_value(self) -> float | None:
        dollars = _numeric(self.liquidity_dollars)
        if dollars is not None:
            return dollars
        return _cents_to_unit(self.liquidity)


def to_normalized(payload: KalshiMarketPayload) -> NormalizedMarket:
    return NormalizedMarket(
        source=SourceTag.KALSHI,
        market_id=payload.ticker,
        title=payload.title,
        url=f"{KALSHI_MARKETS_HOME}/{payload.ticker.lower()}",
        category=payload.category,
        implied_prob=clamp_probability(payload.probability_units()),
        close_time=payload.close_time,
        liquidity=parse_non_negative(payload.liquidity_dollars_value()),
    )


class KalshiAdapter(SourceAdapter):
    """Open Kalshi markets from the public trade API."""

    source = SourceTag.KALSHI

    def __init__(
        self,
        *,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.base_url = (base_url or str(settings.kalshi_base_url)).rstrip("/")

    async def _fetch_markets(
        self, client: httpx.AsyncClient, market_filter: ForecastFilter
    ) -> list[NormalizedMarket]:
        params = {
            "status": "open",
            "limit": min(self._upstream_limit(market_filter), MAX_PAGE_SIZE),
        }
        logger.info("Kalshi GET /markets params={}", params)
        response = await client.get(f"{self.base_url}/markets", params=params)
        payload = self._json_or_raise(response)
        rows = payload.get("markets") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise UpstreamUnavailableError(self.source.value, "response is missing a markets list")

        markets: list[NormalizedMarket] = []
        for row in rows:
            try:
                markets.append(to_normalized(KalshiMarketPayload.model_validate(row)))
            except ValidationError as exc:
                logger.debug("Skipping malformed Kalshi market: {}", exc)
        return markets


__all__ = ["KalshiAdapter", "KalshiMarketPayload", "to_normalized"]
