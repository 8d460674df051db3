from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.config import settings
from app.domain import ForecastFilter, NormalizedMarket, SourceTag
from app.errors import UpstreamUnavailableError

from .base import SourceAdapter, clamp_probability, parse_non_negative

POLYMARKET_HOME = "https://polymarket.com"


def _as_list(value: Any) -> list[Any]:
    """Return value as a list when possible, decoding JSON strings."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


class PolymarketEventRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    slug: str | None = None


class PolymarketMarketPayload(BaseModel):
    """Subset of a Gamma ``/markets`` row that the adapter understands."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    question: str = ""
    slug: str | None = None
    category: str | None = None
    end_date: str | None = Field(default=None, alias="endDate")
    liquidity: Any = None
    liquidity_num: Any = Field(default=None, alias="liquidityNum")
    outcomes: list[str] = Field(default_factory=list)
    outcome_prices: list[Any] = Field(default_factory=list, alias="outcomePrices")
    clob_token_ids: list[str] = Field(default_factory=list, alias="clobTokenIds")
    events: list[PolymarketEventRef] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        if value is None or value == "":
            raise ValueError("market id is required")
        return str(value)

    @field_validator("question", mode="before")
    @classmethod
    def _strip_question(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("outcomes", "clob_token_ids", mode="before")
    @classmethod
    def _decode_string_list(cls, value: Any) -> list[str]:
        return [str(item) for item in _as_list(value)]

    @field_validator("outcome_prices", "events", mode="before")
    @classmethod
    def _decode_list(cls, value: Any) -> list[Any]:
        return _as_list(value)

    def yes_index(self) -> int:
        for index, outcome in enumerate(self.outcomes):
            if outcome.strip().lower() == "yes":
                return index
        return 0

    def yes_token_id(self) -> str | None:
        index = self.yes_index()
        if index < len(self.clob_token_ids):
            return self.clob_token_ids[index] or None
        return None

    def yes_price(self) -> Any:
        index = self.yes_index()
        if index < len(self.outcome_prices):
            return self.outcome_prices[index]
        return None

    def market_url(self) -> str:
        event_slug = next((event.slug for event in self.events if event.slug), None)
        slug = event_slug or self.slug
        return f"{POLYMARKET_HOME}/event/{slug}" if slug else POLYMARKET_HOME


def to_normalized(
    payload: PolymarketMarketPayload, midpoints: dict[str, Any] | None = None
) -> NormalizedMarket:
    """Map a Gamma market onto the canonical schema.

    The CLOB midpoint of the "Yes" token is preferred; the Gamma outcome price
    is the fallback when no midpoint is available.
    """

    raw_prob: Any = None
    token_id = payload.yes_token_id()
    if midpoints and token_id:
        raw_prob = midpoints.get(token_id)
    if clamp_probability(raw_prob) is None:
        raw_prob = payload.yes_price()

    liquidity = payload.liquidity_num if payload.liquidity_num is not None else payload.liquidity

    return NormalizedMarket(
        source=SourceTag.POLYMARKET,
        market_id=payload.id,
        title=payload.question,
        url=payload.market_url(),
        category=payload.category,
        implied_prob=clamp_probability(raw_prob),
        close_time=payload.end_date,
        liquidity=parse_non_negative(liquidity),
    )


class PolymarketAdapter(SourceAdapter):
    """Open Polymarket markets from Gamma, priced by CLOB midpoints."""

    source = SourceTag.POLYMARKET
    # Share of the call's remaining budget granted to the CLOB midpoint lookup.
    midpoint_budget_share: float = 0.5

    def __init__(
        self,
        *,
        gamma_url: str | None = None,
        clob_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.gamma_url = (gamma_url or str(settings.polymarket_gamma_url)).rstrip("/")
        self.clob_url = (clob_url or str(settings.polymarket_clob_url)).rstrip("/")

    async def _fetch_markets(
        self, client: httpx.AsyncClient, market_filter: ForecastFilter
    ) -> list[NormalizedMarket]:
        params = {
            "active": "true",
            "closed": "false",
            "order": "liquidityNum",
            "ascending": "false",
            "limit": self._upstream_limit(market_filter),
        }
        logger.info("Polymarket GET /markets params={}", params)
        response = await client.get(f"{self.gamma_url}/markets", params=params)
        raw = self._json_or_raise(response)
        if isinstance(raw, dict):
            raw = raw.get("data") or raw.get("markets")
        if not isinstance(raw, list):
            raise UpstreamUnavailableError(self.source.value, "unexpected /markets payload shape")

        payloads: list[PolymarketMarketPayload] = []
        for row in raw:
            try:
                payloads.append(PolymarketMarketPayload.model_validate(row))
            except ValidationError as exc:
                logger.debug("Skipping malformed Polymarket market: {}", exc)

        midpoints = await self._fetch_midpoints(client, payloads)
        return [to_normalized(payload, midpoints) for payload in payloads]

    async def _fetch_midpoints(
        self, client: httpx.AsyncClient, payloads: list[PolymarketMarketPayload]
    ) -> dict[str, Any]:
        token_ids = [token for token in (p.yes_token_id() for p in payloads) if token]
        if not token_ids:
            return {}
        body = [{"token_id": token_id} for token_id in token_ids]
        budget = self._remaining_budget() * self.midpoint_budget_share
        try:
            response = await asyncio.wait_for(
                client.post(f"{self.clob_url}/midpoints", json=body), timeout=budget
            )
            data = self._json_or_raise(response)
        except asyncio.TimeoutError:
            logger.warning(
                "Polymarket midpoint lookup exceeded {:.2f}s, using outcome prices", budget
            )
            return {}
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.warning("Polymarket midpoint lookup failed, using outcome prices: {}", exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Polymarket midpoint lookup returned {}; ignoring", type(data).__name__)
            return {}
        return data


__all__ = ["PolymarketAdapter", "PolymarketMarketPayload", "to_normalized"]
