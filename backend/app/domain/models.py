"""Typed domain representations used across ingestion, selection, and APIs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SourceTag(str, Enum):
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"
    PROPHET_ARENA = "prophet-arena"


@dataclass(slots=True, frozen=True)
class ForecastFilter:
    """Keyword and size constraints every source adapter applies itself."""

    keywords: frozenset[str] = frozenset()
    limit: int = 50


@dataclass(slots=True)
class NormalizedMarket:
    """Provider-agnostic market snapshot produced by a source adapter."""

    source: SourceTag
    market_id: str
    title: str
    url: str
    category: str | None = None
    implied_prob: float | None = None
    close_time: str | None = None
    liquidity: float | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["source"] = self.source.value
        return payload


@dataclass(slots=True)
class DailyItem:
    """Slim projection of a market as stored in the daily set."""

    source: str
    title: str
    url: str
    implied_prob: float | None
    close_time: str | None
    liquidity: float | None
    market_id: str | None

    @classmethod
    def from_market(cls, market: NormalizedMarket) -> "DailyItem":
        return cls(
            source=market.source.value,
            title=market.title,
            url=market.url,
            implied_prob=market.implied_prob,
            close_time=market.close_time,
            liquidity=market.liquidity,
            market_id=market.market_id,
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DailyItem":
        return cls(
            source=str(payload.get("source") or ""),
            title=str(payload.get("title") or ""),
            url=str(payload.get("url") or ""),
            implied_prob=payload.get("implied_prob"),
            close_time=payload.get("close_time"),
            liquidity=payload.get("liquidity"),
            market_id=payload.get("market_id"),
        )


@dataclass(slots=True)
class DailySet:
    """The shared selection of items published for one calendar day."""

    date: str
    generated_at: str
    items: list[DailyItem] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    def to_payload(self) -> dict[str, Any]:
        """Value persisted under the date key; the date itself is the key."""

        return {
            "generated_at": self.generated_at,
            "count": self.count,
            "items": [asdict(item) for item in self.items],
        }

    @classmethod
    def from_payload(cls, date: str, payload: dict[str, Any]) -> "DailySet":
        raw_items = payload.get("items")
        items = [
            DailyItem.from_payload(item)
            for item in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(item, dict)
        ]
        return cls(date=date, generated_at=str(payload.get("generated_at") or ""), items=items)
