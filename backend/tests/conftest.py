from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.db import Base, create_db_engine, create_session_factory
from app.domain import ForecastFilter, NormalizedMarket, SourceTag
from app.repositories import SqlKeyValueStore
from ingestion.base import SourceAdapter

FIXED_NOW = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    """Mutable clock so tests can move time forward explicitly."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class StaticAdapter(SourceAdapter):
    """Adapter returning canned markets, or raising to simulate an outage."""

    requires_http = False

    def __init__(
        self,
        source: SourceTag,
        markets: list[NormalizedMarket] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        super().__init__(timeout=1.0)
        self.source = source
        self.markets = list(markets or [])
        self.error = error
        self.calls = 0

    async def _fetch_markets(self, client, market_filter: ForecastFilter) -> list[NormalizedMarket]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.markets)


def make_market(
    title: str,
    *,
    source: SourceTag = SourceTag.POLYMARKET,
    liquidity: float | None = None,
    implied_prob: float | None = 0.5,
    category: str | None = None,
    market_id: str | None = None,
) -> NormalizedMarket:
    return NormalizedMarket(
        source=source,
        market_id=market_id or f"{source.value}-{title}",
        title=title,
        url=f"https://example.com/{source.value}/{market_id or title}",
        category=category,
        implied_prob=implied_prob,
        liquidity=liquidity,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'willow.db'}",
        admin_token="s3cret",
        daily_target_count=8,
        daily_quota_per_source=4,
        daily_source_priority="polymarket,kalshi",
        daily_retention_days=5,
        daily_timezone="UTC",
        adapter_timeout_seconds=1.0,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory(tmp_path):
    from app import models  # noqa: F401

    engine = create_db_engine(f"sqlite:///{tmp_path/'kv.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield create_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def kv_store(session_factory, clock) -> SqlKeyValueStore:
    return SqlKeyValueStore(session_factory, clock=clock)
