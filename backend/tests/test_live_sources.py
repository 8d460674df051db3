from __future__ import annotations

import asyncio

import pytest

from app.domain import ForecastFilter
from ingestion.kalshi import KalshiAdapter
from ingestion.polymarket import PolymarketAdapter


@pytest.mark.network
@pytest.mark.parametrize("adapter_cls", [PolymarketAdapter, KalshiAdapter])
def test_live_adapter_fetches_markets(adapter_cls):
    result = asyncio.run(adapter_cls(timeout=10.0).fetch_result(ForecastFilter(limit=5)))
    if not result.ok:
        pytest.skip(f"{result.source.value} API unavailable: {result.error}")

    assert result.markets, f"{result.source.value} returned no markets"
    assert len(result.markets) <= 5
    for market in result.markets:
        assert market.title
        assert market.url
        assert market.implied_prob is None or 0.0 <= market.implied_prob <= 1.0
