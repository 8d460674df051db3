from __future__ import annotations

import asyncio

import pytest

from app.domain import SourceTag
from app.errors import InvalidRequestError
from ingestion import registry
from ingestion.aggregator import Aggregator
from ingestion.kalshi import KalshiAdapter

from conftest import StaticAdapter, make_market


@pytest.fixture
def isolated_registry(monkeypatch):
    monkeypatch.setattr(registry, "_ADAPTER_FACTORIES", dict(registry._ADAPTER_FACTORIES))
    return registry


def test_register_adapter_replaces_the_factory_used_by_the_default_aggregator(isolated_registry):
    replacement = StaticAdapter(
        SourceTag.PROPHET_ARENA,
        [make_market("Prophet pick", source=SourceTag.PROPHET_ARENA, liquidity=3)],
    )

    isolated_registry.register_adapter(SourceTag.PROPHET_ARENA, lambda: replacement)

    assert isolated_registry.build_adapter(SourceTag.PROPHET_ARENA) is replacement
    result = asyncio.run(Aggregator().aggregate([SourceTag.PROPHET_ARENA]))
    assert [market.title for market in result.results] == ["Prophet pick"]
    assert replacement.calls == 1


def test_build_adapter_rejects_unregistered_source(isolated_registry):
    del isolated_registry._ADAPTER_FACTORIES[SourceTag.KALSHI]

    with pytest.raises(InvalidRequestError):
        isolated_registry.build_adapter(SourceTag.KALSHI)
    assert SourceTag.KALSHI not in isolated_registry.available_sources()


def test_build_adapter_returns_provider_adapter():
    assert isinstance(registry.build_adapter(SourceTag.KALSHI), KalshiAdapter)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, [SourceTag.POLYMARKET, SourceTag.KALSHI, SourceTag.PROPHET_ARENA]),
        ("ALL", [SourceTag.POLYMARKET, SourceTag.KALSHI, SourceTag.PROPHET_ARENA]),
        ("kalshi, polymarket,kalshi", [SourceTag.KALSHI, SourceTag.POLYMARKET]),
        (" , ", [SourceTag.POLYMARKET, SourceTag.KALSHI, SourceTag.PROPHET_ARENA]),
    ],
)
def test_parse_sources(raw, expected):
    assert registry.parse_sources(raw) == expected


def test_parse_sources_names_unknown_values():
    with pytest.raises(InvalidRequestError) as excinfo:
        registry.parse_sources("kalshi,manifold")

    assert "manifold" in str(excinfo.value)
    assert "prophet-arena" in str(excinfo.value)


def test_parse_keywords_lowercases_and_drops_blanks():
    assert registry.parse_keywords("Fed, ,BITCOIN") == frozenset({"fed", "bitcoin"})
    assert registry.parse_keywords(None) == frozenset()
