from __future__ import annotations

import asyncio
import json
import threading
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.domain import SourceTag
from app.errors import AdminTokenNotConfiguredError, AuthorizationError
from ingestion.aggregator import Aggregator
from pipelines.daily_set import DailySetService

from conftest import StaticAdapter, make_market

DATE_KEY = "2025-03-14"


def _adapters(poly_titles=("Poly A", "Poly B"), kalshi_titles=("Kalshi A",)):
    return {
        SourceTag.POLYMARKET: StaticAdapter(
            SourceTag.POLYMARKET,
            [make_market(title, liquidity=10 - i) for i, title in enumerate(poly_titles)],
        ),
        SourceTag.KALSHI: StaticAdapter(
            SourceTag.KALSHI,
            [make_market(title, source=SourceTag.KALSHI, liquidity=5) for title in kalshi_titles],
        ),
        SourceTag.PROPHET_ARENA: StaticAdapter(SourceTag.PROPHET_ARENA, error=httpx.ConnectError("n/a")),
    }


@pytest.fixture
def adapters():
    return _adapters()


@pytest.fixture
def service(kv_store, adapters, test_settings, clock) -> DailySetService:
    aggregator = Aggregator(adapter_factory=adapters.__getitem__, timeout=1.0, clock=clock)
    return DailySetService(kv_store, aggregator, settings=test_settings, clock=clock)


def _as_json(daily) -> str:
    return json.dumps({"date": daily.date, **daily.to_payload()}, sort_keys=True)


def test_get_or_create_generates_then_serves_cached_value(service, kv_store, adapters):
    created, was_created = asyncio.run(service.get_or_create(DATE_KEY))
    cached, was_created_again = asyncio.run(service.get_or_create(DATE_KEY))

    assert was_created is True
    assert was_created_again is False
    assert _as_json(created) == _as_json(cached)
    assert adapters[SourceTag.POLYMARKET].calls == 1
    assert [item.title for item in created.items] == ["Poly A", "Poly B", "Kalshi A"]
    assert created.count == 3
    assert kv_store.get(DATE_KEY)["count"] == 3


def test_cached_value_is_not_regenerated_when_upstream_changes(service, adapters):
    first, _ = asyncio.run(service.get_or_create(DATE_KEY))
    adapters[SourceTag.POLYMARKET].markets = [make_market("Brand new", liquidity=999)]

    second, created = asyncio.run(service.get_or_create(DATE_KEY))

    assert created is False
    assert _as_json(first) == _as_json(second)


def test_empty_candidate_pool_is_still_persisted(kv_store, test_settings, clock):
    failing = {
        tag: StaticAdapter(tag, error=httpx.ConnectError("down"))
        for tag in (SourceTag.POLYMARKET, SourceTag.KALSHI, SourceTag.PROPHET_ARENA)
    }
    aggregator = Aggregator(adapter_factory=failing.__getitem__, timeout=1.0, clock=clock)
    service = DailySetService(kv_store, aggregator, settings=test_settings, clock=clock)

    daily, created = asyncio.run(service.get_or_create(DATE_KEY))

    assert created is True
    assert daily.items == []
    assert kv_store.get(DATE_KEY) == {"generated_at": daily.generated_at, "count": 0, "items": []}


def test_set_expires_after_retention_window(service, clock):
    asyncio.run(service.get_or_create(DATE_KEY))

    clock.now = clock.now + timedelta(days=5, seconds=1)
    _, created = asyncio.run(service.get_or_create(DATE_KEY))

    assert created is True


def test_force_create_with_wrong_token_leaves_store_untouched(service, kv_store, adapters):
    asyncio.run(service.get_or_create(DATE_KEY))
    before = kv_store.get(DATE_KEY)
    calls_before = adapters[SourceTag.POLYMARKET].calls

    with pytest.raises(AuthorizationError):
        asyncio.run(service.force_create(DATE_KEY, "wrong"))
    with pytest.raises(AuthorizationError):
        asyncio.run(service.force_create(DATE_KEY, None))

    assert kv_store.get(DATE_KEY) == before
    assert adapters[SourceTag.POLYMARKET].calls == calls_before


def test_force_create_without_configured_token_is_rejected(service, test_settings, adapters):
    test_settings.admin_token = None

    with pytest.raises(AdminTokenNotConfiguredError):
        asyncio.run(service.force_create(DATE_KEY, "anything"))
    assert adapters[SourceTag.POLYMARKET].calls == 0


def test_force_create_overwrites_existing_value(service, kv_store, adapters, clock):
    original, _ = asyncio.run(service.get_or_create(DATE_KEY))
    adapters[SourceTag.POLYMARKET].markets = [make_market("Fresh pick", liquidity=50)]
    clock.now = clock.now + timedelta(hours=1)

    regenerated = asyncio.run(service.force_create(DATE_KEY, "s3cret"))

    assert regenerated.generated_at != original.generated_at
    assert regenerated.items[0].title == "Fresh pick"
    assert kv_store.get(DATE_KEY) == regenerated.to_payload()


class ThreadRecordingStore:
    """Delegating store that notes which thread each call ran on."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.threads: list[int] = []

    def get(self, key):
        self.threads.append(threading.get_ident())
        return self._inner.get(key)

    def put(self, key, value, *, expire_after=None):
        self.threads.append(threading.get_ident())
        self._inner.put(key, value, expire_after=expire_after)


def test_store_calls_run_off_the_event_loop_thread(kv_store, adapters, test_settings, clock):
    store = ThreadRecordingStore(kv_store)
    aggregator = Aggregator(adapter_factory=adapters.__getitem__, timeout=1.0, clock=clock)
    service = DailySetService(store, aggregator, settings=test_settings, clock=clock)

    async def run():
        loop_thread = threading.get_ident()
        await service.get_or_create(DATE_KEY)
        return loop_thread

    loop_thread = asyncio.run(run())

    assert len(store.threads) == 2
    assert loop_thread not in store.threads


def test_today_key_uses_configured_timezone(kv_store, test_settings):
    late_evening_utc = datetime(2025, 3, 15, 2, 0, tzinfo=timezone.utc)
    aggregator = Aggregator(adapter_factory=_adapters().__getitem__)

    utc_service = DailySetService(kv_store, aggregator, settings=test_settings, clock=lambda: late_evening_utc)
    assert utc_service.today_key() == "2025-03-15"

    test_settings.daily_timezone = "America/New_York"
    ny_service = DailySetService(kv_store, aggregator, settings=test_settings, clock=lambda: late_evening_utc)
    assert ny_service.today_key() == "2025-03-14"
