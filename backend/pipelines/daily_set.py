"""Materialize and cache the shared daily set, one stored value per date key."""

from __future__ import annotations

import asyncio
import hmac
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import DailyItem, DailySet, SourceTag
from app.errors import AdminTokenNotConfiguredError, AuthorizationError
from app.repositories import KeyValueStore
from ingestion.aggregator import Aggregator
from ingestion.registry import available_sources

from .daily_selection import select_daily


def _isoformat_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class DailySetService:
    """Serve today's set from the store, generating it on a miss.

    There is no lock around generation: concurrent misses may each build a set
    and the last write wins. Readers converge because the stored value is only
    ever replaced whole.

    Store calls are blocking and run in a worker thread so the event loop keeps
    serving other requests.
    """

    def __init__(
        self,
        store: KeyValueStore,
        aggregator: Aggregator,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def today_key(self) -> str:
        return self._clock().astimezone(self._settings.daily_zone).date().isoformat()

    async def get_or_create(self, date_key: str) -> tuple[DailySet, bool]:
        """Return the stored set for ``date_key`` and whether this call created it."""

        existing = await asyncio.to_thread(self._store.get, date_key)
        if existing is not None:
            logger.info("Daily set cache hit for {}", date_key)
            return DailySet.from_payload(date_key, existing), False

        logger.info("Daily set cache miss for {}; generating", date_key)
        return await self._generate(date_key), True

    async def force_create(self, date_key: str, credential: str | None) -> DailySet:
        self.authorize(credential)
        logger.info("Forced regeneration of daily set {}", date_key)
        return await self._generate(date_key)

    def authorize(self, credential: str | None) -> None:
        expected = self._settings.admin_token
        if not expected:
            raise AdminTokenNotConfiguredError("Admin token is not configured on the server")
        supplied = (credential or "").encode("utf-8")
        if not hmac.compare_digest(supplied, expected.encode("utf-8")):
            raise AuthorizationError("Unauthorized")

    async def _generate(self, date_key: str) -> DailySet:
        cfg = self._settings
        aggregation = await self._aggregator.aggregate(
            available_sources(),
            limit_per_source=cfg.daily_candidate_limit,
        )
        if aggregation.failed_sources:
            logger.warning(
                "Daily set {} built without: {}",
                date_key,
                ", ".join(tag.value for tag in aggregation.failed_sources),
            )

        picks = select_daily(
            aggregation.results,
            target_count=cfg.daily_target_count,
            quota_per_source=cfg.daily_quota_per_source,
            source_priority=[SourceTag(tag) for tag in cfg.daily_source_priority],
        )
        daily = DailySet(
            date=date_key,
            generated_at=_isoformat_utc(self._clock()),
            items=[DailyItem.from_market(market) for market in picks],
        )
        await asyncio.to_thread(
            self._store.put,
            date_key,
            daily.to_payload(),
            expire_after=timedelta(days=cfg.daily_retention_days),
        )
        logger.info("Stored daily set {} with {} items", date_key, daily.count)
        return daily


__all__ = ["DailySetService"]
