from __future__ import annotations

import httpx

from app.core.config import settings
from app.domain import ForecastFilter, NormalizedMarket, SourceTag

from .base import SourceAdapter

PLACEHOLDER_TITLE = "Prophet Arena - API pending"


class ProphetArenaAdapter(SourceAdapter):
    """Placeholder until Prophet Arena publishes a market API.

    Always yields one record with an unknown probability so the source shows up
    end to end; replace :meth:`_fetch_markets` once an endpoint exists.
    """

    source = SourceTag.PROPHET_ARENA
    requires_http = False

    def __init__(
        self,
        *,
        home_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.home_url = home_url or str(settings.prophet_arena_url)

    async def _fetch_markets(
        self, client: httpx.AsyncClient | None, market_filter: ForecastFilter
    ) -> list[NormalizedMarket]:
        return [
            NormalizedMarket(
                source=self.source,
                market_id="prophet-arena-placeholder",
                title=PLACEHOLDER_TITLE,
                url=self.home_url,
                implied_prob=None,
            )
        ]
