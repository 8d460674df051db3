from __future__ import annotations

import re
from typing import Annotated

from fastapi import Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger

from ingestion.aggregator import Aggregator
from ingestion.registry import parse_keywords, parse_sources
from pipelines.daily_set import DailySetService

from . import schemas
from .core.config import settings
from .db import SessionLocal, init_db
from .domain import DailySet
from .errors import (
    AdminTokenNotConfiguredError,
    AuthorizationError,
    InvalidRequestError,
    StoreError,
)
from .repositories import SqlKeyValueStore

app = FastAPI(title="Willow Odds API", version="0.1.0", debug=settings.debug)

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


@app.on_event("startup")
def on_startup() -> None:
    """Create the key-value table when the API boots."""

    init_db()


@app.exception_handler(InvalidRequestError)
async def _invalid_request(_: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(AdminTokenNotConfiguredError)
async def _admin_not_configured(_: Request, exc: AdminTokenNotConfiguredError) -> JSONResponse:
    logger.error("Forced regeneration requested but ADMIN_TOKEN is not set")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def _unauthorized(_: Request, exc: AuthorizationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def _store_unavailable(_: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _aggregator() -> Aggregator:
    """Provide a stateless aggregator over the registered adapters."""

    return Aggregator()


def _kv_store() -> SqlKeyValueStore:
    return SqlKeyValueStore(SessionLocal)


def _daily_service(
    store: SqlKeyValueStore = Depends(_kv_store),
    aggregator: Aggregator = Depends(_aggregator),
) -> DailySetService:
    """Provide the daily set service wired to the shared store."""

    return DailySetService(store, aggregator, settings=settings)


def _admin_credential(
    x_admin_token: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    if x_admin_token:
        return x_admin_token
    return _BEARER_PREFIX.sub("", authorization or "")


def _daily_payload(daily: DailySet) -> schemas.DailySetResponse:
    return schemas.DailySetResponse(
        date=daily.date,
        generated_at=daily.generated_at,
        count=daily.count,
        items=[schemas.DailyItem.model_validate(item) for item in daily.items],
    )


@app.get("/forecasts", response_model=schemas.ForecastList, tags=["forecasts"])
async def list_forecasts(
    *,
    source: Annotated[str, Query(description="Source tag or 'all'", example="all")] = "all",
    q: Annotated[str | None, Query(description="Comma-separated keywords")] = None,
    limit: Annotated[int, Query(ge=1, le=200, description="Per-source result cap")] = 50,
    aggregator: Aggregator = Depends(_aggregator),
):
    """Merge markets from the requested sources, ranked by liquidity."""

    tags = parse_sources(source)
    result = await aggregator.aggregate(tags, parse_keywords(q), limit)
    return schemas.ForecastList(
        updated_at=result.updated_at,
        count=result.count,
        results=[schemas.Forecast.model_validate(market) for market in result.results],
        failed_sources=result.failed_sources,
    )


@app.get(
    "/daily",
    response_model=schemas.DailySetResponse,
    responses={201: {"model": schemas.DailySetResponse}},
    tags=["daily"],
)
async def get_daily(response: Response, service: DailySetService = Depends(_daily_service)):
    """Return today's shared set, creating it on the first read of the day."""

    daily, created = await service.get_or_create(service.today_key())
    if created:
        response.status_code = status.HTTP_201_CREATED
    return _daily_payload(daily)


@app.post(
    "/daily",
    response_model=schemas.DailySetRegenerated,
    responses={401: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
    tags=["daily"],
)
async def regenerate_daily(
    credential: str = Depends(_admin_credential),
    service: DailySetService = Depends(_daily_service),
):
    """Admin-only: rebuild today's set and overwrite the stored value."""

    daily = await service.force_create(service.today_key(), credential)
    return schemas.DailySetRegenerated(**_daily_payload(daily).model_dump(), regenerated=True)
