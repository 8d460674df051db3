from typing import Any

from pydantic import BaseModel, Field, field_validator

from .domain import SourceTag


class Forecast(BaseModel):
    source: SourceTag
    market_id: str
    title: str
    category: str | None = None
    implied_prob: float | None = Field(default=None, ge=0.0, le=1.0)
    close_time: str | None = None
    liquidity: float | None = Field(default=None, ge=0.0)
    url: str

    model_config = {"from_attributes": True}


class ForecastList(BaseModel):
    updated_at: str
    count: int
    results: list[Forecast]
    failed_sources: list[SourceTag] = Field(default_factory=list)


class DailyItem(BaseModel):
    source: str
    title: str
    url: str
    implied_prob: float | None = None
    close_time: str | None = None
    liquidity: float | None = None
    market_id: str | None = None

    model_config = {"from_attributes": True}

    @field_validator("implied_prob", "liquidity", mode="before")
    @classmethod
    def _coerce_numeric(cls, value: Any) -> float | None:
        if value is None:
            return None
        return float(value)


class DailySetResponse(BaseModel):
    date: str
    generated_at: str
    count: int
    items: list[DailyItem]


class DailySetRegenerated(DailySetResponse):
    regenerated: bool = True


class ErrorResponse(BaseModel):
    detail: str
