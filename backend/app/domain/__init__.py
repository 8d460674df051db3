"""Domain models representing normalized market data and the daily set."""

from .models import DailyItem, DailySet, ForecastFilter, NormalizedMarket, SourceTag

__all__ = [
    "DailyItem",
    "DailySet",
    "ForecastFilter",
    "NormalizedMarket",
    "SourceTag",
]
