"""Source adapter registry and source-parameter parsing."""

from __future__ import annotations

from collections.abc import Callable

from app.domain import SourceTag
from app.errors import InvalidRequestError

from .base import SourceAdapter
from .kalshi import KalshiAdapter
from .polymarket import PolymarketAdapter
from .prophet_arena import ProphetArenaAdapter

ALL_SOURCES = "all"

_ADAPTER_FACTORIES: dict[SourceTag, Callable[[], SourceAdapter]] = {
    SourceTag.POLYMARKET: PolymarketAdapter,
    SourceTag.KALSHI: KalshiAdapter,
    SourceTag.PROPHET_ARENA: ProphetArenaAdapter,
}


def register_adapter(tag: SourceTag, factory: Callable[[], SourceAdapter]) -> None:
    _ADAPTER_FACTORIES[tag] = factory


def available_sources() -> list[SourceTag]:
    return list(_ADAPTER_FACTORIES)


def build_adapter(tag: SourceTag) -> SourceAdapter:
    try:
        factory = _ADAPTER_FACTORIES[tag]
    except KeyError as exc:
        raise InvalidRequestError(f"No adapter registered for source '{tag.value}'") from exc
    return factory()


def parse_sources(raw: str | None) -> list[SourceTag]:
    """Resolve ``all`` or a comma-separated list of tags; unknown tags are rejected."""

    value = (raw or ALL_SOURCES).strip().lower()
    if not value or value == ALL_SOURCES:
        return available_sources()

    tags: list[SourceTag] = []
    unknown: list[str] = []
    for token in (part.strip() for part in value.split(",")):
        if not token:
            continue
        try:
            tag = SourceTag(token)
        except ValueError:
            unknown.append(token)
            continue
        if tag not in tags:
            tags.append(tag)

    if unknown:
        allowed = ", ".join([ALL_SOURCES, *(tag.value for tag in available_sources())])
        raise InvalidRequestError(
            f"Unknown source(s): {', '.join(unknown)}. Allowed values: {allowed}"
        )
    if not tags:
        return available_sources()
    return tags


def parse_keywords(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(token.strip().lower() for token in raw.split(",") if token.strip())


__all__ = [
    "ALL_SOURCES",
    "available_sources",
    "build_adapter",
    "parse_keywords",
    "parse_sources",
    "register_adapter",
]
