"""Key-value persistence for whole JSON values with expiration."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.errors import StoreError
from app.models import KeyValueEntry


class KeyValueStore(Protocol):
    """Opaque get/put-with-expiration contract the daily cache relies on."""

    def get(self, key: str) -> dict[str, Any] | None: ...

    def put(self, key: str, value: dict[str, Any], *, expire_after: timedelta | None = None) -> None: ...


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on read even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SqlKeyValueStore:
    """Store values in the ``kv_entries`` table; expired rows read as absent."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Key-value store operation failed")
            raise StoreError(f"key-value store unavailable: {exc}") from exc
        finally:
            session.close()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._session_scope() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return None
            if entry.expires_at is not None and _as_utc(entry.expires_at) <= self._clock():
                logger.info("Key {} expired at {}; dropping", key, entry.expires_at)
                session.delete(entry)
                return None
            return dict(entry.value)

    def put(self, key: str, value: dict[str, Any], *, expire_after: timedelta | None = None) -> None:
        now = self._clock()
        expires_at = now + expire_after if expire_after is not None else None
        with self._session_scope() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                entry = KeyValueEntry(key=key)
                session.add(entry)
            entry.value = value
            entry.expires_at = expires_at
            entry.updated_at = now


__all__ = ["KeyValueStore", "SqlKeyValueStore"]
