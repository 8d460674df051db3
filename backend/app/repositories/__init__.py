"""Repository abstractions for database interactions."""

from .kv_store import KeyValueStore, SqlKeyValueStore

__all__ = [
    "KeyValueStore",
    "SqlKeyValueStore",
]
