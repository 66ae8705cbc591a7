"""
Durable storage adapters.

- kv_store.py: total (never-raising) string key-value stores: SQLite-backed and in-memory
"""

from .kv_store import MemoryKeyValueStorage, SqliteKeyValueStorage

__all__ = ["MemoryKeyValueStorage", "SqliteKeyValueStorage"]
