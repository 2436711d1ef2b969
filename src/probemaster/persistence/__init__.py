"""Durable storage of readings, topology and area snapshots."""

from probemaster.persistence.bridge import FlushScheduler, PersistenceBridge
from probemaster.persistence.store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore

__all__ = [
    "FlushScheduler",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "PersistenceBridge",
    "SqliteKeyValueStore",
]
