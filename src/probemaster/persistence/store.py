"""Asynchronous key/value stores.

A store holds JSON-able dict records grouped in named stores; each record
carries its key under ``"id"``. All operations are idempotent on retry.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, TypeVar

from probemaster.exceptions import ProbeMasterPersistenceError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Record = dict[str, Any]


class KeyValueStore(Protocol):
    """Structural interface of the durable store used by the persistence bridge."""

    async def get(self, store: str, key: str) -> Record | None: ...

    async def get_all(self, store: str) -> list[Record]: ...

    async def put(self, store: str, value: Record) -> None: ...

    async def clear(self, store: str) -> None: ...


def _record_key(value: Record) -> str:
    key = value.get("id")
    if key is None or key == "":
        raise ProbeMasterPersistenceError(f"record without id: {value!r}")
    return str(key)


class MemoryKeyValueStore:
    """Dict-backed store; records are copied on the way in and out."""

    def __init__(self) -> None:
        self._stores: dict[str, dict[str, Record]] = {}

    async def get(self, store: str, key: str) -> Record | None:
        value = self._stores.get(store, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def get_all(self, store: str) -> list[Record]:
        return [copy.deepcopy(value) for value in self._stores.get(store, {}).values()]

    async def put(self, store: str, value: Record) -> None:
        self._stores.setdefault(store, {})[_record_key(value)] = copy.deepcopy(value)

    async def clear(self, store: str) -> None:
        self._stores.pop(store, None)


class SqliteKeyValueStore:
    """SQLite-backed store with one ``records`` table.

    Blocking sqlite calls run on the default executor; a lock serializes
    them on the single connection.
    """

    CREATE_SQL = """
    CREATE TABLE IF NOT EXISTS records (
        store       TEXT NOT NULL,
        id          TEXT NOT NULL,
        value_json  TEXT NOT NULL,
        PRIMARY KEY (store, id)
    );
    """

    UPSERT_SQL = """
    INSERT INTO records (store, id, value_json) VALUES (?, ?, ?)
    ON CONFLICT (store, id) DO UPDATE SET value_json = excluded.value_json;
    """

    GET_SQL = "SELECT value_json FROM records WHERE store = ? AND id = ?;"
    GET_ALL_SQL = "SELECT value_json FROM records WHERE store = ? ORDER BY rowid;"
    CLEAR_SQL = "DELETE FROM records WHERE store = ?;"

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self._path, check_same_thread=False)
            conn.executescript(self.CREATE_SQL)
            self._conn = conn
            _logger.debug("Opened sqlite store at %s", self._path)
        return self._conn

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        def call() -> T:
            with self._lock:
                conn = self._connection()
                with conn:
                    return fn(conn)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, call)
        except sqlite3.Error as exc:
            raise ProbeMasterPersistenceError(f"sqlite store {self._path}: {exc}") from exc

    async def get(self, store: str, key: str) -> Record | None:
        row = await self._run(lambda conn: conn.execute(self.GET_SQL, (store, key)).fetchone())
        return json.loads(row[0]) if row is not None else None

    async def get_all(self, store: str) -> list[Record]:
        rows = await self._run(lambda conn: conn.execute(self.GET_ALL_SQL, (store,)).fetchall())
        return [json.loads(row[0]) for row in rows]

    async def put(self, store: str, value: Record) -> None:
        key = _record_key(value)
        payload = json.dumps(value)
        await self._run(lambda conn: conn.execute(self.UPSERT_SQL, (store, key, payload)))

    async def clear(self, store: str) -> None:
        await self._run(lambda conn: conn.execute(self.CLEAR_SQL, (store,)))

    async def aclose(self) -> None:
        def close() -> None:
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.get_running_loop().run_in_executor(None, close)
