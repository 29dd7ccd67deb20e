from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional, Union

import anysqlite

from stowage._core._storages._base import AsyncBaseCacheStorage, AsyncBaseStore, cache_key_for
from stowage._core._storages._packing import pack, unpack
from stowage._core.models import CachedEntry, Request, Response
from stowage._synchronization import AsyncLock
from stowage._utils import ensure_cache_dict

logger = logging.getLogger("stowage.storages")


class AsyncSqliteStore(AsyncBaseStore):
    def __init__(self, name: str, storage: "AsyncSqliteCacheStorage") -> None:
        super().__init__(name)
        self._storage = storage

    async def match(self, request: Request) -> Optional[CachedEntry]:
        self._ensure_usable()
        async with self._storage._lock:
            connection = await self._storage._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT data, body FROM entries WHERE store = ? AND cache_key = ?",
                (self.name, cache_key_for(request)),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return unpack(row[0], body=row[1])

    async def put(self, request: Request, response: Response) -> CachedEntry:
        self._ensure_usable()
        entry = CachedEntry(
            store=self.name,
            cache_key=cache_key_for(request),
            request=request,
            response=response,
        )
        async with self._storage._lock:
            connection = await self._storage._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "INSERT OR IGNORE INTO stores (name, created_at) VALUES (?, ?)",
                (self.name, time.time()),
            )
            await cursor.execute(
                "INSERT OR REPLACE INTO entries (store, cache_key, data, body, created_at) VALUES (?, ?, ?, ?, ?)",
                (self.name, entry.cache_key, pack(entry), response.content, entry.created_at),
            )
            await connection.commit()
        return entry

    async def delete(self, request: Request) -> bool:
        self._ensure_usable()
        async with self._storage._lock:
            connection = await self._storage._ensure_connection()
            cursor = await connection.cursor()
            key = cache_key_for(request)
            await cursor.execute(
                "SELECT 1 FROM entries WHERE store = ? AND cache_key = ? LIMIT 1",
                (self.name, key),
            )
            deleted = await cursor.fetchone() is not None
            await cursor.execute("DELETE FROM entries WHERE store = ? AND cache_key = ?", (self.name, key))
            await connection.commit()
        return deleted

    async def entries(self) -> List[CachedEntry]:
        self._ensure_usable()
        async with self._storage._lock:
            connection = await self._storage._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT data, body FROM entries WHERE store = ? ORDER BY rowid",
                (self.name,),
            )
            rows = await cursor.fetchall()

        result: List[CachedEntry] = []
        for row in rows:
            entry = unpack(row[0], body=row[1])
            if entry is not None:
                result.append(entry)
        return result


class AsyncSqliteCacheStorage(AsyncBaseCacheStorage):
    """
    Named stores kept in a single sqlite database.

    Args:
        connection: An already opened `anysqlite` connection. When omitted, a database
            file is created under `.cache/stowage` on first use.
        database_path: Name of the database file used when no connection is given.
    """

    def __init__(
        self,
        *,
        connection: Optional[anysqlite.Connection] = None,
        database_path: Union[str, Path] = "stowage_cache.db",
    ) -> None:
        self.connection = connection
        self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
        self._initialized = False
        self._lock = AsyncLock()

    async def _ensure_connection(self) -> anysqlite.Connection:
        """Ensure connection is established and database is initialized."""
        if self.connection is None:
            parent = self.database_path.parent if self.database_path.parent != Path(".") else None
            full_path = ensure_cache_dict(parent) / self.database_path.name
            self.connection = await anysqlite.connect(str(full_path))
        if not self._initialized:
            await self._initialize_database()
            self._initialized = True
        return self.connection

    async def _initialize_database(self) -> None:
        """Initialize the database schema."""
        assert self.connection is not None
        cursor = await self.connection.cursor()

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS stores (
                name TEXT PRIMARY KEY,
                created_at REAL NOT NULL
            )
        """)

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                store TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                data BLOB NOT NULL,
                body BLOB NOT NULL,
                created_at REAL NOT NULL,
                PRIMARY KEY (store, cache_key)
            )
        """)

        await cursor.execute("CREATE INDEX IF NOT EXISTS idx_entries_cache_key ON entries(cache_key)")

        await self.connection.commit()

    async def open(self, name: str) -> AsyncSqliteStore:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "INSERT OR IGNORE INTO stores (name, created_at) VALUES (?, ?)",
                (name, time.time()),
            )
            await connection.commit()
        return AsyncSqliteStore(name, self)

    async def has(self, name: str) -> bool:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT 1 FROM stores WHERE name = ? LIMIT 1", (name,))
            return await cursor.fetchone() is not None

    async def delete(self, name: str) -> bool:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT 1 FROM stores WHERE name = ? LIMIT 1", (name,))
            deleted = await cursor.fetchone() is not None
            await cursor.execute("DELETE FROM entries WHERE store = ?", (name,))
            await cursor.execute("DELETE FROM stores WHERE name = ?", (name,))
            await connection.commit()
        if deleted:
            logger.debug(f"Deleted store {name!r}")
        return deleted

    async def keys(self) -> List[str]:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT name FROM stores ORDER BY rowid")
            return [row[0] for row in await cursor.fetchall()]

    async def match(self, request: Request) -> Optional[CachedEntry]:
        async with self._lock:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                """
                SELECT entries.data, entries.body FROM entries
                JOIN stores ON entries.store = stores.name
                WHERE entries.cache_key = ?
                ORDER BY stores.rowid
                LIMIT 1
                """,
                (cache_key_for(request),),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return unpack(row[0], body=row[1])

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

