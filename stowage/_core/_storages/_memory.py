from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from stowage._core._storages._base import AsyncBaseCacheStorage, AsyncBaseStore, cache_key_for
from stowage._core._storages._packing import pack, unpack
from stowage._core.models import CachedEntry, Request, Response
from stowage._synchronization import AsyncLock

logger = logging.getLogger("stowage.storages")

# cache key -> (packed entry head, body)
_StoreData = Dict[str, Tuple[bytes, bytes]]


class AsyncInMemoryStore(AsyncBaseStore):
    def __init__(self, name: str, storage: "AsyncInMemoryCacheStorage") -> None:
        super().__init__(name)
        self._storage = storage

    async def match(self, request: Request) -> Optional[CachedEntry]:
        self._ensure_usable()
        async with self._storage._lock:
            stored = self._storage._stores.get(self.name, {}).get(cache_key_for(request))
        if stored is None:
            return None
        return unpack(stored[0], body=stored[1])

    async def put(self, request: Request, response: Response) -> CachedEntry:
        self._ensure_usable()
        entry = CachedEntry(
            store=self.name,
            cache_key=cache_key_for(request),
            request=request,
            response=response,
        )
        async with self._storage._lock:
            store = self._storage._stores.setdefault(self.name, {})
            store[entry.cache_key] = (pack(entry), response.content)
        return entry

    async def delete(self, request: Request) -> bool:
        self._ensure_usable()
        async with self._storage._lock:
            store = self._storage._stores.get(self.name, {})
            return store.pop(cache_key_for(request), None) is not None

    async def entries(self) -> List[CachedEntry]:
        self._ensure_usable()
        async with self._storage._lock:
            stored = list(self._storage._stores.get(self.name, {}).values())

        result: List[CachedEntry] = []
        for head, body in stored:
            entry = unpack(head, body=body)
            if entry is not None:
                result.append(entry)
        return result


class AsyncInMemoryCacheStorage(AsyncBaseCacheStorage):
    """
    Named stores kept in process memory.

    Entries are packed on write and unpacked on read, so callers never share
    response objects with the storage.
    """

    def __init__(self) -> None:
        self._stores: Dict[str, _StoreData] = {}
        self._lock = AsyncLock()

    async def open(self, name: str) -> AsyncInMemoryStore:
        async with self._lock:
            self._stores.setdefault(name, {})
        return AsyncInMemoryStore(name, self)

    async def has(self, name: str) -> bool:
        async with self._lock:
            return name in self._stores

    async def delete(self, name: str) -> bool:
        async with self._lock:
            deleted = self._stores.pop(name, None) is not None
        if deleted:
            logger.debug(f"Deleted store {name!r}")
        return deleted

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self._stores)
