from __future__ import annotations

import abc
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from stowage._core.models import CachedEntry, Request, RequestDescriptor, Response
from stowage._exceptions import StowageError


class AsyncBaseStore(abc.ABC):
    """
    A handle to one named store.

    Handles are obtained from `AsyncBaseCacheStorage.open` and stay usable until
    `release` is called.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._released = False

    def _ensure_usable(self) -> None:
        if self._released:
            raise StowageError(f"Store handle {self.name!r} was already released")

    @abc.abstractmethod
    async def match(self, request: Request) -> Optional[CachedEntry]:
        """
        Look up the entry stored for the request's method and URL.
        """
        pass

    @abc.abstractmethod
    async def put(self, request: Request, response: Response) -> CachedEntry:
        """
        Store the response for the request, replacing any previous entry for the same key.

        The response body must already be read.
        """
        pass

    @abc.abstractmethod
    async def delete(self, request: Request) -> bool:
        pass

    @abc.abstractmethod
    async def entries(self) -> List[CachedEntry]:
        pass

    async def keys(self) -> List[Request]:
        return [entry.request for entry in await self.entries()]

    async def release(self) -> None:
        self._released = True


class AsyncBaseCacheStorage(abc.ABC):
    """
    The collection of every named store known to the worker.
    """

    @abc.abstractmethod
    async def open(self, name: str) -> AsyncBaseStore:
        """
        Return a handle to the store called `name`, creating the store if it does not exist.
        """
        pass

    @abc.abstractmethod
    async def has(self, name: str) -> bool:
        pass

    @abc.abstractmethod
    async def delete(self, name: str) -> bool:
        """
        Delete the store and all its entries. Returns False if there was no such store.
        """
        pass

    @abc.abstractmethod
    async def keys(self) -> List[str]:
        """
        Names of all existing stores, in creation order.
        """
        pass

    async def match(self, request: Request) -> Optional[CachedEntry]:
        """
        Look the request up in every store, in creation order, and return the first hit.
        """
        for name in await self.keys():
            async with self.open_store(name) as store:
                entry = await store.match(request)
            if entry is not None:
                return entry
        return None

    @asynccontextmanager
    async def open_store(self, name: str) -> AsyncIterator[AsyncBaseStore]:
        store = await self.open(name)
        try:
            yield store
        finally:
            await store.release()

    async def close(self) -> None:
        return


def cache_key_for(request: Request) -> str:
    return RequestDescriptor.from_request(request).cache_key
