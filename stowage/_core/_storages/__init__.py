from stowage._core._storages._base import AsyncBaseCacheStorage, AsyncBaseStore
from stowage._core._storages._memory import AsyncInMemoryCacheStorage, AsyncInMemoryStore
from stowage._core._storages._sqlite import AsyncSqliteCacheStorage, AsyncSqliteStore

__all__ = (
    "AsyncBaseCacheStorage",
    "AsyncBaseStore",
    "AsyncInMemoryCacheStorage",
    "AsyncInMemoryStore",
    "AsyncSqliteCacheStorage",
    "AsyncSqliteStore",
)
