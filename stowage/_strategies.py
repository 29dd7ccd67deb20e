from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from typing_extensions import assert_never

from stowage._config import WorkerConfig
from stowage._core._storages import AsyncBaseCacheStorage
from stowage._core.models import Request, RequestDescriptor, Response, ResponseMetadata
from stowage._exceptions import NetworkError, StoreWriteError
from stowage._fallbacks import asset_fallback, empty_listing, placeholder_image
from stowage._router import Strategy
from stowage._utils import hostname_matches, path_extension

logger = logging.getLogger("stowage.strategies")

RequestSender = Callable[[Request], Awaitable[Response]]
Spawner = Callable[..., Any]


class AsyncStrategySet:
    """
    The caching algorithms a request can be routed to.

    Every strategy returns a response or raises `NetworkError` when neither the
    network nor any store can answer. Store writes never block the response: they
    are handed to `spawn` (typically a task group's `start_soon`) and their
    failures are logged.

    Args:
        config: The worker configuration.
        storage: Storage holding every named store.
        request_sender: Callable fetching a request from the network. Network failures
            must be raised as `NetworkError`.
        spawn: Starts a background task, called as `spawn(async_fn, *args)`.
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: AsyncBaseCacheStorage,
        request_sender: RequestSender,
        spawn: Spawner,
    ) -> None:
        self.config = config
        self.storage = storage
        self.send_request = request_sender
        self.spawn = spawn

    async def handle(self, strategy: Strategy, request: Request) -> Response:
        descriptor = RequestDescriptor.from_request(request)
        logger.debug(f"Handling {descriptor.method} {descriptor.url} with {strategy.value}")

        if strategy is Strategy.CACHE_FIRST:
            return await self.cache_first(request, descriptor)
        elif strategy is Strategy.IMAGE_CACHE_FIRST:
            return await self.image_cache_first(request, descriptor)
        elif strategy is Strategy.NETWORK_FIRST:
            return await self.network_first(request, descriptor)
        elif strategy is Strategy.NETWORK_FIRST_WITH_STORE_UPDATE:
            return await self.network_first_with_store_update(request, descriptor)
        else:
            assert_never(strategy)

    async def cache_first(self, request: Request, descriptor: RequestDescriptor) -> Response:
        strategy = Strategy.CACHE_FIRST
        cached = await self._match(request, strategy)
        if cached is not None:
            return cached

        try:
            return await self._fetch_and_store(request, strategy)
        except NetworkError as exc:
            logger.debug(f"Fetch failed for {descriptor.url}, serving an empty asset: {exc}")
            return asset_fallback(path_extension(descriptor.url), strategy.value)

    async def image_cache_first(self, request: Request, descriptor: RequestDescriptor) -> Response:
        strategy = Strategy.IMAGE_CACHE_FIRST
        cached = await self._match(request, strategy)
        if cached is not None:
            return cached

        try:
            return await self._fetch_and_store(request, strategy)
        except NetworkError as exc:
            logger.debug(f"Fetch failed for {descriptor.url}, serving a placeholder image: {exc}")

        if self._is_external_placeholder(descriptor.url):
            pinned_url = self.config.resolve(self.config.placeholder_image)
            pinned = await self._match(Request(method="GET", url=pinned_url), strategy)
            if pinned is not None:
                pinned.metadata.update(ResponseMetadata(stowage_fallback=True))  # type: ignore
                return pinned
        return placeholder_image(strategy.value)

    async def network_first(self, request: Request, descriptor: RequestDescriptor) -> Response:
        strategy = Strategy.NETWORK_FIRST
        try:
            return await self._fetch_and_store(request, strategy)
        except NetworkError as exc:
            logger.debug(f"Fetch failed for {descriptor.url}, looking for a stored copy: {exc}")
            cached = await self._match(request, strategy)
            if cached is not None:
                return cached

            if descriptor.accepts("text/html"):
                root = await self._match_root_document(descriptor, strategy)
                if root is not None:
                    return root
            raise

    async def network_first_with_store_update(self, request: Request, descriptor: RequestDescriptor) -> Response:
        strategy = Strategy.NETWORK_FIRST_WITH_STORE_UPDATE
        try:
            return await self._fetch_and_store(request, strategy)
        except NetworkError as exc:
            logger.debug(f"Fetch failed for {descriptor.url}, looking for a stored copy: {exc}")
            cached = await self._match(request, strategy)
            if cached is not None:
                return cached

            # Only the remote data store gets an empty listing; other hosts have no agreed shape.
            if hostname_matches(descriptor.hostname, self.config.data_hostnames):
                return empty_listing(strategy.value)
            raise

    async def _fetch_and_store(self, request: Request, strategy: Strategy) -> Response:
        response = await self.send_request(request)
        await response.aread()
        response.metadata.update(  # type: ignore
            ResponseMetadata(
                stowage_strategy=strategy.value,
                stowage_from_cache=False,
                stowage_fallback=False,
            )
        )

        if response.is_success:
            stored_request = Request(method=request.method, url=request.url, headers=request.headers.copy())
            self.spawn(self._background_put, self.config.dynamic_cache_name, stored_request, response.clone())
        else:
            logger.debug(f"Not storing {request.url}, status {response.status_code}")
        return response

    async def _match(self, request: Request, strategy: Strategy) -> Optional[Response]:
        entry = await self.storage.match(request)
        if entry is None:
            logger.debug(f"No stored response for {request.url}")
            return None

        logger.debug(f"Serving {request.url} from store {entry.store!r}")
        entry.response.metadata.update(  # type: ignore
            ResponseMetadata(
                stowage_strategy=strategy.value,
                stowage_from_cache=True,
                stowage_fallback=False,
                stowage_store=entry.store,
            )
        )
        return entry.response

    async def _match_root_document(self, descriptor: RequestDescriptor, strategy: Strategy) -> Optional[Response]:
        candidates = dict.fromkeys([descriptor.origin + "/", self.config.resolve(self.config.root_document)])
        for url in candidates:
            root = await self._match(Request(method="GET", url=url), strategy)
            if root is not None:
                root.metadata.update(ResponseMetadata(stowage_fallback=True))  # type: ignore
                return root
        return None

    def _is_external_placeholder(self, url: str) -> bool:
        return any(pattern in url for pattern in self.config.placeholder_patterns)

    async def put(self, store_name: str, request: Request, response: Response) -> None:
        try:
            async with self.storage.open_store(store_name) as store:
                await store.put(request, response)
        except Exception as exc:
            raise StoreWriteError(f"Could not write {request.url} to store {store_name!r}") from exc

    async def _background_put(self, store_name: str, request: Request, response: Response) -> None:
        try:
            await self.put(store_name, request, response)
        except StoreWriteError as exc:
            logger.warning(str(exc), exc_info=exc.__cause__)
