from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import anyio

from stowage._config import WorkerConfig
from stowage._core._storages import AsyncBaseCacheStorage
from stowage._core.models import Request, Response
from stowage._exceptions import AssetFetchError, LifecycleError, NetworkError
from stowage._host import AsyncBaseClients
from stowage._synchronization import AsyncLock

logger = logging.getLogger("stowage.lifecycle")

__all__ = (
    "State",
    "AnyState",
    "Parsed",
    "Installing",
    "Waiting",
    "Activating",
    "Active",
    "Superseded",
    "Redundant",
    "AsyncLifecycleController",
)


@dataclass
class State(ABC):
    generation: str
    """Name of the static store this generation owns."""

    @abstractmethod
    def next(self, *args: object, **kwargs: object) -> Union["State", None]:
        raise NotImplementedError("Subclasses must implement this method")

    def supersede(self) -> "Superseded":
        return Superseded(generation=self.generation)


class Parsed(State):
    """
    The generation exists but installation has not started yet.
    """

    def next(self) -> "Installing":
        return Installing(generation=self.generation)


class Installing(State):
    """
    The manifest is being fetched into the static store.
    """

    def next(self, succeeded: bool) -> Union["Waiting", "Redundant"]:
        if succeeded:
            return Waiting(generation=self.generation)
        return Redundant(generation=self.generation)


class Waiting(State):
    """
    Installed, waiting to take over from the generation currently in control.
    """

    def next(self) -> "Activating":
        return Activating(generation=self.generation)


class Activating(State):
    """
    Stale stores are being removed and open clients claimed.
    """

    def next(self) -> "Active":
        return Active(generation=self.generation)


class Active(State):
    def next(self) -> "Superseded":
        return self.supersede()


class Superseded(State):
    """
    A newer generation took over. The static store of this one is garbage.
    """

    def next(self) -> None:
        return None

    def supersede(self) -> "Superseded":
        return self


class Redundant(State):
    """
    Installation failed. The generation never becomes a candidate, but the host may install it again.
    """

    def next(self) -> "Installing":
        return Installing(generation=self.generation)


AnyState = Union[Parsed, Installing, Waiting, Activating, Active, Superseded, Redundant]

RequestSender = Callable[[Request], Awaitable[Response]]


class AsyncLifecycleController:
    """
    Owns the static store of one generation from install to supersession.

    Args:
        config: The worker configuration. Its version decides the static store name.
        storage: Storage holding every named store.
        request_sender: Callable fetching a request from the network. Network failures
            must be raised as `NetworkError`.
        clients: The open application contexts to claim on activation.
        on_state_change: Called with every new state, after it was entered.
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: AsyncBaseCacheStorage,
        request_sender: RequestSender,
        clients: AsyncBaseClients,
        on_state_change: Optional[Callable[[AnyState], None]] = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.send_request = request_sender
        self.clients = clients
        self.on_state_change = on_state_change
        self._state: AnyState = Parsed(generation=config.static_cache_name)
        self._skip_waiting = config.skip_waiting
        self._lock = AsyncLock()

    @property
    def state(self) -> AnyState:
        return self._state

    @state.setter
    def state(self, state: AnyState) -> None:
        logger.debug(f"Generation {state.generation} entered state {state.__class__.__name__}")
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    async def install(self) -> AnyState:
        """
        Fetch the whole manifest and write it to the static store.

        Either every asset is written or none is. On any failure the half-written
        static store is deleted, the generation becomes `Redundant` and the error
        propagates; calling `install` again retries the whole manifest. Installing
        an `Active` generation refreshes its static store in place.
        """
        async with self._lock:
            if isinstance(self.state, Active):
                logger.info(f"Refreshing static store of active generation {self.config.static_cache_name}")
                await self._write_static_store(await self._fetch_manifest())
                return self.state
            if not isinstance(self.state, (Parsed, Redundant, Waiting)):
                raise LifecycleError(f"Cannot install a generation in state {self.state.__class__.__name__}")

            logger.info(f"Installing generation {self.config.static_cache_name}")
            if isinstance(self.state, Waiting):
                self.state = Installing(generation=self.state.generation)
            else:
                self.state = self.state.next()

            try:
                fetched = await self._fetch_manifest()
                await self._write_static_store(fetched)
            except BaseException as exc:
                logger.warning(f"Install of {self.config.static_cache_name} failed: {exc!r}")
                assert isinstance(self.state, Installing)
                self.state = self.state.next(succeeded=False)
                with anyio.CancelScope(shield=True):
                    await self.storage.delete(self.config.static_cache_name)
                raise

            assert isinstance(self.state, Installing)
            self.state = self.state.next(succeeded=True)
            logger.info(f"Install of {self.config.static_cache_name} completed, {len(fetched)} assets stored")

        if self._skip_waiting:
            await self.activate()
        return self.state

    async def _write_static_store(self, fetched: List[Tuple[Request, Response]]) -> None:
        async with self.storage.open_store(self.config.static_cache_name) as store:
            for request, response in fetched:
                await store.put(request, response)

    async def _fetch_manifest(self) -> List[Tuple[Request, Response]]:
        manifest = [self.config.resolve(url) for url in self.config.manifest]
        fetched: Dict[str, Tuple[Request, Response]] = {}
        failures: List[AssetFetchError] = []

        async def fetch_asset(url: str) -> None:
            request = Request(method="GET", url=url)
            try:
                response = await self.send_request(request)
                await response.aread()
            except NetworkError as exc:
                failures.append(AssetFetchError(url, str(exc) or exc.__class__.__name__))
                task_group.cancel_scope.cancel()
                return
            if not response.is_success:
                failures.append(AssetFetchError(url, f"unexpected status {response.status_code}"))
                task_group.cancel_scope.cancel()
                return
            fetched[url] = (request, response)

        async with anyio.create_task_group() as task_group:
            for url in dict.fromkeys(manifest):
                task_group.start_soon(fetch_asset, url)

        if failures:
            raise failures[0]
        return [fetched[url] for url in dict.fromkeys(manifest)]

    async def skip_waiting(self) -> None:
        """
        Activate without waiting for clients of the previous generation to go away.

        If the generation is still installing, it activates as soon as the install succeeds.
        """
        self._skip_waiting = True
        if isinstance(self.state, Waiting):
            await self.activate()

    async def activate(self) -> AnyState:
        async with self._lock:
            if isinstance(self.state, Active):
                return self.state
            if not isinstance(self.state, Waiting):
                raise LifecycleError(f"Cannot activate a generation in state {self.state.__class__.__name__}")

            logger.info(f"Activating generation {self.config.static_cache_name}")
            self.state = self.state.next()

            keep = {self.config.static_cache_name, self.config.dynamic_cache_name}
            stale = [name for name in await self.storage.keys() if name not in keep]

            async with anyio.create_task_group() as task_group:
                for name in stale:
                    task_group.start_soon(self._delete_store, name)

            logger.debug("Claiming clients")
            await self.clients.claim(self.config.static_cache_name)

            assert isinstance(self.state, Activating)
            self.state = self.state.next()
        return self.state

    async def _delete_store(self, name: str) -> None:
        logger.info(f"Deleting old store {name!r}")
        await self.storage.delete(name)

    def supersede(self) -> AnyState:
        """
        Mark this generation as replaced by a newer one.
        """
        self.state = self.state.supersede()
        return self.state
