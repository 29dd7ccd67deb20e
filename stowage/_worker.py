from __future__ import annotations

import logging
import types
from contextlib import AsyncExitStack
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import anyio
from anyio.abc import TaskGroup

from stowage._background import AsyncBackgroundHandlers, Operation
from stowage._config import WorkerConfig
from stowage._core._storages import AsyncBaseCacheStorage, AsyncSqliteCacheStorage
from stowage._core.models import Request, RequestDescriptor, Response
from stowage._host import (
    AsyncBaseClients,
    AsyncBaseNotifications,
    Client,
    LocalClients,
    LocalNotifications,
    Notification,
)
from stowage._lifecycle import Active, AnyState, AsyncLifecycleController, Redundant, Superseded, Waiting
from stowage._messages import AsyncControlChannel
from stowage._router import classify
from stowage._strategies import AsyncStrategySet

if TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("stowage.worker")

__all__ = ("AsyncServiceWorker", "AsyncRegistration")

EVENT_HANDLERS = {
    "install": "install",
    "activate": "activate",
    "fetch": "fetch",
    "message": "message",
    "sync": "sync",
    "periodicsync": "periodic_sync",
    "push": "push",
    "notificationclick": "notification_click",
}


class AsyncServiceWorker:
    """
    One generation of the caching layer, with an entry point per host event.

    Inside `async with` the worker owns the task group that runs background store
    writes, and leaving the block waits for pending writes to finish. Outside it,
    `fetch` awaits the store write before returning.

    Args:
        request_sender: Callable fetching a request from the network. Network failures
            must be raised as `NetworkError`.
        config: Worker configuration. Defaults to `WorkerConfig()`.
        storage: Storage for every named store. Defaults to `AsyncSqliteCacheStorage()`,
            which is closed with the worker; a storage passed in is left open.
        clients: Open application contexts. Defaults to an empty `LocalClients`.
        notifications: Where push messages are shown. Defaults to `LocalNotifications`.
        flush_pending_writes: Awaited on deferred sync.
        refresh_catalog: Awaited on periodic sync.
    """

    def __init__(
        self,
        request_sender: Callable[[Request], Awaitable[Response]],
        config: Optional[WorkerConfig] = None,
        storage: Optional[AsyncBaseCacheStorage] = None,
        clients: Optional[AsyncBaseClients] = None,
        notifications: Optional[AsyncBaseNotifications] = None,
        flush_pending_writes: Optional[Operation] = None,
        refresh_catalog: Optional[Operation] = None,
    ) -> None:
        self.config = config if config is not None else WorkerConfig()
        self._owns_storage = storage is None
        self.storage = storage if storage is not None else AsyncSqliteCacheStorage()
        self.clients = clients if clients is not None else LocalClients()
        self.notifications = notifications if notifications is not None else LocalNotifications()
        self.send_request = request_sender

        self.controller = AsyncLifecycleController(
            config=self.config,
            storage=self.storage,
            request_sender=request_sender,
            clients=self.clients,
        )
        self.strategies = AsyncStrategySet(
            config=self.config,
            storage=self.storage,
            request_sender=request_sender,
            spawn=self._spawn,
        )
        self.channel = AsyncControlChannel(config=self.config, storage=self.storage, controller=self.controller)
        self.background = AsyncBackgroundHandlers(
            config=self.config,
            clients=self.clients,
            notifications=self.notifications,
            flush_pending_writes=flush_pending_writes,
            refresh_catalog=refresh_catalog,
        )

        self._exit_stack: Optional[AsyncExitStack] = None
        self._task_group: Optional[TaskGroup] = None

    @property
    def state(self) -> AnyState:
        return self.controller.state

    @property
    def version(self) -> str:
        return self.config.version

    def _spawn(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        assert self._task_group is not None
        self._task_group.start_soon(func, *args)

    async def install(self) -> AnyState:
        return await self.controller.install()

    async def activate(self) -> AnyState:
        return await self.controller.activate()

    async def skip_waiting(self) -> None:
        await self.controller.skip_waiting()

    async def fetch(self, request: Request) -> Optional[Response]:
        """
        Answer an intercepted request.

        Returns None when the request is not intercepted (any method other than GET);
        the caller should then send it to the network untouched.

        Raises:
            NetworkError: when the network failed and no stored or generated response applies.
        """
        descriptor = RequestDescriptor.from_request(request)
        strategy = classify(descriptor, self.config)
        if strategy is None:
            logger.debug(f"Not intercepting {descriptor.method} {descriptor.url}")
            return None

        if self._task_group is not None:
            return await self.strategies.handle(strategy, request)

        # Outside `async with` the store write finishes before the response is returned.
        async with anyio.create_task_group() as task_group:
            strategies = AsyncStrategySet(
                config=self.config,
                storage=self.storage,
                request_sender=self.send_request,
                spawn=task_group.start_soon,
            )
            response = await strategies.handle(strategy, request)
        return response

    async def message(self, data: Any, source: Optional[Client] = None) -> Optional[str]:
        return await self.channel.dispatch(data, source)

    async def sync(self, tag: str) -> bool:
        return await self.background.sync(tag)

    async def periodic_sync(self, tag: str) -> bool:
        return await self.background.periodic_sync(tag)

    async def push(self, data: Any) -> Optional[Notification]:
        return await self.background.push(data)

    async def notification_click(self, notification: Notification) -> Optional[Client]:
        return await self.background.notification_click(notification)

    async def dispatch(self, event: str, *args: Any, **kwargs: Any) -> Any:
        """
        Route a host event by name, e.g. `await worker.dispatch("sync", "sync-orders")`.
        """
        try:
            handler_name = EVENT_HANDLERS[event]
        except KeyError:
            raise ValueError(f"Unknown event {event!r}") from None
        return await getattr(self, handler_name)(*args, **kwargs)

    async def __aenter__(self) -> "Self":
        self._exit_stack = AsyncExitStack()
        self._task_group = await self._exit_stack.enter_async_context(anyio.create_task_group())
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[types.TracebackType] = None,
    ) -> None:
        assert self._exit_stack is not None
        try:
            await self._exit_stack.__aexit__(exc_type, exc_value, traceback)
        finally:
            self._exit_stack = None
            self._task_group = None
            if self._owns_storage:
                await self.storage.close()


class AsyncRegistration:
    """
    Keeps track of the generations of one application.

    A registered worker is installed right away. When a generation becomes active,
    the one it replaces is marked as superseded; a newer waiting generation
    likewise supersedes an older waiting one.
    """

    def __init__(self) -> None:
        self.installing: Optional[AsyncServiceWorker] = None
        self.waiting: Optional[AsyncServiceWorker] = None
        self.active: Optional[AsyncServiceWorker] = None

    async def register(self, worker: AsyncServiceWorker) -> AsyncServiceWorker:
        worker.controller.on_state_change = partial(self._on_state_change, worker)
        self.installing = worker
        try:
            await worker.install()
        finally:
            if self.installing is worker:
                self.installing = None
        return worker

    async def activate_waiting(self) -> Optional[AsyncServiceWorker]:
        """
        Activate the waiting generation, e.g. once every client of the active one went away.
        """
        worker = self.waiting
        if worker is None:
            return None
        await worker.activate()
        return worker

    def _on_state_change(self, worker: AsyncServiceWorker, state: AnyState) -> None:
        if isinstance(state, Waiting):
            previous = self.waiting
            self.waiting = worker
            if self.installing is worker:
                self.installing = None
            if previous is not None and previous is not worker:
                previous.controller.supersede()
        elif isinstance(state, Active):
            previous = self.active
            self.active = worker
            if self.waiting is worker:
                self.waiting = None
            if previous is not None and previous is not worker:
                logger.info(f"Generation {previous.config.static_cache_name} superseded by {state.generation}")
                previous.controller.supersede()
        elif isinstance(state, (Redundant, Superseded)):
            for slot in ("installing", "waiting", "active"):
                if getattr(self, slot) is worker:
                    setattr(self, slot, None)
