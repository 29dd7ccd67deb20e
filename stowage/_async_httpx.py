from __future__ import annotations

import ssl
import types
import typing as t
from typing import (
    AsyncIterable,
    AsyncIterator,
    Optional,
    Union,
    cast,
    overload,
)

import httpx
from httpx import RequestNotRead

from stowage._config import WorkerConfig
from stowage._core._headers import Headers
from stowage._core._storages import AsyncBaseCacheStorage
from stowage._core.models import Request, Response
from stowage._exceptions import NetworkError
from stowage._host import AsyncBaseClients, AsyncBaseNotifications
from stowage._utils import filter_mapping, make_async_iterator
from stowage._worker import AsyncServiceWorker

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

# 128 KB
CHUNK_SIZE = 131072


@overload
def _internal_to_httpx(
    value: Request,
) -> httpx.Request: ...
@overload
def _internal_to_httpx(
    value: Response,
) -> httpx.Response: ...
def _internal_to_httpx(
    value: Union[Request, Response],
) -> Union[httpx.Request, httpx.Response]:
    """
    Convert internal Request/Response to httpx.Request/httpx.Response.
    """
    if isinstance(value, Request):
        return httpx.Request(
            method=value.method,
            url=value.url,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value._aiter_stream()),
            extensions=dict(value.metadata),
        )
    elif isinstance(value, Response):
        return httpx.Response(
            status_code=value.status_code,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value._aiter_stream()),
            extensions=dict(value.metadata),
        )


@overload
def _httpx_to_internal(
    value: httpx.Request,
) -> Request: ...
@overload
def _httpx_to_internal(
    value: httpx.Response,
) -> Response: ...
def _httpx_to_internal(
    value: Union[httpx.Request, httpx.Response],
) -> Union[Request, Response]:
    """
    Convert httpx.Request/httpx.Response to internal Request/Response.
    """
    headers = Headers(
        [(key, header) for key, header in value.headers.multi_items() if key.lower() != "transfer-encoding"]
    )
    if isinstance(value, httpx.Request):
        try:
            stream = make_async_iterator([value.content])
        except RequestNotRead:
            stream = cast(AsyncIterator[bytes], value.stream)

        return Request(
            method=value.method,
            url=str(value.url),
            headers=headers,
            stream=stream,
            metadata={},
        )
    elif isinstance(value, httpx.Response):
        stream = (
            make_async_iterator([value.content]) if value.is_stream_consumed else value.aiter_raw(chunk_size=CHUNK_SIZE)
        )

        if value.is_stream_consumed and "content-encoding" in value.headers:
            # If the stream was consumed and we don't know about
            # the original data and its size, fix the Content-Length
            # header and remove Content-Encoding so we can recreate it later properly.
            headers = Headers(
                {
                    **filter_mapping(
                        headers,
                        ["content-encoding", "content-length"],
                    ),
                    "content-length": str(len(value.content)),
                }
            )

        return Response(
            status_code=value.status_code,
            headers=headers,
            stream=stream,
            metadata={},
        )


class _IteratorStream(httpx.AsyncByteStream):
    def __init__(self, iterator: AsyncIterator[bytes]) -> None:
        self.iterator = iterator

    async def __aiter__(self) -> AsyncIterator[bytes]:
        assert isinstance(self.iterator, (AsyncIterator, AsyncIterable))
        async for chunk in self.iterator:
            yield chunk


class AsyncCacheTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX transport that routes every request through an `AsyncServiceWorker`.

    Requests the worker declines (anything but GET) go straight to `next_transport`.
    Entered with `async with` (usually through the client that owns it), store
    writes run in the background; otherwise they finish before each response.

    Args:
        next_transport: The transport that reaches the network.
        config: Worker configuration.
        storage: Storage for every named store.
        clients: Open application contexts, claimed on activation.
        notifications: Where push messages are shown.
    """

    def __init__(
        self,
        next_transport: httpx.AsyncBaseTransport,
        config: Optional[WorkerConfig] = None,
        storage: Optional[AsyncBaseCacheStorage] = None,
        clients: Optional[AsyncBaseClients] = None,
        notifications: Optional[AsyncBaseNotifications] = None,
    ) -> None:
        self.next_transport = next_transport
        self.worker = AsyncServiceWorker(
            request_sender=self.request_sender,
            config=config,
            storage=storage,
            clients=clients,
            notifications=notifications,
        )
        self.storage = self.worker.storage

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        internal_request = _httpx_to_internal(request)
        try:
            internal_response = await self.worker.fetch(internal_request)
        except NetworkError as exc:
            if isinstance(exc.__cause__, httpx.TransportError):
                raise exc.__cause__
            raise httpx.ConnectError(str(exc), request=request) from exc

        if internal_response is None:
            return await self.next_transport.handle_async_request(request)
        return _internal_to_httpx(internal_response)

    async def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx(request)
        try:
            httpx_response = await self.next_transport.handle_async_request(httpx_request)
            await httpx_response.aread()
        except httpx.TransportError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc
        return _httpx_to_internal(httpx_response)

    async def __aenter__(self) -> "Self":
        await self.next_transport.__aenter__()
        await self.worker.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[types.TracebackType] = None,
    ) -> None:
        try:
            await self.worker.__aexit__(exc_type, exc_value, traceback)
        finally:
            await self.next_transport.__aexit__(exc_type, exc_value, traceback)

    async def aclose(self) -> None:
        await self.next_transport.aclose()
        if self.worker._owns_storage:
            await self.storage.close()
        await super().aclose()


class AsyncCacheClient(httpx.AsyncClient):
    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.config: WorkerConfig | None = kwargs.pop("config", None)
        self.storage: AsyncBaseCacheStorage | None = kwargs.pop("storage", None)
        self.clients: AsyncBaseClients | None = kwargs.pop("clients", None)
        super().__init__(*args, **kwargs)

    @property
    def worker(self) -> AsyncServiceWorker:
        transport = self._transport
        if not isinstance(transport, AsyncCacheTransport):
            raise RuntimeError("The client transport is not an AsyncCacheTransport")
        return transport.worker

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        if transport is not None:
            return AsyncCacheTransport(
                next_transport=transport,
                config=self.config,
                storage=self.storage,
                clients=self.clients,
            )

        return AsyncCacheTransport(
            next_transport=httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            ),
            config=self.config,
            storage=self.storage,
            clients=self.clients,
        )
