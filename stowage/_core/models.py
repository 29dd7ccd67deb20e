from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Mapping,
    Optional,
    Tuple,
    TypedDict,
    cast,
)
from urllib.parse import urlsplit

from stowage._core._headers import Headers, parse_accept
from stowage._utils import generate_cache_key, make_async_iterator


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: Mapping[str, Any] = field(default_factory=dict)

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
            return
        else:
            raise TypeError("Request stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire request body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, AsyncIterator):
            raise TypeError("Request stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "stowage_" to avoid collisions with user data
    stowage_strategy: str
    """Name of the strategy that produced the response."""

    stowage_from_cache: bool
    """Indicates whether the response was served from a store."""

    stowage_fallback: bool
    """Indicates whether the response is a generated placeholder or the root document fallback."""

    stowage_store: str
    """Name of the store the response was served from."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, AsyncIterator):
            async for chunk in self.stream:
                yield chunk
        else:
            raise TypeError("Response stream is not an AsyncIterator")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content(self) -> bytes:
        if not hasattr(self, "collected_body"):
            raise RuntimeError("Response body has not been read, call `aread()` first")
        return cast(bytes, getattr(self, "collected_body"))

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, AsyncIterator):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected

    def clone(self) -> "Response":
        """
        Duplicate a response whose body was already read.

        A body stream can be consumed only once, so a response that is both
        handed back to the caller and written to a store must be cloned first.
        """
        body = self.content
        cloned = Response(
            status_code=self.status_code,
            headers=self.headers.copy(),
            stream=make_async_iterator([body]),
            metadata=dict(self.metadata),
        )
        setattr(cloned, "collected_body", body)
        return cloned


def response_from_bytes(
    status_code: int,
    body: bytes,
    content_type: Optional[str] = None,
    metadata: ResponseMetadata | None = None,
) -> Response:
    headers = Headers({"content-length": str(len(body))})
    if content_type is not None:
        headers["content-type"] = content_type
    response = Response(
        status_code=status_code,
        headers=headers,
        stream=make_async_iterator([body]),
        metadata=dict(metadata or {}),
    )
    setattr(response, "collected_body", body)
    return response


@dataclass(frozen=True)
class RequestDescriptor:
    """
    The parts of an intercepted request that routing and storage decisions look at.
    """

    method: str
    url: str
    hostname: str
    path: str
    origin: str
    accept: Tuple[str, ...] = ()

    @classmethod
    def from_request(cls, request: Request) -> "RequestDescriptor":
        parts = urlsplit(request.url)
        return cls(
            method=request.method.upper(),
            url=request.url,
            hostname=(parts.hostname or "").lower(),
            path=parts.path or "/",
            origin=f"{parts.scheme}://{parts.netloc}",
            accept=parse_accept(request.headers.get_list("accept")),
        )

    @property
    def cache_key(self) -> str:
        return generate_cache_key(self.method, self.url)

    def accepts(self, media_type: str) -> bool:
        return media_type.lower() in self.accept


@dataclass
class CachedEntry:
    store: str
    cache_key: str
    request: Request
    response: Response
    created_at: float = field(default_factory=time.time)
