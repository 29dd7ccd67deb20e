from __future__ import annotations

from typing import Any, Mapping, Optional, cast

import msgpack

from stowage._core._headers import Headers
from stowage._core.models import CachedEntry, Request, Response
from stowage._utils import make_async_iterator


def filter_out_stowage_metadata(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if not k.startswith("stowage_")}


def pack(value: CachedEntry, /) -> bytes:
    """
    Serialize the head of a cached entry: request line, response status and both header sets.

    The body is not part of the packed record; storages keep it next to it.
    """
    return cast(
        bytes,
        msgpack.packb(
            {
                "store": value.store,
                "cache_key": value.cache_key,
                "request": {
                    "method": value.request.method,
                    "url": value.request.url,
                    "headers": value.request.headers.multi_items(),
                    "extra": filter_out_stowage_metadata(value.request.metadata),
                },
                "response": {
                    "status_code": value.response.status_code,
                    "headers": value.response.headers.multi_items(),
                    "extra": filter_out_stowage_metadata(value.response.metadata),
                },
                "created_at": value.created_at,
            }
        ),
    )


def unpack(value: Optional[bytes], /, body: bytes = b"") -> Optional[CachedEntry]:
    if value is None:
        return None

    data = msgpack.unpackb(value, raw=False)
    request = Request(
        method=data["request"]["method"],
        url=data["request"]["url"],
        headers=Headers([tuple(item) for item in data["request"]["headers"]]),
        metadata=data["request"]["extra"],
    )
    response = Response(
        status_code=data["response"]["status_code"],
        headers=Headers([tuple(item) for item in data["response"]["headers"]]),
        stream=make_async_iterator([body]),
        metadata=data["response"]["extra"],
    )
    setattr(response, "collected_body", body)
    return CachedEntry(
        store=data["store"],
        cache_key=data["cache_key"],
        request=request,
        response=response,
        created_at=data["created_at"],
    )
