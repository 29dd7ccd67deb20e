from __future__ import annotations

__all__ = (
    "StowageError",
    "AssetFetchError",
    "NetworkError",
    "StoreWriteError",
    "MalformedPushPayload",
    "LifecycleError",
)


class StowageError(Exception): ...


class AssetFetchError(StowageError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not fetch {url!r} during install: {reason}")
        self.url = url
        self.reason = reason


class NetworkError(StowageError): ...


class StoreWriteError(StowageError): ...


class MalformedPushPayload(StowageError): ...


class LifecycleError(StowageError): ...
