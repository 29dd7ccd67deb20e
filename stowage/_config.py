from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Tuple

from stowage._utils import resolve_url


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class WorkerConfig:
    """
    Read-only settings shared by every component of a worker.

    A config is built once per process and handed to the worker, which passes it
    on to the lifecycle controller, the router, the strategies and the handlers.

    Attributes:
    ----------
    app_name : str
        Prefix of every store name this application owns.

    version : str
        The release identifier. The static store of this release is called
        `<app_name>-v<version>`.

        Examples:
        --------
        >>> WorkerConfig(app_name="shop", version="2.0.0").static_cache_name
        'shop-v2.0.0'

    origin : str
        Base URL the application is served from. Relative manifest entries, the root
        document and the placeholder image are resolved against it.

    static_assets : tuple[str, ...]
        Application shell assets fetched and stored at install time. Relative URLs
        are resolved against `origin`.

    external_resources : tuple[str, ...]
        Pinned third-party URLs fetched and stored at install time alongside
        `static_assets`. A failure on any of them fails the whole install.

    dynamic_cache_name : str
        Name of the long-lived store that collects responses at request time.
        It is not versioned and never deleted during activation.

    data_hostnames : tuple[str, ...]
        Hostnames of the remote data store. Requests to these hosts, or to their
        subdomains, are answered from the network and mirrored into the dynamic store.

    skip_waiting : bool
        When True, a successful install activates the new generation immediately
        instead of staying in the waiting state.

    root_document : str
        The document served for offline navigations that have no stored entry.

    placeholder_image : str
        Locally pinned image served when an external placeholder image cannot be fetched.

    placeholder_patterns : tuple[str, ...]
        Substrings identifying external placeholder image URLs.

    sync_tag : str
        Tag of the deferred sync that flushes pending writes.

    periodic_sync_tag : str
        Tag of the periodic sync that refreshes the catalogue.

    default_notification_url : str
        URL a notification opens when its payload names none.
    """

    app_name: str = "shopeasy"
    version: str = "1.0.1"
    origin: str = "http://localhost/"
    static_assets: Tuple[str, ...] = ("/", "/index.html", "logo.png", "manifest.json")
    external_resources: Tuple[str, ...] = (
        "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css",
        "https://www.gstatic.com/firebasejs/10.7.1/firebase-app.js",
        "https://www.gstatic.com/firebasejs/10.7.1/firebase-firestore.js",
    )
    dynamic_cache_name: str = ""
    data_hostnames: Tuple[str, ...] = (
        "firestore.googleapis.com",
        "firebasestorage.googleapis.com",
    )
    skip_waiting: bool = True
    root_document: str = "/"
    placeholder_image: str = "logo.png"
    placeholder_patterns: Tuple[str, ...] = ("placeholder", "via.placeholder.com", "placehold.co")
    sync_tag: str = "sync-orders"
    periodic_sync_tag: str = "update-products"
    default_notification_url: str = "/"

    def __post_init__(self) -> None:
        if not self.app_name:
            raise ValueError("app_name must not be empty")
        if not self.version:
            raise ValueError("version must not be empty")
        if not self.dynamic_cache_name:
            object.__setattr__(self, "dynamic_cache_name", f"{self.app_name}-dynamic-v1")
        if self.dynamic_cache_name == self.static_cache_name:
            raise ValueError("dynamic_cache_name must differ from the static store name")

    @property
    def static_cache_name(self) -> str:
        return f"{self.app_name}-v{self.version}"

    @property
    def manifest(self) -> Tuple[str, ...]:
        """
        Every URL fetched at install time, local assets first.
        """
        return tuple(dict.fromkeys((*self.static_assets, *self.external_resources)))

    def resolve(self, url: str) -> str:
        return resolve_url(self.origin, url)

    def with_version(self, version: str) -> "WorkerConfig":
        return replace(self, version=version)

    @classmethod
    def from_env(cls, **overrides: Any) -> "WorkerConfig":
        """
        Build a config from `STOWAGE_*` environment variables.

        Recognized variables: STOWAGE_APP_NAME, STOWAGE_VERSION, STOWAGE_ORIGIN,
        STOWAGE_DYNAMIC_CACHE and STOWAGE_SKIP_WAITING. Keyword arguments win over
        the environment.
        """
        values: dict[str, Any] = {}
        if "STOWAGE_APP_NAME" in os.environ:
            values["app_name"] = os.environ["STOWAGE_APP_NAME"]
        if "STOWAGE_VERSION" in os.environ:
            values["version"] = os.environ["STOWAGE_VERSION"]
        if "STOWAGE_ORIGIN" in os.environ:
            values["origin"] = os.environ["STOWAGE_ORIGIN"]
        if "STOWAGE_DYNAMIC_CACHE" in os.environ:
            values["dynamic_cache_name"] = os.environ["STOWAGE_DYNAMIC_CACHE"]
        if "STOWAGE_SKIP_WAITING" in os.environ:
            values["skip_waiting"] = _env_flag(os.environ["STOWAGE_SKIP_WAITING"])
        values.update(overrides)
        return cls(**values)
