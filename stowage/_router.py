from __future__ import annotations

import enum
import logging
from typing import Optional

from stowage._config import WorkerConfig
from stowage._core.models import RequestDescriptor
from stowage._fallbacks import ASSET_EXTENSIONS, IMAGE_EXTENSIONS
from stowage._utils import hostname_matches, path_extension

logger = logging.getLogger("stowage.router")


class Strategy(str, enum.Enum):
    CACHE_FIRST = "cache-first"
    IMAGE_CACHE_FIRST = "image-cache-first"
    NETWORK_FIRST = "network-first"
    NETWORK_FIRST_WITH_STORE_UPDATE = "network-first-with-store-update"


def classify(descriptor: RequestDescriptor, config: WorkerConfig) -> Optional[Strategy]:
    """
    Pick the strategy for an intercepted request.

    Rules are checked in order and the first match wins:

    1. Non-GET requests are not intercepted (`None`).
    2. Requests accepting `text/html` are navigations: network first.
    3. Stylesheets, scripts and fonts: cache first.
    4. Images: cache first with a placeholder fallback.
    5. Requests to the remote data store: network first, mirrored into the dynamic store.
    6. Everything else: network first.

    Examples:
        >>> config = WorkerConfig()
        >>> classify(RequestDescriptor("GET", "https://a.com/x.css", "a.com", "/x.css", "https://a.com"), config)
        <Strategy.CACHE_FIRST: 'cache-first'>
        >>> classify(RequestDescriptor("POST", "https://a.com/", "a.com", "/", "https://a.com"), config) is None
        True
    """
    if descriptor.method != "GET":
        return None

    if descriptor.accepts("text/html"):
        return Strategy.NETWORK_FIRST

    extension = path_extension(descriptor.url)
    if extension in ASSET_EXTENSIONS:
        return Strategy.CACHE_FIRST

    if extension in IMAGE_EXTENSIONS:
        return Strategy.IMAGE_CACHE_FIRST

    if hostname_matches(descriptor.hostname, config.data_hostnames):
        return Strategy.NETWORK_FIRST_WITH_STORE_UPDATE

    return Strategy.NETWORK_FIRST
