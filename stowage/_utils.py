from __future__ import annotations

import hashlib
import typing as tp
from email.utils import formatdate
from pathlib import Path
from typing import AsyncIterator, Iterable
from urllib.parse import urljoin, urlsplit

T = tp.TypeVar("T")


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
        Filter out specified keys from a string-keyed mapping using case-insensitive comparison.

        Args:
            mapping: The input mapping with string keys to filter.
            keys_to_exclude: An iterable of string keys to exclude (case-insensitive).

        Returns:
            A new dictionary with the specified keys excluded.

        Example:
    ```python
            original = {'a': 1, 'B': 2, 'c': 3}
            filtered = filter_mapping(original, ['b'])
            # filtered will be {'a': 1, 'c': 3}
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}


def generate_cache_key(method: str, url: str) -> str:
    """
    Build the storage key for a request.

    Only the method and the absolute URL take part in the key, so repeated
    lookups of the same resource always land on the same entry.

    Example:
        >>> generate_cache_key("GET", "https://example.com/app.css") == generate_cache_key(
        ...     "get", "https://example.com/app.css"
        ... )
        True
    """
    return hashlib.sha256(f"{method.upper()} {url}".encode("utf-8")).hexdigest()


def path_extension(url: str) -> str:
    """
    Return the lower-cased file extension of the URL path, without the dot.

    Query strings and fragments are ignored. Returns an empty string when the
    last path segment has no extension.

    Examples:
        >>> path_extension("https://cdn.example.com/css/all.min.css?v=3")
        'css'
        >>> path_extension("https://example.com/products/")
        ''
    """
    last_segment = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return ""
    return last_segment.rsplit(".", 1)[-1].lower()


def hostname_matches(hostname: str, known_hostnames: tp.Iterable[str]) -> bool:
    """
    Check whether `hostname` is one of `known_hostnames` or a subdomain of one.

    Examples:
        >>> hostname_matches("firestore.googleapis.com", ["firestore.googleapis.com"])
        True
        >>> hostname_matches("eu.firestore.googleapis.com", ["firestore.googleapis.com"])
        True
        >>> hostname_matches("notfirestore.googleapis.com", ["firestore.googleapis.com"])
        False
    """
    hostname = hostname.lower().rstrip(".")
    for known in known_hostnames:
        known = known.lower()
        if hostname == known or hostname.endswith("." + known):
            return True
    return False


def resolve_url(base: str, url: str) -> str:
    return urljoin(base, url)


def ensure_cache_dict(base_path: Path | None = None) -> Path:
    _base_path = base_path if base_path is not None else Path(".cache/stowage")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by Stowage\n*")
    return _base_path


def generate_http_date() -> str:
    """
    Generate a Date header value for HTTP responses.
    Returns date in RFC 1123 format (required by HTTP/1.1).

    Example output: 'Sun, 26 Oct 2025 12:34:56 GMT'
    """
    return formatdate(timeval=None, localtime=False, usegmt=True)
