from __future__ import annotations

from typing import Optional

from stowage._core.models import Response, ResponseMetadata, response_from_bytes
from stowage._utils import generate_http_date

STYLESHEET_EXTENSIONS = frozenset({"css"})
SCRIPT_EXTENSIONS = frozenset({"js", "mjs"})
FONT_EXTENSIONS = frozenset({"woff", "woff2", "ttf", "otf", "eot"})
ASSET_EXTENSIONS = STYLESHEET_EXTENSIONS | SCRIPT_EXTENSIONS | FONT_EXTENSIONS
IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "svg", "webp", "ico", "avif", "bmp"})

EMPTY_STYLESHEET = b"/* offline: stylesheet unavailable */\n"
NOOP_SCRIPT = b"/* offline: script unavailable */\n"

PLACEHOLDER_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200" viewBox="0 0 200 200">'
    b'<rect width="200" height="200" fill="#e5e7eb"/>'
    b'<text x="100" y="105" font-family="sans-serif" font-size="14" fill="#9ca3af" '
    b'text-anchor="middle">Image unavailable</text>'
    b"</svg>"
)


def _fallback(
    body: bytes, content_type: Optional[str], strategy: str, status_code: int = 200
) -> Response:
    response = response_from_bytes(
        status_code,
        body,
        content_type=content_type,
        metadata=ResponseMetadata(
            stowage_strategy=strategy,
            stowage_from_cache=False,
            stowage_fallback=True,
        ),
    )
    response.headers["date"] = generate_http_date()
    response.headers["cache-control"] = "no-store"
    return response


def asset_fallback(extension: str, strategy: str) -> Response:
    """
    The response served when a stylesheet, script or font can be neither found nor fetched.

    Stylesheets and scripts get an empty but valid body so the page keeps loading.
    """
    if extension in STYLESHEET_EXTENSIONS:
        return _fallback(EMPTY_STYLESHEET, "text/css; charset=utf-8", strategy)
    if extension in SCRIPT_EXTENSIONS:
        return _fallback(NOOP_SCRIPT, "application/javascript; charset=utf-8", strategy)
    return _fallback(b"", None, strategy, status_code=204)


def placeholder_image(strategy: str) -> Response:
    return _fallback(PLACEHOLDER_SVG, "image/svg+xml", strategy)


def empty_listing(strategy: str) -> Response:
    return _fallback(b"[]", "application/json", strategy)
