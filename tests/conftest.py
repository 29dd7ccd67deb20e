from __future__ import annotations

import os
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import anysqlite
import pytest

from stowage import (
    AsyncInMemoryCacheStorage,
    AsyncSqliteCacheStorage,
    Headers,
    NetworkError,
    Request,
    Response,
    WorkerConfig,
)
from stowage._utils import make_async_iterator

ORIGIN = "https://shop.example/"

HOME_PAGE = b"<!doctype html><title>home</title>"
INDEX_PAGE = b"<!doctype html><title>index</title>"
LOGO = b"\x89PNG\r\n\x1a\nlogo"


class FakeNetwork:
    """
    A request sender answering from a routing table.

    Unknown URLs get a 404. URLs listed in `failing`, or every URL while `online`
    is False, raise `NetworkError`.
    """

    def __init__(self, routes: Optional[Dict[str, Tuple[bytes, str]]] = None) -> None:
        self.routes: Dict[str, Tuple[bytes, str]] = dict(routes or {})
        self.failing: set[str] = set()
        self.online = True
        self.calls: List[str] = []

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request.url)
        if not self.online or request.url in self.failing:
            raise NetworkError(f"Could not reach {request.url}")

        if request.url not in self.routes:
            return Response(
                status_code=404,
                headers=Headers({"content-type": "text/plain", "content-length": "9"}),
                stream=make_async_iterator([b"not found"]),
            )

        body, content_type = self.routes[request.url]
        return Response(
            status_code=200,
            headers=Headers({"content-type": content_type, "content-length": str(len(body))}),
            stream=make_async_iterator([body]),
        )

    def count(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture()
def config() -> WorkerConfig:
    return WorkerConfig(
        app_name="shop",
        version="1.0.0",
        origin=ORIGIN,
        static_assets=("/", "/index.html", "/logo.png"),
        external_resources=(),
        skip_waiting=False,
    )


@pytest.fixture()
def network() -> FakeNetwork:
    return FakeNetwork(
        {
            ORIGIN: (HOME_PAGE, "text/html"),
            ORIGIN + "index.html": (INDEX_PAGE, "text/html"),
            ORIGIN + "logo.png": (LOGO, "image/png"),
        }
    )


@pytest.fixture(params=["memory", "sqlite"])
def storage(request: pytest.FixtureRequest, tmp_path: Any) -> Any:
    if request.param == "memory":
        return AsyncInMemoryCacheStorage()
    return AsyncSqliteCacheStorage(database_path=tmp_path / "stowage_cache.db")


def format_value(value: Any, col_name: str, col_type: str) -> str:
    """Format a value for display based on its type and column name."""

    if value is None:
        return "NULL"

    # Handle BLOB columns
    if col_type.upper() == "BLOB":
        if isinstance(value, bytes):
            hex_str = value.hex()
            if len(hex_str) > 64:
                return f"(bytes) 0x{hex_str[:60]}... ({len(value)} bytes)"
            return f"(bytes) 0x{hex_str} ({len(value)} bytes)"
        return repr(value)

    # Handle timestamps - ONLY show date, not the raw timestamp
    if col_name.endswith("_at") and isinstance(value, (int, float)):
        try:
            return date.fromtimestamp(value).isoformat()
        except (ValueError, OSError):
            return str(value)

    if col_type.upper() == "TEXT":
        return f"'{value}'"

    return str(value)


async def aprint_sqlite_state(conn: anysqlite.Connection) -> str:
    """
    Print all tables and their rows in a pretty format suitable for inline snapshots.

    Args:
        conn: SQLite database connection

    Returns:
        Formatted string representation of the database state
    """
    cursor = await conn.cursor()

    await cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in await cursor.fetchall()]

    output_lines = []
    output_lines.append("=" * 80)
    output_lines.append("DATABASE SNAPSHOT")
    output_lines.append("=" * 80)

    for table_name in tables:
        await cursor.execute(f"PRAGMA table_info({table_name})")
        columns = await cursor.fetchall()
        column_names = [col[1] for col in columns]
        column_types = {col[1]: col[2] for col in columns}

        await cursor.execute(f"SELECT * FROM {table_name}")
        rows = await cursor.fetchall()

        output_lines.append("")
        output_lines.append(f"TABLE: {table_name}")
        output_lines.append("-" * 80)
        output_lines.append(f"Rows: {len(rows)}")
        output_lines.append("")

        if not rows:
            output_lines.append("  (empty)")
            continue

        for idx, row in enumerate(rows, 1):
            output_lines.append(f"  Row {idx}:")

            for col_name, value in zip(column_names, row):
                col_type = column_types[col_name]
                formatted_value = format_value(value, col_name, col_type)
                output_lines.append(f"    {col_name:15} = {formatted_value}")

            if idx < len(rows):
                output_lines.append("")

    output_lines.append("")
    output_lines.append("=" * 80)

    return "\n".join(output_lines)


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
