"""
Shared fakes and fixtures for picmirror tests.

`SqliteD1` stands in for the D1 HTTP endpoint: it runs the SQL text the
store builds against an in-memory SQLite database, one transaction per batch.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Sequence

import pytest

from picmirror.errors import RemoteServiceError, TransportError
from picmirror.store_utils.models import DeleteOutcome, UploadHistoryItem


class SqliteD1:
    """In-process replacement for `D1Client`."""

    def __init__(self) -> None:
        self.conn = sqlite3.connect(":memory:", isolation_level=None)
        self.queries: list[str] = []
        self.batches: list[list[str]] = []
        self.fail_prefix: str | None = None

    def _rows(self, cursor: sqlite3.Cursor) -> list[dict[str, Any]]:
        if cursor.description is None:
            return []
        names = [col[0] for col in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    async def query(self, sql: str) -> list[dict[str, Any]]:
        self.queries.append(sql)
        try:
            return self._rows(self.conn.execute(sql))
        except sqlite3.Error as error:
            raise RemoteServiceError("Query failed", [(7500, str(error))]) from error

    async def batch(self, statements: Sequence[str]) -> None:
        if not statements:
            return
        self.batches.append(list(statements))
        if self.fail_prefix and statements[0].startswith(self.fail_prefix):
            raise RemoteServiceError("Batch execution failed", [(7500, "D1 is down")])
        self.conn.execute("BEGIN")
        try:
            for sql in statements:
                self.conn.execute(sql)
        except sqlite3.Error as error:
            self.conn.execute("ROLLBACK")
            raise RemoteServiceError("Batch execution failed", [(7500, str(error))]) from error
        self.conn.execute("COMMIT")

    def upsert_batch_sizes(self) -> list[int]:
        return [
            len(b) for b in self.batches if b[0].startswith("INSERT INTO smms_pictures")
        ]

    def rows(self, where: str = "1=1") -> list[dict[str, Any]]:
        cursor = self.conn.execute(f"SELECT * FROM smms_pictures WHERE {where} ORDER BY id")
        return self._rows(cursor)


class FakeHost:
    """In-process replacement for `SmmsClient`.

    `pages` maps a page number to its items, or to an exception to raise.
    Pages that are not listed come back empty.
    """

    def __init__(self, pages: dict[int, Any] | None = None) -> None:
        self.pages = pages or {}
        self.requested: list[int] = []
        self.deleted: list[str] = []
        self.delete_results: dict[str, Any] = {}
        self.uploads: dict[str, UploadHistoryItem | Exception] = {}

    async def fetch_history_page(self, page: int = 1) -> list[UploadHistoryItem]:
        self.requested.append(page)
        result = self.pages.get(page, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def delete_by_hash(self, file_hash: str) -> DeleteOutcome:
        self.deleted.append(file_hash)
        result = self.delete_results.get(file_hash, DeleteOutcome.DELETED)
        if isinstance(result, Exception):
            raise result
        return result

    async def upload_file(self, data: bytes, filename: str) -> UploadHistoryItem:
        result = self.uploads[filename]
        if isinstance(result, Exception):
            raise result
        return result


def build_item(file_hash: str, filename: str | None = None, **overrides: Any) -> UploadHistoryItem:
    values: dict[str, Any] = {
        "hash": file_hash,
        "filename": filename or f"{file_hash}.png",
        "store_name": f"store_{file_hash}.png",
        "size": 1024,
        "width": 640,
        "height": 480,
        "path": f"/2024/01/01/{file_hash}.png",
        "url": f"https://s2.loli.net/2024/01/01/{file_hash}.png",
        "delete_url": f"https://sm.ms/delete/{file_hash}",
        "page_url": f"https://sm.ms/image/{file_hash}",
        "created_at": "2024-01-01 10:00:00",
    }
    values.update(overrides)
    return UploadHistoryItem(**values)


@pytest.fixture
def d1() -> SqliteD1:
    fake = SqliteD1()
    yield fake
    fake.conn.close()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def make_item():
    return build_item


@pytest.fixture
def page_error():
    def _error(page: int = 0) -> TransportError:
        return TransportError(f"Failed to get upload history: request failed (page {page})")

    return _error
