"""Low-level table and row helpers for the D1 picture store."""

from __future__ import annotations

from typing import Any, Mapping

from picmirror.d1 import D1Client
from picmirror.errors import MappingError, PicmirrorError
from picmirror.utils import dbg

from .models import PictureRecord
from .sql import CREATE_TABLE_SQL, INDEX_SQLS, LATE_COLUMNS, alter_column_sql

_REQUIRED_TEXT = (
    "file_hash",
    "filename",
    "store_name",
    "file_type",
    "path",
    "url",
    "delete_url",
    "page_url",
    "created_at",
    "updated_at",
)
_REQUIRED_INT = ("id", "width", "height", "size")


async def ensure_table(d1: D1Client) -> None:
    """
    Create the picture table and its indexes if they are missing.

    Safe to call before every operation: the CREATE statements are idempotent
    and the column migration ignores "duplicate column" failures.
    """
    await d1.query(CREATE_TABLE_SQL)

    # Backward-compatible migration for tables created before these columns existed.
    for column, sql_type in LATE_COLUMNS.items():
        try:
            await d1.query(alter_column_sql(column, sql_type))
        except PicmirrorError as error:
            dbg(f"Skipping column migration for {column}: {error}")

    await d1.batch(list(INDEX_SQLS))


def _required_text(row: Mapping[str, Any], key: str, index: int) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise MappingError(index, key)
    return value


def _required_int(row: Mapping[str, Any], key: str, index: int) -> int:
    value = row.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MappingError(index, key)
    return value


def _flag(row: Mapping[str, Any], key: str, index: int, default: int | None) -> bool:
    value = row.get(key)
    if value is None and default is not None:
        return bool(default)
    if not isinstance(value, int):
        raise MappingError(index, key)
    return bool(value)


def _optional_text(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(key)
    return value if isinstance(value, str) else None


def map_row(row: Mapping[str, Any], index: int) -> PictureRecord:
    """
    Validate one loosely typed D1 row and convert it to a PictureRecord.

    Args:
        row (Mapping[str, Any]): Row as decoded from the D1 JSON response.
        index (int): Position of the row in its result set, used in errors.

    Returns:
        PictureRecord: The typed record.

    Raises:
        MappingError: A required field is absent or has the wrong type.
    """
    if not isinstance(row, Mapping):
        raise MappingError(index, "<row>")

    ints = {key: _required_int(row, key, index) for key in _REQUIRED_INT}
    texts = {key: _required_text(row, key, index) for key in _REQUIRED_TEXT}
    return PictureRecord(
        **ints,
        **texts,
        is_favorite=_flag(row, "is_favorite", index, default=None),
        is_deleted=_flag(row, "is_deleted", index, default=0),
        deleted_at=_optional_text(row, "deleted_at"),
        remark=_optional_text(row, "remark"),
    )


def hashes_from_rows(rows: list[Mapping[str, Any]]) -> set[str]:
    """Collect the `file_hash` column, skipping rows without a text hash."""
    out: set[str] = set()
    for row in rows:
        value = row.get("file_hash")
        if isinstance(value, str):
            out.add(value)
    return out
