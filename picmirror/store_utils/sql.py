"""SQL text builders for the D1 picture table.

D1's HTTP query endpoint only accepts raw SQL text, so every literal that
reaches a statement goes through `literal()`, which doubles single quotes.
"""

from __future__ import annotations

from typing import Any, Sequence

from picmirror.utils import derive_file_type

from .models import PictureQuery, UploadHistoryItem

TABLE = "smms_pictures"
NOW = "datetime('now')"

CREATE_TABLE_SQL = f"""CREATE TABLE IF NOT EXISTS {TABLE} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_hash TEXT NOT NULL UNIQUE,
    filename TEXT NOT NULL,
    store_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    size INTEGER NOT NULL,
    path TEXT NOT NULL,
    url TEXT NOT NULL,
    delete_url TEXT NOT NULL,
    page_url TEXT NOT NULL,
    is_favorite INTEGER DEFAULT 0,
    is_deleted INTEGER DEFAULT 0,
    deleted_at DATETIME,
    remark TEXT,
    created_at DATETIME NOT NULL,
    updated_at DATETIME DEFAULT (datetime('now'))
)"""

# Columns added after the first release; older tables are migrated in place.
LATE_COLUMNS = {
    "is_deleted": "INTEGER DEFAULT 0",
    "deleted_at": "DATETIME",
    "remark": "TEXT",
}

INDEX_SQLS = (
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_hash ON {TABLE}(file_hash)",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_created_at ON {TABLE}(created_at DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_updated_at ON {TABLE}(updated_at DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_favorite ON {TABLE}(is_favorite) "
    "WHERE is_favorite = 1",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_type ON {TABLE}(file_type)",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_type_created "
    f"ON {TABLE}(file_type, created_at DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_smms_pictures_deleted ON {TABLE}(is_deleted)",
)

ORDER_CLAUSES = {
    "created_at_asc": "created_at ASC",
    "created_at_desc": "created_at DESC",
    "updated_at_asc": "updated_at ASC",
    "updated_at_desc": "updated_at DESC",
    "size_asc": "size ASC",
    "size_desc": "size DESC",
}
DEFAULT_ORDER = "created_at_desc"

SELECT_LIVE_HASHES_SQL = f"SELECT file_hash FROM {TABLE} WHERE is_deleted = 0"
SELECT_FILE_TYPES_SQL = (
    f"SELECT DISTINCT file_type FROM {TABLE} WHERE is_deleted = 0 ORDER BY file_type"
)

_UPDATE_COLUMNS = (
    "filename",
    "store_name",
    "file_type",
    "width",
    "height",
    "size",
    "path",
    "url",
    "delete_url",
    "page_url",
)


def escape(value: str) -> str:
    """Double single quotes so the value can sit inside a '...' literal."""
    return value.replace("'", "''")


def literal(value: Any) -> str:
    """Render a Python value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    return f"'{escape(str(value))}'"


def alter_column_sql(column: str, sql_type: str) -> str:
    return f"ALTER TABLE {TABLE} ADD COLUMN {column} {sql_type}"


def upsert_picture_sql(
    item: UploadHistoryItem,
    restore: bool = False,
    remark: str | None = None,
    with_remark: bool = False,
) -> str:
    """
    Build an insert-or-update statement keyed on `file_hash`.

    Args:
        item (UploadHistoryItem): Item reported by the image host.
        restore (bool): Also reset `is_deleted`/`deleted_at`, undoing a prior soft delete.
        remark (str | None): Remark to store when `with_remark` is set.
        with_remark (bool): Write `remark` on insert and on conflict (uploads).

    Returns:
        str: One SQL statement.
    """
    columns = [
        "file_hash",
        "filename",
        "store_name",
        "file_type",
        "width",
        "height",
        "size",
        "path",
        "url",
        "delete_url",
        "page_url",
    ]
    values = [
        literal(item.hash),
        literal(item.filename),
        literal(item.store_name),
        literal(derive_file_type(item.filename)),
        literal(int(item.width)),
        literal(int(item.height)),
        literal(int(item.size)),
        literal(item.path),
        literal(item.url),
        literal(item.delete_url),
        literal(item.page_url),
    ]
    updates = [f"{col} = excluded.{col}" for col in _UPDATE_COLUMNS]

    if restore:
        columns.append("is_deleted")
        values.append("0")
        updates += ["is_deleted = 0", "deleted_at = NULL"]
    if with_remark:
        columns.append("remark")
        values.append(literal(remark))
        updates.append("remark = excluded.remark")

    columns += ["created_at", "updated_at"]
    values += [literal(item.created_at) if item.created_at else NOW, NOW]
    updates.append("updated_at = excluded.updated_at")

    return (
        f"INSERT INTO {TABLE} ({', '.join(columns)}) "
        f"VALUES ({', '.join(values)}) "
        f"ON CONFLICT(file_hash) DO UPDATE SET {', '.join(updates)}"
    )


def soft_delete_by_hash_sql(file_hash: str) -> str:
    return (
        f"UPDATE {TABLE} SET is_deleted = 1, deleted_at = {NOW}, updated_at = {NOW} "
        f"WHERE file_hash = {literal(file_hash)}"
    )


def soft_delete_by_id_sql(picture_id: int) -> str:
    return (
        f"UPDATE {TABLE} SET is_deleted = 1, deleted_at = {NOW}, updated_at = {NOW} "
        f"WHERE id = {int(picture_id)}"
    )


def select_delete_target_sql(picture_id: int) -> str:
    return f"SELECT delete_url, filename FROM {TABLE} WHERE id = {int(picture_id)}"


def set_favorite_sql(picture_id: int, is_favorite: bool) -> str:
    return (
        f"UPDATE {TABLE} SET is_favorite = {literal(bool(is_favorite))}, "
        f"updated_at = {NOW} WHERE id = {int(picture_id)}"
    )


def set_remark_sql(picture_ids: Sequence[int], remark: str | None) -> str:
    ids = ",".join(str(int(pid)) for pid in picture_ids)
    where = f"id = {ids}" if len(picture_ids) == 1 else f"id IN ({ids})"
    return (
        f"UPDATE {TABLE} SET remark = {literal(remark)}, updated_at = {NOW} "
        f"WHERE {where}"
    )


def _where_clause(query: PictureQuery) -> str:
    parts = ["1=1"]
    if query.ids:
        parts.append(f"id IN ({','.join(str(int(pid)) for pid in query.ids)})")
    if query.include_deleted is False:
        parts.append("is_deleted = 0")
    elif query.include_deleted is True:
        parts.append("is_deleted = 1")
    if query.file_type:
        parts.append(f"file_type = {literal(query.file_type)}")
    if query.is_favorite is not None:
        parts.append(f"is_favorite = {literal(bool(query.is_favorite))}")
    for column in ("filename", "store_name", "remark"):
        needle = getattr(query, column)
        if needle:
            parts.append(f"{column} LIKE '%{escape(needle)}%'")
    return " AND ".join(parts)


def select_pictures_sql(query: PictureQuery) -> str:
    """Build the filtered, ordered and paged listing statement."""
    order = ORDER_CLAUSES.get(query.order_by, ORDER_CLAUSES[DEFAULT_ORDER])
    sql = f"SELECT * FROM {TABLE} WHERE {_where_clause(query)} ORDER BY {order}"
    if query.limit is not None:
        sql += f" LIMIT {int(query.limit)}"
    if query.offset is not None:
        if query.limit is None:
            # SQLite only accepts OFFSET after a LIMIT clause.
            sql += " LIMIT -1"
        sql += f" OFFSET {int(query.offset)}"
    return sql


def count_pictures_sql(query: PictureQuery) -> str:
    return f"SELECT COUNT(*) as count FROM {TABLE} WHERE {_where_clause(query)}"
