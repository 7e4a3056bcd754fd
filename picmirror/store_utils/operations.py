"""High-level picture store operations, including the upload-history sync engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

from tqdm import tqdm

from picmirror.d1 import D1Client
from picmirror.errors import PicmirrorError, PictureNotFoundError
from picmirror.smms import SmmsClient, hash_from_delete_url
from picmirror.utils import dbg

from .db import ensure_table, hashes_from_rows, map_row
from .models import (
    BatchDeleteResult,
    DeleteOutcome,
    PictureQuery,
    PictureRecord,
    SyncStats,
    UploadResult,
)
from .sql import (
    SELECT_FILE_TYPES_SQL,
    SELECT_LIVE_HASHES_SQL,
    count_pictures_sql,
    select_delete_target_sql,
    select_pictures_sql,
    set_favorite_sql,
    set_remark_sql,
    soft_delete_by_hash_sql,
    soft_delete_by_id_sql,
    upsert_picture_sql,
)

MAX_PAGES = 100
BATCH_SIZE = 50
MAX_CONSECUTIVE_FAILURES = 3


async def _live_hashes(d1: D1Client) -> set[str]:
    return hashes_from_rows(await d1.query(SELECT_LIVE_HASHES_SQL))


async def _flush(d1: D1Client, pending: list[str]) -> None:
    if pending:
        await d1.batch(pending)
        pending.clear()


async def import_all(
    d1: D1Client,
    host: SmmsClient,
    max_pages: int = MAX_PAGES,
    batch_size: int = BATCH_SIZE,
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    show_progress: bool = False,
) -> SyncStats:
    """
    Walk the whole upload history and mirror it into D1.

    Every item is upserted by hash with its soft-delete flag cleared. Failed
    pages are skipped, not retried; after `max_consecutive_failures` failures
    in a row the walk stops, and fails outright only if nothing was imported.
    Once the walk ends, live rows whose hash the host did not list are
    soft-deleted.

    Args:
        d1 (D1Client): Metadata store client.
        host (SmmsClient): Image host client.
        max_pages (int): Highest page number to request.
        batch_size (int): Statements per D1 round trip.
        max_consecutive_failures (int): Page failures in a row that end the walk.
        show_progress (bool): Show a tqdm page counter.

    Returns:
        SyncStats: Added, skipped and soft-deleted counts.
    """
    await ensure_table(d1)

    existing_hashes = await _live_hashes(d1)
    api_hashes: set[str] = set()
    added = 0
    skipped = 0
    page = 1
    consecutive_failures = 0

    progress_bar = tqdm(
        desc="Pages", unit="page", leave=False, disable=not show_progress
    )
    try:
        while page <= max_pages:
            try:
                items = await host.fetch_history_page(page)
            except PicmirrorError as error:
                consecutive_failures += 1
                dbg(f"Page {page} failed ({consecutive_failures} in a row): {error}")
                if consecutive_failures >= max_consecutive_failures:
                    if added + skipped > 0:
                        break
                    raise PicmirrorError(
                        f"{max_consecutive_failures} consecutive page fetches failed: {error}"
                    ) from error
                page += 1
                continue

            consecutive_failures = 0
            if not items:
                dbg(f"Page {page} is empty; end of history")
                break

            pending: list[str] = []
            for item in items:
                api_hashes.add(item.hash)
                if item.hash in existing_hashes:
                    skipped += 1
                else:
                    added += 1
                    existing_hashes.add(item.hash)

                pending.append(upsert_picture_sql(item, restore=True))
                if len(pending) >= batch_size:
                    await _flush(d1, pending)

            await _flush(d1, pending)
            progress_bar.update(1)
            page += 1
    finally:
        progress_bar.close()

    deleted = 0
    if api_hashes:
        stale = sorted(await _live_hashes(d1) - api_hashes)
        # One batch so the whole reconciliation commits or rolls back together.
        await d1.batch([soft_delete_by_hash_sql(h) for h in stale])
        deleted = len(stale)

    dbg(f"Import finished: added={added} skipped={skipped} deleted={deleted}")
    return SyncStats(added=added, skipped=skipped, deleted=deleted)


async def sync_one_call(d1: D1Client, host: SmmsClient, page: int = 1) -> str:
    """
    Upsert one page of upload history without reconciliation.

    Soft-deleted rows stay deleted; use `import_all` to restore them.
    """
    await ensure_table(d1)

    items = await host.fetch_history_page(page)
    if not items:
        return "No new pictures to sync"

    await d1.batch([upsert_picture_sql(item) for item in items])
    return f"Synced {len(items)} picture(s) to the local database"


async def query_pictures(d1: D1Client, query: PictureQuery) -> list[PictureRecord]:
    """List pictures matching the filters, in the requested order."""
    await ensure_table(d1)
    rows = await d1.query(select_pictures_sql(query))
    return [map_row(row, index) for index, row in enumerate(rows)]


async def count_pictures(d1: D1Client, query: PictureQuery) -> int:
    """Count pictures matching the filters; paging and order are ignored."""
    await ensure_table(d1)
    rows = await d1.query(count_pictures_sql(query))
    if rows:
        count = rows[0].get("count")
        if isinstance(count, int):
            return count
    return 0


async def list_file_types(d1: D1Client) -> list[str]:
    """Distinct file types among pictures that are not deleted."""
    await ensure_table(d1)
    rows = await d1.query(SELECT_FILE_TYPES_SQL)
    return [row["file_type"] for row in rows if isinstance(row.get("file_type"), str)]


async def toggle_favorite(d1: D1Client, picture_id: int, is_favorite: bool) -> str:
    await d1.query(set_favorite_sql(picture_id, is_favorite))
    state = "added to" if is_favorite else "removed from"
    return f"Picture {picture_id} {state} favorites"


async def update_remark(d1: D1Client, picture_id: int, remark: str | None) -> str:
    await d1.query(set_remark_sql([picture_id], remark))
    return "Remark updated"


async def batch_update_remark(
    d1: D1Client, picture_ids: Sequence[int], remark: str | None
) -> str:
    if not picture_ids:
        raise ValueError("No pictures selected")
    await d1.query(set_remark_sql(picture_ids, remark))
    return f"Updated remark on {len(picture_ids)} picture(s)"


async def upload_images(
    d1: D1Client,
    host: SmmsClient,
    file_paths: Sequence[str],
    remark: str | None = None,
) -> list[UploadResult]:
    """
    Upload local files one by one and record each in D1.

    A failing file is reported in its UploadResult and does not stop the rest.
    """
    await ensure_table(d1)

    results: list[UploadResult] = []
    for file_path in file_paths:
        filename = os.path.basename(file_path) or "unknown"
        try:
            data = Path(file_path).read_bytes()
        except OSError as error:
            results.append(
                UploadResult(filename, False, f"Failed to read file: {error}", remark=remark)
            )
            continue

        try:
            item = await host.upload_file(data, filename)
        except PicmirrorError as error:
            results.append(UploadResult(filename, False, str(error), remark=remark))
            continue

        try:
            await d1.query(upsert_picture_sql(item, remark=remark, with_remark=True))
        except PicmirrorError as error:
            results.append(
                UploadResult(
                    filename,
                    False,
                    f"Uploaded but failed to record in database: {error}",
                    url=item.url,
                    remark=remark,
                )
            )
            continue

        results.append(UploadResult(filename, True, "Uploaded", url=item.url, remark=remark))
    return results


async def _delete_one(
    d1: D1Client, host: SmmsClient, picture_id: int
) -> tuple[str, DeleteOutcome]:
    rows = await d1.query(select_delete_target_sql(picture_id))
    if not rows:
        raise PictureNotFoundError(picture_id)

    delete_url = rows[0].get("delete_url")
    filename = rows[0].get("filename")
    filename = filename if isinstance(filename, str) else f"ID {picture_id}"
    if not isinstance(delete_url, str) or not delete_url:
        raise PicmirrorError(f"{filename}: invalid delete_url")

    outcome = await host.delete_by_hash(hash_from_delete_url(delete_url))
    await d1.query(soft_delete_by_id_sql(picture_id))
    return filename, outcome


async def delete_picture(d1: D1Client, host: SmmsClient, picture_id: int) -> str:
    """
    Delete a picture on the host, then soft-delete its row.

    The row is kept for history; a picture the host already removed is
    soft-deleted as well.
    """
    filename, outcome = await _delete_one(d1, host, picture_id)
    if outcome is DeleteOutcome.ALREADY_DELETED:
        return f"Picture {filename} marked deleted (already gone from the host)"
    return f"Picture {filename} deleted"


async def batch_delete_pictures(
    d1: D1Client, host: SmmsClient, picture_ids: Sequence[int]
) -> BatchDeleteResult:
    """Delete several pictures, collecting per-item failures."""
    if not picture_ids:
        raise ValueError("No pictures selected")

    result = BatchDeleteResult()
    for picture_id in picture_ids:
        try:
            await _delete_one(d1, host, picture_id)
        except PicmirrorError as error:
            result.fail(f"ID {picture_id}: {error}")
            continue
        result.success_count += 1
    return result
