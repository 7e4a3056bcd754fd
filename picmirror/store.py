"""Public picture store facade built from smaller store utility modules."""

from __future__ import annotations

from picmirror.store_utils.db import ensure_table, map_row
from picmirror.store_utils.models import (
    BatchDeleteResult,
    DeleteOutcome,
    PictureQuery,
    PictureRecord,
    SyncStats,
    UploadHistoryItem,
    UploadResult,
)
from picmirror.store_utils.operations import (
    batch_delete_pictures,
    batch_update_remark,
    count_pictures,
    delete_picture,
    import_all,
    list_file_types,
    query_pictures,
    sync_one_call,
    toggle_favorite,
    update_remark,
    upload_images,
)

__all__ = [
    "BatchDeleteResult",
    "DeleteOutcome",
    "PictureQuery",
    "PictureRecord",
    "SyncStats",
    "UploadHistoryItem",
    "UploadResult",
    "batch_delete_pictures",
    "batch_update_remark",
    "count_pictures",
    "delete_picture",
    "ensure_table",
    "import_all",
    "list_file_types",
    "map_row",
    "query_pictures",
    "sync_one_call",
    "toggle_favorite",
    "update_remark",
    "upload_images",
]
