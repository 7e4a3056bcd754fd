"""Data models for the picture metadata mirror."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


@dataclass(frozen=True)
class UploadHistoryItem:
    """One entry from the image host's upload history (or an upload response)."""

    hash: str
    filename: str
    store_name: str
    size: int
    width: int
    height: int
    path: str
    url: str
    delete_url: str
    page_url: str
    created_at: str = ""

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> UploadHistoryItem:
        """Build an item from the host's JSON keys (`storename`, `delete`, `page`)."""
        return cls(
            hash=str(raw["hash"]),
            filename=str(raw["filename"]),
            store_name=str(raw["storename"]),
            size=int(raw["size"]),
            width=int(raw["width"]),
            height=int(raw["height"]),
            path=str(raw["path"]),
            url=str(raw["url"]),
            delete_url=str(raw["delete"]),
            page_url=str(raw["page"]),
            created_at=str(raw.get("created_at") or ""),
        )


@dataclass(frozen=True)
class PictureRecord:
    """One mirrored metadata row."""

    id: int
    file_hash: str
    filename: str
    store_name: str
    file_type: str
    width: int
    height: int
    size: int
    path: str
    url: str
    delete_url: str
    page_url: str
    is_favorite: bool
    is_deleted: bool
    created_at: str
    updated_at: str
    deleted_at: str | None = None
    remark: str | None = None


@dataclass(frozen=True)
class SyncStats:
    """Summary of one full import run."""

    added: int
    skipped: int
    deleted: int


@dataclass
class PictureQuery:
    """Filter, sort and paging parameters for picture listings.

    `include_deleted`: None lists everything, False only live rows,
    True only soft-deleted rows.
    """

    file_type: str | None = None
    is_favorite: bool | None = None
    include_deleted: bool | None = False
    filename: str | None = None
    store_name: str | None = None
    remark: str | None = None
    order_by: str = "created_at_desc"
    limit: int | None = None
    offset: int | None = None
    ids: list[int] | None = None


class DeleteOutcome(Enum):
    DELETED = "deleted"
    ALREADY_DELETED = "already_deleted"


@dataclass(frozen=True)
class UploadResult:
    """Result for uploading one local file."""

    filename: str
    success: bool
    message: str
    url: str | None = None
    remark: str | None = None


@dataclass
class BatchDeleteResult:
    """Result for deleting several pictures; failures never abort the batch."""

    success_count: int = 0
    failed_count: int = 0
    failed_items: list[str] = field(default_factory=list)

    def fail(self, reason: str) -> None:
        self.failed_count += 1
        self.failed_items.append(reason)
