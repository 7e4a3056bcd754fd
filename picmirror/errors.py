"""Exception types shared by the picmirror clients and store operations."""

from __future__ import annotations

from typing import Sequence


class PicmirrorError(Exception):
    """Base class for every error raised by picmirror."""


class TransportError(PicmirrorError):
    """Network, connection or response decoding failure."""


class ConfigurationError(PicmirrorError):
    """Missing or unreadable settings or credentials."""


class RemoteServiceError(PicmirrorError):
    """The metadata store answered but reported a logical failure."""

    def __init__(self, label: str, errors: Sequence[tuple[int, str]]) -> None:
        self.label = label
        self.errors = list(errors)
        super().__init__(f"{label}: {self.diagnostic}")

    @property
    def diagnostic(self) -> str:
        """Join all reported (code, message) pairs into one string."""
        if not self.errors:
            return "unknown error"
        return ", ".join(f"[{code}] {message}" for code, message in self.errors)


class HostError(PicmirrorError):
    """The image host answered with ``success: false``."""

    def __init__(self, label: str, message: str) -> None:
        self.label = label
        self.host_message = message
        super().__init__(f"{label}: {message}")


class MappingError(PicmirrorError):
    """A metadata row is missing a field or holds the wrong type."""

    def __init__(self, index: int, field: str) -> None:
        self.index = index
        self.field = field
        super().__init__(f"Record {index} has a missing or invalid '{field}' field")


class PictureNotFoundError(PicmirrorError):
    """No picture row has the requested id."""

    def __init__(self, picture_id: int) -> None:
        self.picture_id = picture_id
        super().__init__(f"Picture {picture_id} does not exist")
