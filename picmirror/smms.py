"""Client for the SM.MS image host API (v2)."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

from aiohttp import ClientSession, FormData, client_exceptions

from picmirror.errors import ConfigurationError, HostError, TransportError
from picmirror.store_utils.models import DeleteOutcome, UploadHistoryItem
from picmirror.utils import dbg, get_random_user_agent

API_BASE = "https://sm.ms/api/v2"
ALREADY_DELETED_MARKER = "already deleted"


def hash_from_delete_url(delete_url: str) -> str:
    """Extract the picture hash from `https://sm.ms/delete/<hash>`."""
    return delete_url.rstrip("/").rsplit("/", 1)[-1]


class SmmsClient:
    """
    Thin async wrapper over the SM.MS endpoints picmirror needs.

    Every call except `fetch_token` sends the API token in the
    `Authorization` header.
    """

    def __init__(
        self,
        session: ClientSession,
        token: Optional[str] = None,
        api_base: str = API_BASE,
    ) -> None:
        self.session = session
        self.token = token
        self.api_base = api_base.rstrip("/")

    def _headers(self, auth: bool = True) -> dict[str, str]:
        headers = {"User-Agent": get_random_user_agent(), "Accept": "application/json"}
        if auth:
            if not self.token:
                raise ConfigurationError("Log in to SM.MS first to obtain an API token")
            headers["Authorization"] = self.token
        return headers

    async def _request(
        self, method: str, endpoint: str, label: str, auth: bool = True, **kwargs: Any
    ) -> dict[str, Any]:
        url = f"{self.api_base}/{endpoint.lstrip('/')}"
        headers = self._headers(auth)
        dbg(f"SM.MS {method} {url} {kwargs.get('params') or ''}")
        try:
            async with self.session.request(
                method, url, headers=headers, **kwargs
            ) as resp:
                payload = await resp.json(content_type=None)
        except (client_exceptions.ClientError, asyncio.TimeoutError) as error:
            raise TransportError(f"{label}: request failed: {error}") from error
        except ValueError as error:
            raise TransportError(f"{label}: invalid response: {error}") from error

        if not isinstance(payload, dict):
            raise TransportError(f"{label}: invalid response: {payload!r}")
        return payload

    @staticmethod
    def _check(payload: Mapping[str, Any], label: str) -> None:
        if not payload.get("success"):
            raise HostError(label, str(payload.get("message") or "unknown error"))

    async def fetch_token(self, username: str, password: str) -> str:
        """Exchange username/password for an API token."""
        label = "Failed to get token"
        payload = await self._request(
            "POST",
            "token",
            label,
            auth=False,
            data={"username": username, "password": password},
        )
        self._check(payload, label)
        data = payload.get("data") or {}
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise HostError(label, "response has no token")
        return str(token)

    async def fetch_history_page(self, page: int = 1) -> list[UploadHistoryItem]:
        """
        Fetch one 1-indexed page of upload history.

        Returns:
            list[UploadHistoryItem]: Items on the page; empty means end of history.
        """
        label = "Failed to get upload history"
        payload = await self._request(
            "GET", "upload_history", label, params={"page": str(page)}
        )
        self._check(payload, label)
        try:
            return [UploadHistoryItem.from_api(raw) for raw in payload.get("data") or []]
        except (KeyError, TypeError, ValueError) as error:
            raise TransportError(f"{label}: invalid item: {error}") from error

    async def upload_file(self, data: bytes, filename: str) -> UploadHistoryItem:
        """Upload bytes as multipart field `smfile`."""
        label = "Upload failed"
        form = FormData()
        form.add_field("smfile", data, filename=filename)
        payload = await self._request("POST", "upload", label, data=form)
        self._check(payload, label)
        raw = payload.get("data")
        if not isinstance(raw, dict):
            raise HostError(label, "upload response has no data")
        try:
            return UploadHistoryItem.from_api(raw)
        except (KeyError, TypeError, ValueError) as error:
            raise TransportError(f"{label}: invalid upload data: {error}") from error

    async def delete_by_hash(self, file_hash: str) -> DeleteOutcome:
        """
        Delete one picture on the host.

        A failure whose message says the picture is already deleted is
        reported as `DeleteOutcome.ALREADY_DELETED`; the picture is gone either way.

        Raises:
            HostError: Any other host-reported failure.
        """
        label = "Delete failed"
        payload = await self._request("GET", f"delete/{file_hash}", label)
        if payload.get("success"):
            return DeleteOutcome.DELETED
        message = str(payload.get("message") or "")
        if ALREADY_DELETED_MARKER in message.lower():
            return DeleteOutcome.ALREADY_DELETED
        raise HostError(label, message or "unknown error")
