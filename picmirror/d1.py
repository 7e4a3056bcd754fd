"""Client for the Cloudflare D1 HTTP query endpoint."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from aiohttp import ClientSession, client_exceptions

from picmirror.config import D1Config
from picmirror.errors import RemoteServiceError, TransportError
from picmirror.utils import dbg

API_BASE = "https://api.cloudflare.com/client/v4"
STATEMENT_SEPARATOR = "; "


def _error_code(raw: Any) -> int:
    """Coerce a D1 error code to int; missing or malformed codes become 0."""
    if isinstance(raw, bool):
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


class D1Client:
    """
    Send SQL text to one D1 database.

    The endpoint has no parameter binding: callers pass finished SQL built by
    `picmirror.store_utils.sql`, which escapes every literal.
    """

    def __init__(
        self, config: D1Config, session: ClientSession, api_base: str = API_BASE
    ) -> None:
        self.config = config
        self.session = session
        self.url = (
            f"{api_base.rstrip('/')}/accounts/{config.account_id}"
            f"/d1/database/{config.database_id}/query"
        )

    async def _post(self, sql: str, label: str) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.config.api_token}",
            "Content-Type": "application/json",
        }
        try:
            async with self.session.post(
                self.url, json={"sql": sql}, headers=headers
            ) as resp:
                payload = await resp.json(content_type=None)
        except (client_exceptions.ClientError, asyncio.TimeoutError) as error:
            raise TransportError(f"{label}: request failed: {error}") from error
        except ValueError as error:
            raise TransportError(f"{label}: invalid response: {error}") from error

        if not isinstance(payload, dict):
            raise TransportError(f"{label}: invalid response: {payload!r}")
        if not payload.get("success"):
            errors = [
                (_error_code(e.get("code")), str(e.get("message", "")))
                for e in payload.get("errors") or []
                if isinstance(e, dict)
            ]
            raise RemoteServiceError(label, errors)
        return payload

    async def query(self, sql: str) -> list[dict[str, Any]]:
        """
        Execute one statement and return the rows of the first result set.

        Returns:
            list[dict[str, Any]]: Rows, empty when the statement yields none.
        """
        dbg(f"D1 query: {sql[:200]}")
        payload = await self._post(sql, "Query failed")
        results = payload.get("result") or []
        if not results:
            return []
        rows = results[0].get("results") if isinstance(results[0], dict) else None
        return list(rows or [])

    async def batch(self, statements: Sequence[str]) -> None:
        """
        Execute statements as one request; D1 runs them in a single transaction.

        An empty sequence is a no-op.
        """
        if not statements:
            return
        dbg(f"D1 batch: {len(statements)} statement(s)")
        await self._post(STATEMENT_SEPARATOR.join(statements), "Batch execution failed")

    async def test_connection(self) -> str:
        """Run a trivial query to check the credentials and database id."""
        await self._post("SELECT 1 as test", "Connection failed")
        return "Connection successful"
