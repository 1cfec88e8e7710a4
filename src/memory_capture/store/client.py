"""JSON-RPC client for the memory store.

Speaks the store's streamable-HTTP tool protocol: an ``initialize``
handshake that may hand back a session id, one ``tools/call`` request per
write, and a session ``DELETE`` on close. Responses arrive either as plain
JSON or as a single server-sent event.

Two kinds of failure are kept apart:
- Transport and protocol faults (HTTP errors, JSON-RPC errors) raise.
- Application-level rejections come back as ``{"error": ...}``.
"""

from __future__ import annotations

import itertools
import json
from typing import Any

import httpx

from memory_capture import __version__
from memory_capture.config import Settings, get_settings
from memory_capture.constants import (
    REQUEST_TIMEOUT_SECONDS,
    STORE_ENDPOINT,
    STORE_PROTOCOL_VERSION,
    STORE_TOOL_NAME,
)
from memory_capture.exceptions import StoreClientError
from memory_capture.logging import get_logger

log = get_logger("memory_capture.store.client")

SESSION_HEADER = "Mcp-Session-Id"
CLIENT_NAME = "memory-capture"


def _parse_event_stream(body: str) -> list[dict[str, Any]]:
    """Collect the JSON payloads of all ``data:`` events in an SSE body."""
    messages: list[dict[str, Any]] = []
    data_lines: list[str] = []
    for line in [*body.splitlines(), ""]:
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
        elif not line and data_lines:
            try:
                message = json.loads("\n".join(data_lines))
            except ValueError:
                message = None
            if isinstance(message, dict):
                messages.append(message)
            data_lines = []
    return messages


def _tool_result_payload(result: Any) -> dict[str, Any]:
    """Turn a ``tools/call`` result into the dict handed back to callers."""
    if not isinstance(result, dict):
        return {"result": result}

    text = "".join(
        part.get("text", "")
        for part in result.get("content", [])
        if isinstance(part, dict) and part.get("type") == "text"
    )
    try:
        decoded: Any = json.loads(text) if text else None
    except ValueError:
        decoded = None

    if result.get("isError"):
        if isinstance(decoded, dict) and decoded.get("error"):
            return {"error": str(decoded["error"])}
        return {"error": text or "store rejected the write"}

    if isinstance(decoded, dict):
        return decoded
    return {"result": text}


class StoreClient:
    """Session-scoped client for the memory store server."""

    def __init__(
        self,
        base_url: str,
        *,
        endpoint: str = STORE_ENDPOINT,
        tool_name: str = STORE_TOOL_NAME,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{endpoint}"
        self._tool_name = tool_name
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._session_id: str | None = None
        self._ids = itertools.count(1)
        self._closed = False

    @classmethod
    async def connect(cls, base_url: str, **kwargs: Any) -> StoreClient:
        """Open a client and complete the handshake.

        The client is closed again if the handshake fails.
        """
        client = cls(base_url, **kwargs)
        try:
            await client.initialize()
        except BaseException:
            await client.close()
            raise
        return client

    async def initialize(self) -> dict[str, Any]:
        """Run the protocol handshake."""
        result = await self._request(
            "initialize",
            {
                "protocolVersion": STORE_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": CLIENT_NAME, "version": __version__},
            },
        )
        await self._notify("notifications/initialized")
        log.debug("store_session_opened", url=self._url, session=self._session_id)
        return result if isinstance(result, dict) else {}

    async def write(self, kind: str, record: dict[str, Any]) -> dict[str, Any]:
        """Write one record of ``kind`` to the store.

        Returns:
            The store's response; contains ``error`` when the store
            rejected the record.

        Raises:
            httpx.HTTPError: On transport failures.
            StoreClientError: On protocol-level errors.
        """
        result = await self._request(
            "tools/call",
            {"name": self._tool_name, "arguments": {"type": kind, "data": record}},
        )
        return _tool_result_payload(result)

    async def close(self) -> None:
        """End the session and release the HTTP client."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._session_id:
                try:
                    await self._client.delete(self._url, headers=self._headers())
                except httpx.HTTPError as exc:
                    log.debug("store_session_close_failed", error=str(exc))
        finally:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json, text/event-stream",
            "Content-Type": "application/json",
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id
        return headers

    async def _request(self, method: str, params: dict[str, Any]) -> Any:
        request_id = next(self._ids)
        resp = await self._client.post(
            self._url,
            json={"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
            headers=self._headers(),
        )
        resp.raise_for_status()

        session_id = resp.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id

        message = self._match_response(resp, request_id)
        error = message.get("error")
        if error is not None:
            detail = error.get("message", error) if isinstance(error, dict) else error
            raise StoreClientError(f"{method} failed: {detail}")
        return message.get("result")

    async def _notify(self, method: str) -> None:
        resp = await self._client.post(
            self._url,
            json={"jsonrpc": "2.0", "method": method},
            headers=self._headers(),
        )
        resp.raise_for_status()

    @staticmethod
    def _match_response(resp: httpx.Response, request_id: int) -> dict[str, Any]:
        content_type = resp.headers.get("content-type", "")
        if content_type.startswith("text/event-stream"):
            messages = _parse_event_stream(resp.text)
        else:
            try:
                body = resp.json()
            except ValueError as exc:
                raise StoreClientError("Store returned a non-JSON response") from exc
            messages = body if isinstance(body, list) else [body]

        for message in messages:
            if isinstance(message, dict) and message.get("id") == request_id:
                return message
        raise StoreClientError(f"No response for request {request_id}")


async def connect_store(base_url: str, settings: Settings | None = None) -> StoreClient:
    """Open a store client configured from settings."""
    settings = settings or get_settings()
    return await StoreClient.connect(
        base_url,
        endpoint=settings.store_endpoint,
        tool_name=settings.store_tool_name,
        timeout=settings.request_timeout_seconds,
    )
