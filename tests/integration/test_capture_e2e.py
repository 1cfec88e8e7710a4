"""End-to-end tests for the capture pipeline.

Every scenario runs the real reader, extractor, filter, dispatcher, and
store client. The analyzer is a fixed stub, the key and root providers are
plain coroutines, and the store server is an in-memory fake reached through
httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

from memory_capture.capture.dispatcher import PersistenceDispatcher
from memory_capture.capture.models import RunOutcome
from memory_capture.capture.pipeline import CapturePipeline
from memory_capture.config import Settings
from memory_capture.store.client import StoreClient
from memory_capture.store.server import ServerManager

BASE_URL = "http://127.0.0.1:3847"
SRC_DIR = Path(__file__).resolve().parents[2] / "src"


# -------------------------------------------------------------------
# Fakes
# -------------------------------------------------------------------


class FakeStoreServer:
    """In-memory store server: health endpoint plus JSON-RPC tool calls."""

    def __init__(self, rejections: list[str | None] | None = None) -> None:
        self.rejections = list(rejections or [])
        self.writes: list[dict[str, Any]] = []
        self.connections = 0
        self.closed_sessions = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"ok": True})
        if request.method == "DELETE":
            self.closed_sessions += 1
            return httpx.Response(204)

        message = json.loads(request.content)
        if "id" not in message:
            return httpx.Response(202)
        if message["method"] == "initialize":
            self.connections += 1
            result: dict[str, Any] = {"protocolVersion": "2025-03-26"}
        else:
            rejection = self.rejections.pop(0) if self.rejections else None
            arguments = message["params"]["arguments"]
            if rejection:
                result = {"content": [{"type": "text", "text": rejection}], "isError": True}
            else:
                self.writes.append(arguments)
                text = json.dumps({"id": f"learning-{len(self.writes)}"})
                result = {"content": [{"type": "text", "text": text}], "isError": False}
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": message["id"], "result": result},
            headers={"Mcp-Session-Id": "e2e-session"},
        )


def _stream(payload: dict[str, Any]) -> asyncio.StreamReader:
    stream = asyncio.StreamReader()
    stream.feed_data(json.dumps(payload).encode())
    stream.feed_eof()
    return stream


def _analyzer(extracts: list[dict[str, Any]]) -> MagicMock:
    analyzer = MagicMock()
    analyzer.analyze = MagicMock(return_value={"extracts": extracts})
    return analyzer


def _build_pipeline(
    server: FakeStoreServer,
    analyzer: MagicMock,
    *,
    passphrase: str | None = "correct horse battery staple",
) -> tuple[CapturePipeline, list[str]]:
    settings = Settings(_env_file=None)
    transport = httpx.MockTransport(server.handle)
    connect_calls: list[str] = []

    async def key_provider() -> str | None:
        return passphrase

    async def root_provider() -> Path:
        return Path("/tmp/memory-root")

    async def connector(base_url: str) -> StoreClient:
        connect_calls.append(base_url)
        return await StoreClient.connect(base_url, transport=transport)

    dispatcher = PersistenceDispatcher(
        key_provider=key_provider,
        root_provider=root_provider,
        server_manager=ServerManager(settings, transport=transport),
        connector=connector,
    )
    pipeline = CapturePipeline(settings=settings, analyzer=analyzer, dispatcher=dispatcher)
    return pipeline, connect_calls


def _write_payload(file_path: str) -> dict[str, Any]:
    return {
        "tool_name": "Write",
        "tool_input": {"file_path": file_path, "content": "Deep insight text"},
    }


# ===================================================================
# Scenarios
# ===================================================================


class TestCaptureScenarios:
    """The four reference scenarios."""

    @pytest.mark.asyncio
    async def test_memory_write_persists_learning(self):
        """Scenario A: one high-confidence extract becomes one learning."""
        server = FakeStoreServer()
        analyzer = _analyzer(
            [{"content": "Deep insight text", "confidence": 0.9, "signal": "insight"}]
        )
        pipeline, _ = _build_pipeline(server, analyzer)

        outcome = await pipeline.run(_stream(_write_payload("/home/u/memory/notes.md")))

        assert outcome is RunOutcome.PROCEED
        analyzer.analyze.assert_called_once_with("Deep insight text")
        assert server.writes == [
            {
                "type": "learning",
                "data": {
                    "type": "insight",
                    "content": "Deep insight text",
                    "confidence": 0.9,
                    "tags": ["auto-memory", "insight"],
                },
            }
        ]
        assert server.closed_sessions == 1

    @pytest.mark.asyncio
    async def test_non_memory_path_is_ignored(self):
        """Scenario B: no memory marker, no analysis, no writes."""
        server = FakeStoreServer()
        analyzer = _analyzer([{"content": "x", "confidence": 0.9, "signal": "insight"}])
        pipeline, connect_calls = _build_pipeline(server, analyzer)

        outcome = await pipeline.run(_stream(_write_payload("/home/u/docs/notes.md")))

        assert outcome is RunOutcome.PROCEED
        analyzer.analyze.assert_not_called()
        assert connect_calls == []
        assert server.writes == []

    @pytest.mark.asyncio
    async def test_missing_key_skips_connection(self):
        """Scenario C: no credential, no connection, one diagnostic line."""
        server = FakeStoreServer()
        analyzer = _analyzer([{"content": "x", "confidence": 0.9, "signal": "insight"}])
        pipeline, connect_calls = _build_pipeline(server, analyzer, passphrase=None)

        with patch("memory_capture.capture.dispatcher.log") as mock_log:
            outcome = await pipeline.run(_stream(_write_payload("/home/u/memory/notes.md")))

        assert outcome is RunOutcome.PROCEED
        assert connect_calls == []
        assert server.connections == 0
        assert server.writes == []
        assert len(mock_log.method_calls) == 1
        mock_log.info.assert_called_once_with("no_encryption_key_skipping")

    @pytest.mark.asyncio
    async def test_rejected_write_does_not_block_the_next(self):
        """Scenario D: first write rejected, second persisted, count = 1."""
        server = FakeStoreServer(rejections=["duplicate learning", None])
        analyzer = _analyzer(
            [
                {"content": "first", "confidence": 0.8, "signal": "decision"},
                {"content": "second", "confidence": 0.95, "signal": "insight"},
            ]
        )
        pipeline, _ = _build_pipeline(server, analyzer)

        with patch("memory_capture.capture.dispatcher.log") as mock_log:
            outcome = await pipeline.run(_stream(_write_payload("/home/u/memory/notes.md")))

        assert outcome is RunOutcome.PROCEED
        assert [w["data"]["content"] for w in server.writes] == ["second"]

        mock_log.warning.assert_called_once()
        assert mock_log.warning.call_args[0][0] == "write_rejected"
        assert mock_log.warning.call_args[1]["error"] == "duplicate learning"
        mock_log.info.assert_called_once_with("learnings_persisted", count=1, attempted=2)


class TestFailOpen:
    """Faults anywhere end in a clean outcome."""

    @pytest.mark.asyncio
    async def test_malformed_stdin(self):
        server = FakeStoreServer()
        pipeline, connect_calls = _build_pipeline(server, _analyzer([]))

        stream = asyncio.StreamReader()
        stream.feed_data(b"{not json")
        stream.feed_eof()

        assert await pipeline.run(stream) is RunOutcome.PROCEED
        assert connect_calls == []

    @pytest.mark.asyncio
    async def test_store_down_mid_run(self):
        """Transport faults on every write are logged; the run still proceeds."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/health":
                return httpx.Response(200)
            if request.method == "DELETE":
                return httpx.Response(204)
            message = json.loads(request.content)
            if message.get("method") == "tools/call":
                raise httpx.ReadTimeout("store stalled")
            if "id" not in message:
                return httpx.Response(202)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": message["id"], "result": {}})

        server = FakeStoreServer()
        server.handle = handler  # type: ignore[method-assign]
        analyzer = _analyzer(
            [
                {"content": "a", "confidence": 0.9, "signal": "insight"},
                {"content": "b", "confidence": 0.9, "signal": "insight"},
            ]
        )
        pipeline, _ = _build_pipeline(server, analyzer)

        with patch("memory_capture.capture.dispatcher.log") as mock_log:
            outcome = await pipeline.run(_stream(_write_payload("/x/memory/a.md")))

        assert outcome is RunOutcome.PROCEED

        assert mock_log.warning.call_count == 2
        mock_log.info.assert_not_called()

    @pytest.mark.asyncio
    async def test_real_analyzer_end_to_end(self):
        """The bundled analyzer feeds the real dispatcher."""
        server = FakeStoreServer()
        settings = Settings(_env_file=None)
        transport = httpx.MockTransport(server.handle)

        async def key_provider() -> str:
            return "passphrase"

        async def root_provider() -> Path:
            return Path("/tmp/root")

        async def connector(base_url: str) -> StoreClient:
            return await StoreClient.connect(base_url, transport=transport)

        pipeline = CapturePipeline(
            settings=settings,
            dispatcher=PersistenceDispatcher(
                key_provider=key_provider,
                root_provider=root_provider,
                server_manager=ServerManager(settings, transport=transport),
                connector=connector,
            ),
        )
        payload = {
            "tool_name": "Edit",
            "tool_input": {
                "file_path": "/home/u/.claude/memory/MEMORY.md",
                "old_string": "",
                "new_string": (
                    "- Decided to use httpx because it supports async\n"
                    "- The office has a nice view\n"
                ),
            },
        }

        assert await pipeline.run(_stream(payload)) is RunOutcome.PROCEED
        assert len(server.writes) == 1
        assert server.writes[0]["data"]["tags"] == ["auto-memory", "decision"]
        assert server.writes[0]["data"]["confidence"] == 0.75


# -------------------------------------------------------------------
# Process entry point
# -------------------------------------------------------------------


def _run_hook(stdin: Any) -> subprocess.CompletedProcess[str]:
    """Run ``python -m memory_capture`` with a stdin deadline far above the process timeout."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    env["MEMORY_CAPTURE_STDIN_TIMEOUT_SECONDS"] = "60"
    return subprocess.run(
        [sys.executable, "-m", "memory_capture"],
        stdin=stdin,
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
        check=False,
    )


class TestProcessEntryPoint:
    """The installed hook reaches EOF on non-pipe stdin without diagnostics."""

    def test_dev_null_stdin_is_silent(self):
        result = _run_hook(subprocess.DEVNULL)

        assert result.returncode == 0
        assert result.stdout == ""
        assert result.stderr == ""

    def test_event_redirected_from_file(self, tmp_path):
        event_file = tmp_path / "event.json"
        event_file.write_text(
            json.dumps(
                {
                    "tool_name": "Write",
                    "tool_input": {"file_path": "/repo/src/app.py", "content": "print(1)"},
                }
            )
        )

        with open(event_file) as stdin:
            result = _run_hook(stdin)

        assert result.returncode == 0
        assert result.stdout == ""
        assert result.stderr == ""
