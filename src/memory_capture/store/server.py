"""Store server lifecycle.

The store server is shared by every hook invocation on the machine. This
module only checks that it answers, and starts it in its own session when
it does not. It never stops it.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from memory_capture.config import Settings, get_settings
from memory_capture.constants import SERVER_ENV_PASSPHRASE, SERVER_ENV_PORT, SERVER_ENV_ROOT
from memory_capture.exceptions import ServerStartError
from memory_capture.logging import get_logger

log = get_logger("memory_capture.store.server")

HEALTH_PATH = "/health"
HEALTH_TIMEOUT_SECONDS = 1.0


@dataclass(frozen=True)
class ServerHandle:
    """Address of a reachable store server."""

    base_url: str
    started: bool = False
    pid: int | None = None


class ServerManager:
    """Ensures the store server is reachable, starting it if needed."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = self._settings.server_url
        self._transport = transport

    async def is_healthy(self) -> bool:
        """Probe the health endpoint once."""
        try:
            async with httpx.AsyncClient(
                timeout=HEALTH_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                resp = await client.get(f"{self._base_url}{HEALTH_PATH}")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def ensure_server(self, passphrase: str, memory_root: Path) -> ServerHandle:
        """Return a handle to a healthy server, starting one if necessary.

        Raises:
            ServerStartError: If no server answers and none could be started.
        """
        if await self.is_healthy():
            log.debug("store_server_running", url=self._base_url)
            return ServerHandle(base_url=self._base_url)

        command = self._settings.server_command
        if not command:
            raise ServerStartError(
                f"Store server at {self._base_url} is not reachable and no start command is set"
            )

        proc = self._spawn(command, passphrase, memory_root)
        log.info("store_server_started", pid=proc.pid, url=self._base_url)

        await self._wait_ready(proc)
        return ServerHandle(base_url=self._base_url, started=True, pid=proc.pid)

    def _spawn(self, command: str, passphrase: str, memory_root: Path) -> subprocess.Popen[bytes]:
        """Start the server detached from this process."""
        env = {
            **os.environ,
            SERVER_ENV_PASSPHRASE: passphrase,
            SERVER_ENV_ROOT: str(memory_root),
            SERVER_ENV_PORT: str(self._settings.server_port),
        }
        try:
            # Own session so the server outlives this short-lived hook
            return subprocess.Popen(
                shlex.split(command),
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as exc:
            raise ServerStartError(f"Failed to start store server: {exc}") from exc

    async def _wait_ready(self, proc: subprocess.Popen[bytes]) -> None:
        """Poll the health endpoint until it answers or the deadline passes."""
        deadline = time.monotonic() + self._settings.server_ready_timeout_seconds
        while True:
            if await self.is_healthy():
                return
            returncode = proc.poll()
            if returncode is not None:
                raise ServerStartError(f"Store server exited during startup (code {returncode})")
            if time.monotonic() >= deadline:
                raise ServerStartError(
                    f"Store server not ready after {self._settings.server_ready_timeout_seconds}s"
                )
            await asyncio.sleep(self._settings.server_poll_interval_seconds)
