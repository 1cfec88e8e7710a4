"""Persistence dispatcher.

Opens the store connection lazily (key, root, server, client, in that
order) and writes each retained fragment as a learning. Writes are
sequential and isolated: one fragment failing never stops the next.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

from memory_capture.capture.models import (
    DispatchSummary,
    FragmentResult,
    PersistedLearning,
    SignalFragment,
    WriteStatus,
)
from memory_capture.constants import LEARNING_KIND, MARKER_TAG
from memory_capture.exceptions import KeyProviderError
from memory_capture.logging import get_logger

log = get_logger("memory_capture.capture.dispatcher")


# ---------------------------------------------------------------------------
# Collaborator protocols (for dependency injection in tests)
# ---------------------------------------------------------------------------


class StoreWriter(Protocol):
    """A connected store client."""

    async def write(self, kind: str, record: dict[str, Any]) -> dict[str, Any] | None: ...

    async def close(self) -> None: ...


class ServerLocator(Protocol):
    """Anything that can hand back the address of a running store server."""

    async def ensure_server(self, passphrase: str, memory_root: Path) -> Any:
        """Return an object with a ``base_url`` attribute."""
        ...


KeyProvider = Callable[[], Awaitable[str | None]]
RootProvider = Callable[[], Awaitable[Path]]
StoreConnector = Callable[[str], Awaitable[StoreWriter]]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def persist_fragment(
    client: StoreWriter,
    fragment: SignalFragment,
    *,
    marker_tag: str = MARKER_TAG,
) -> FragmentResult:
    """Write a single fragment, capturing any failure in the result."""
    learning = PersistedLearning.from_fragment(fragment, marker_tag=marker_tag)
    try:
        response = await client.write(LEARNING_KIND, learning.to_dict())
    except Exception as exc:
        log.warning("write_failed", signal=fragment.signal, error=str(exc))
        return FragmentResult(fragment=fragment, status=WriteStatus.FAILED, error=str(exc))

    if isinstance(response, dict) and response.get("error"):
        error = str(response["error"])
        log.warning("write_rejected", signal=fragment.signal, error=error)
        return FragmentResult(fragment=fragment, status=WriteStatus.REJECTED, error=error)

    return FragmentResult(fragment=fragment, status=WriteStatus.PERSISTED)


async def persist_fragments(
    client: StoreWriter,
    fragments: list[SignalFragment],
    *,
    marker_tag: str = MARKER_TAG,
) -> DispatchSummary:
    """Write every fragment in order and fold the outcomes into a summary.

    Emits one summary line when at least one learning was persisted.
    """
    summary = DispatchSummary()
    for fragment in fragments:
        summary.results.append(await persist_fragment(client, fragment, marker_tag=marker_tag))

    if summary.persisted > 0:
        log.info("learnings_persisted", count=summary.persisted, attempted=summary.attempted)
    return summary


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class PersistenceDispatcher:
    """Resolves store prerequisites and dispatches fragments to the store."""

    def __init__(
        self,
        *,
        key_provider: KeyProvider,
        root_provider: RootProvider,
        server_manager: ServerLocator,
        connector: StoreConnector,
        marker_tag: str = MARKER_TAG,
    ) -> None:
        self._key_provider = key_provider
        self._root_provider = root_provider
        self._server_manager = server_manager
        self._connector = connector
        self._marker_tag = marker_tag

    async def connect(self) -> StoreWriter | None:
        """Open a store client.

        Returns None when no encryption key is available, without touching
        the server. Faults from root, server, or connection setup propagate.
        """
        try:
            passphrase = await self._key_provider()
        except KeyProviderError as exc:
            log.warning("encryption_key_unavailable", error=str(exc))
            return None
        if not passphrase:
            log.info("no_encryption_key_skipping")
            return None

        memory_root = await self._root_provider()
        handle = await self._server_manager.ensure_server(passphrase, memory_root)
        return await self._connector(handle.base_url)

    async def dispatch(
        self, client: StoreWriter, fragments: list[SignalFragment]
    ) -> DispatchSummary:
        """Persist ``fragments`` through an open client."""
        return await persist_fragments(client, fragments, marker_tag=self._marker_tag)
