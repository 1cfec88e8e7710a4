"""Capture pipeline supervisor.

Coordinates one hook run:
1. Read the hook payload from stdin (bounded by a deadline)
2. Extract memory content from the event
3. Filter analyzer fragments by confidence
4. Connect to the store and persist each fragment
5. Close the connection

Every path ends in ``RunOutcome.PROCEED``. Nothing that goes wrong here
may fail or delay the tool call that triggered the hook.
"""

from __future__ import annotations

from functools import partial

from memory_capture.capture.dispatcher import PersistenceDispatcher, StoreWriter
from memory_capture.capture.extractors import extract_content, filter_signals
from memory_capture.capture.models import RunOutcome, SignalFragment
from memory_capture.capture.novelty import HeuristicNoveltyAnalyzer, NoveltyAnalyzer
from memory_capture.capture.reader import ByteStream, decode_event, read_stdin
from memory_capture.config import Settings, get_settings
from memory_capture.logging import get_logger
from memory_capture.store.client import connect_store
from memory_capture.store.keys import get_encryption_key, get_memory_root
from memory_capture.store.server import ServerManager
from memory_capture.utils import timed_operation

log = get_logger("memory_capture.capture.pipeline")


async def close_quietly(client: StoreWriter) -> None:
    """Close a store client, ignoring any failure."""
    try:
        await client.close()
    except Exception as exc:
        log.debug("store_close_failed", error=str(exc))


def build_dispatcher(settings: Settings) -> PersistenceDispatcher:
    """Wire the dispatcher to the real key, root, server, and client."""
    return PersistenceDispatcher(
        key_provider=partial(get_encryption_key, settings),
        root_provider=partial(get_memory_root, settings),
        server_manager=ServerManager(settings),
        connector=partial(connect_store, settings=settings),
        marker_tag=settings.marker_tag,
    )


class CapturePipeline:
    """Orchestrates the read → extract → filter → persist flow.

    Collaborators default to the real implementations built from settings;
    tests inject their own.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        analyzer: NoveltyAnalyzer | None = None,
        dispatcher: PersistenceDispatcher | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._analyzer = analyzer or HeuristicNoveltyAnalyzer()
        self._dispatcher = dispatcher or build_dispatcher(self._settings)

    async def collect(self, stream: ByteStream) -> list[SignalFragment]:
        """Read one event and return the fragments worth persisting.

        Returns an empty list for every "nothing to do" case: no input,
        malformed input, no matching extraction rule, nothing above threshold.
        """
        raw = await read_stdin(stream, timeout=self._settings.stdin_timeout_seconds)
        event = decode_event(raw)
        if event is None:
            return []

        content = extract_content(event, marker=self._settings.memory_path_marker)
        if content is None:
            return []

        log.debug("memory_write_observed", tool=event.tool_name, chars=len(content))
        return filter_signals(
            self._analyzer, content, threshold=self._settings.confidence_threshold
        )

    async def run(self, stream: ByteStream) -> RunOutcome:
        """Run the full pipeline. Always returns ``RunOutcome.PROCEED``."""
        client: StoreWriter | None = None
        async with timed_operation("capture_run", log=log):
            try:
                fragments = await self.collect(stream)
                if fragments:
                    client = await self._dispatcher.connect()
                    if client is not None:
                        await self._dispatcher.dispatch(client, fragments)
            except Exception as exc:
                log.error(
                    "capture_error_non_fatal",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            finally:
                if client is not None:
                    await close_quietly(client)
        return RunOutcome.PROCEED
