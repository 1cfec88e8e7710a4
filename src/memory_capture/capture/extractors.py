"""Content extraction and signal filtering.

Extraction rules map (tool class, target path) to the field holding the
changed text:

- ``Write`` on a memory path: the full file content
- ``Edit`` on a memory path: the replacement string

Filtering hands that text to the novelty analyzer and keeps only the
fragments scored at or above the confidence threshold.
"""

from __future__ import annotations

from memory_capture.capture.models import EditEvent, HookEvent, SignalFragment, WriteEvent
from memory_capture.capture.novelty import NoveltyAnalyzer
from memory_capture.constants import CONFIDENCE_THRESHOLD, MEMORY_PATH_MARKER
from memory_capture.logging import get_logger

log = get_logger("memory_capture.capture.extractors")


def is_memory_path(file_path: str | None, marker: str = MEMORY_PATH_MARKER) -> bool:
    """Check whether a target path lies inside a memory area."""
    return file_path is not None and marker in file_path


def extract_content(event: HookEvent, marker: str = MEMORY_PATH_MARKER) -> str | None:
    """Return the text written or changed by the event, if it is memory content.

    Pure and total: events on other paths, other tools, and missing or
    empty fields all yield None.
    """
    if not is_memory_path(event.file_path, marker):
        return None

    if isinstance(event, WriteEvent):
        return event.content or None

    if isinstance(event, EditEvent):
        return event.new_string or None

    return None


def filter_signals(
    analyzer: NoveltyAnalyzer,
    text: str,
    threshold: float = CONFIDENCE_THRESHOLD,
) -> list[SignalFragment]:
    """Run the analyzer over ``text`` and keep fragments with confidence >= threshold.

    Analyzer order is preserved. Extracts without a usable confidence are
    dropped before the threshold comparison.
    """
    result = analyzer.analyze(text)
    raw_extracts = result.get("extracts") if isinstance(result, dict) else None
    if not isinstance(raw_extracts, list):
        raw_extracts = []

    fragments: list[SignalFragment] = []
    malformed = 0
    for raw in raw_extracts:
        fragment = SignalFragment.from_dict(raw)
        if fragment is None:
            malformed += 1
            continue
        if fragment.confidence >= threshold:
            fragments.append(fragment)

    if malformed:
        log.debug("analyzer_extracts_malformed", count=malformed)
    log.debug(
        "signals_filtered",
        candidates=len(raw_extracts),
        retained=len(fragments),
        threshold=threshold,
    )
    return fragments
