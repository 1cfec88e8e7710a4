"""Data models for the capture pipeline.

Events are a small tagged union over the tool names the hook recognizes.
Everything else about a run is transient and lives in plain dataclasses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from memory_capture.constants import (
    EDIT_TOOL,
    LEARNING_TYPE,
    MARKER_TAG,
    WRITE_TOOL,
)

# ------------------------------------------------------------------
# Hook events
# ------------------------------------------------------------------


@dataclass(frozen=True)
class WriteEvent:
    """A full-file write."""

    file_path: str | None
    content: str | None = None

    tool_name: str = WRITE_TOOL


@dataclass(frozen=True)
class EditEvent:
    """An in-place replacement inside an existing file."""

    file_path: str | None
    new_string: str | None = None

    tool_name: str = EDIT_TOOL


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Any tool call the hook does not know how to read."""

    tool_name: str | None
    file_path: str | None = None


HookEvent = WriteEvent | EditEvent | UnrecognizedEvent


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def event_from_payload(payload: dict[str, Any]) -> HookEvent:
    """Build a typed event from a decoded hook payload.

    Fields of the wrong type are treated as absent so that odd payloads
    map to an event with nothing to extract rather than an error.
    """
    tool_name = _str_or_none(payload.get("tool_name"))
    tool_input = payload.get("tool_input")
    if not isinstance(tool_input, dict):
        return UnrecognizedEvent(tool_name=tool_name)

    file_path = _str_or_none(tool_input.get("file_path"))
    if tool_name == WRITE_TOOL:
        return WriteEvent(file_path=file_path, content=_str_or_none(tool_input.get("content")))
    if tool_name == EDIT_TOOL:
        return EditEvent(
            file_path=file_path, new_string=_str_or_none(tool_input.get("new_string"))
        )
    return UnrecognizedEvent(tool_name=tool_name, file_path=file_path)


# ------------------------------------------------------------------
# Signal fragments and learnings
# ------------------------------------------------------------------


@dataclass(frozen=True)
class SignalFragment:
    """A scored candidate produced by the novelty analyzer."""

    content: str
    confidence: float
    signal: str

    @classmethod
    def from_dict(cls, data: Any) -> SignalFragment | None:
        """Parse an analyzer extract, returning None when it is malformed."""
        if not isinstance(data, dict):
            return None
        content = data.get("content")
        signal = data.get("signal")
        confidence = data.get("confidence")
        if not isinstance(content, str) or not isinstance(signal, str):
            return None
        if isinstance(confidence, bool) or not isinstance(confidence, int | float):
            return None
        confidence = float(confidence)
        if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
            return None
        return cls(content=content, confidence=confidence, signal=signal)


@dataclass
class PersistedLearning:
    """The record written to the memory store for one fragment."""

    content: str
    confidence: float
    tags: list[str] = field(default_factory=list)
    type: str = LEARNING_TYPE

    @classmethod
    def from_fragment(
        cls, fragment: SignalFragment, marker_tag: str = MARKER_TAG
    ) -> PersistedLearning:
        return cls(
            content=fragment.content,
            confidence=fragment.confidence,
            tags=[marker_tag, fragment.signal],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "content": self.content,
            "confidence": self.confidence,
            "tags": list(self.tags),
        }


# ------------------------------------------------------------------
# Dispatch results
# ------------------------------------------------------------------


class WriteStatus(Enum):
    """Outcome of a single fragment write."""

    PERSISTED = "persisted"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class FragmentResult:
    """Result of persisting one fragment."""

    fragment: SignalFragment
    status: WriteStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is WriteStatus.PERSISTED


@dataclass
class DispatchSummary:
    """Accumulated per-fragment results of one dispatch pass."""

    results: list[FragmentResult] = field(default_factory=list)

    @property
    def persisted(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def attempted(self) -> int:
        return len(self.results)


class RunOutcome(Enum):
    """Terminal signal of a capture run. There is only one."""

    PROCEED = 0

    @property
    def exit_code(self) -> int:
        return int(self.value)
