"""Novelty analysis for captured memory text.

The pipeline only depends on the ``NoveltyAnalyzer`` protocol. The default
``HeuristicNoveltyAnalyzer`` is a keyword scorer in the spirit of the
regex tier of an extraction engine: free, instant, deterministic.

Scoring per fragment:
- Each signal family has a base confidence when its pattern matches
- A rationale word ("because", "root cause", ...) adds ``RATIONALE_BOOST``
- An explicit label ("Insight:", "Lesson:", ...) adds ``LABEL_BOOST``
- Long fragments add ``LENGTH_BOOST``
- The best-scoring family wins; scores are capped at ``MAX_CONFIDENCE``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol

# ---------------------------------------------------------------------------
# Analyzer protocol (for dependency injection in tests)
# ---------------------------------------------------------------------------


class NoveltyAnalyzer(Protocol):
    """Protocol for analyzers that score text for memory-worthy signal."""

    def analyze(self, text: str) -> dict[str, Any]:
        """Score text fragments.

        Returns a dict with key ``extracts``: a list of dicts with keys
        - content: str (the fragment)
        - confidence: float (0.0-1.0)
        - signal: str (category label)
        """
        ...


# ---------------------------------------------------------------------------
# Heuristic analyzer
# ---------------------------------------------------------------------------

MIN_FRAGMENT_LENGTH = 20
MAX_FRAGMENT_LENGTH = 500
MAX_EXTRACTS = 20
RATIONALE_BOOST = 0.15
LABEL_BOOST = 0.2
LENGTH_BOOST = 0.05
LONG_FRAGMENT = 80
LABEL_ONLY_BASE = 0.5
MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class SignalPattern:
    signal: str
    pattern: re.Pattern[str]
    base: float


SIGNAL_PATTERNS: tuple[SignalPattern, ...] = (
    SignalPattern(
        "insight",
        re.compile(
            r"\b(?:realized|realised|learned|learnt|discovered|turns\s+out|found\s+that|"
            r"key\s+insight|lesson|takeaway|it\s+seems\s+that)\b",
            re.IGNORECASE,
        ),
        0.65,
    ),
    SignalPattern(
        "decision",
        re.compile(
            r"\b(?:decided|chose|chosen|went\s+with|opted\s+for|settled\s+on|"
            r"going\s+with|switched\s+to)\b",
            re.IGNORECASE,
        ),
        0.6,
    ),
    SignalPattern(
        "preference",
        re.compile(
            r"\b(?:prefers?|preferred|always\s+use|never\s+use|don'?t\s+like|"
            r"likes?\s+to|wants?\s+(?:me\s+)?to|rather\s+than)\b",
            re.IGNORECASE,
        ),
        0.6,
    ),
    SignalPattern(
        "correction",
        re.compile(
            r"\b(?:was\s+wrong|mistaken|mistake|corrected|misunderstood|"
            r"not\s+actually|actually\s+(?:is|was|does|uses))\b",
            re.IGNORECASE,
        ),
        0.55,
    ),
    SignalPattern(
        "constraint",
        re.compile(
            r"\b(?:must\s+not|must|cannot|can'?t|never|limitation|only\s+works|"
            r"requires?|not\s+supported)\b",
            re.IGNORECASE,
        ),
        0.5,
    ),
    SignalPattern(
        "pattern",
        re.compile(
            r"\b(?:whenever|every\s+time|tends?\s+to|usually|consistently|recurring)\b",
            re.IGNORECASE,
        ),
        0.5,
    ),
    SignalPattern(
        "reference",
        re.compile(r"https?://\S+|\bsee\s+(?:the\s+)?(?:docs|documentation)\b", re.IGNORECASE),
        0.45,
    ),
)

_RATIONALE_PATTERN = re.compile(
    r"\b(?:because|since|so\s+that|which\s+means|root\s+cause|due\s+to|therefore|"
    r"otherwise|instead\s+of)\b",
    re.IGNORECASE,
)

_LABEL_PATTERN = re.compile(
    r"^(?:insight|lesson|learned|learning|decision|gotcha|important|note|rule)\s*:",
    re.IGNORECASE,
)

# Fenced code blocks and inline code carry no prose signal
_CODE_FENCE_PATTERN = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_PATTERN = re.compile(r"`[^`]*`")

# Markdown list markers, headings, and quote markers at line start
_LINE_DECORATION_PATTERN = re.compile(r"^\s*(?:[-*+]\s+|\d+[.)]\s+|#{1,6}\s+|>\s*)+")
_EMPHASIS_PATTERN = re.compile(r"(\*\*|__)(.+?)\1")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'(])")


def split_fragments(text: str) -> list[str]:
    """Split markdown-ish text into candidate fragments.

    Code is stripped, each line is undecorated, and prose lines are split
    into sentences. Fragments shorter than ``MIN_FRAGMENT_LENGTH`` are dropped.
    """
    text = _CODE_FENCE_PATTERN.sub(" ", text)

    fragments: list[str] = []
    for line in text.splitlines():
        if line.lstrip().startswith("#"):
            # Headings name a section, they do not say anything
            continue
        line = _LINE_DECORATION_PATTERN.sub("", line)
        line = _EMPHASIS_PATTERN.sub(r"\2", line)
        line = line.strip()
        if not line:
            continue
        for sentence in _SENTENCE_SPLIT.split(line):
            sentence = sentence.strip()
            if len(_INLINE_CODE_PATTERN.sub("", sentence).strip()) < MIN_FRAGMENT_LENGTH:
                continue
            fragments.append(sentence[:MAX_FRAGMENT_LENGTH])
    return fragments


def score_fragment(fragment: str) -> tuple[str, float] | None:
    """Score a single fragment, returning (signal, confidence) or None."""
    prose = _INLINE_CODE_PATTERN.sub("", fragment)

    best: tuple[str, float] | None = None
    for candidate in SIGNAL_PATTERNS:
        if candidate.pattern.search(prose) and (best is None or candidate.base > best[1]):
            best = (candidate.signal, candidate.base)
    labelled = _LABEL_PATTERN.search(prose) is not None
    if best is None:
        if not labelled:
            return None
        best = ("insight", LABEL_ONLY_BASE)

    signal, confidence = best
    if _RATIONALE_PATTERN.search(prose):
        confidence += RATIONALE_BOOST
    if labelled:
        confidence += LABEL_BOOST
    if len(prose) >= LONG_FRAGMENT:
        confidence += LENGTH_BOOST
    return signal, round(min(confidence, MAX_CONFIDENCE), 2)


class HeuristicNoveltyAnalyzer:
    """Keyword-driven analyzer used when no other analyzer is configured."""

    def __init__(self, *, max_extracts: int = MAX_EXTRACTS) -> None:
        self._max_extracts = max_extracts

    def analyze(self, text: str) -> dict[str, Any]:
        extracts: list[dict[str, Any]] = []
        seen: set[str] = set()

        for fragment in split_fragments(text):
            key = fragment.casefold()
            if key in seen:
                continue
            seen.add(key)

            scored = score_fragment(fragment)
            if scored is None:
                continue
            signal, confidence = scored
            extracts.append({"content": fragment, "confidence": confidence, "signal": signal})
            if len(extracts) >= self._max_extracts:
                break

        return {"extracts": extracts}
