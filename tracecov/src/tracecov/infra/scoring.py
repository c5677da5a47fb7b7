"""Deterministic word-overlap helpers."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Set, Tuple

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# Two texts sharing at least this many words describe the same behavior.
SIMILAR_MIN_COMMON_WORDS = 4

STOP_WORDS = frozenset(
    {"a", "an", "the", "and", "or", "of", "to", "in", "on", "for", "with", "by", "is", "be", "it", "should", "when"}
)


def tokenize(text: str) -> Set[str]:
    """Lower-cased word set; camelCase and snake_case identifiers are split."""
    spaced = _CAMEL_RE.sub(" ", text).replace("_", " ")
    return set(_TOKEN_RE.findall(spaced.lower()))


def content_tokens(text: str) -> Set[str]:
    return tokenize(text) - STOP_WORDS


def common_words(left: str, right: str) -> int:
    return len(tokenize(left) & tokenize(right))


def is_similar(left: str, right: str, minimum: int = SIMILAR_MIN_COMMON_WORDS) -> bool:
    return common_words(left, right) >= minimum


def coverage_ratio(scenario: str, test_text: str) -> float:
    """Share of the scenario's content words found in the test text."""
    wanted = content_tokens(scenario)
    if not wanted:
        return 0.0
    return len(wanted & content_tokens(test_text)) / len(wanted)


def best_similar(text: str, candidates: Iterable[str], minimum: int = SIMILAR_MIN_COMMON_WORDS) -> Optional[str]:
    """Most overlapping candidate with at least ``minimum`` common words.

    Ties keep the earliest candidate.
    """
    best: Optional[Tuple[int, str]] = None
    for candidate in candidates:
        score = common_words(text, candidate)
        if score < minimum:
            continue
        if best is None or score > best[0]:
            best = (score, candidate)
    return best[1] if best else None
