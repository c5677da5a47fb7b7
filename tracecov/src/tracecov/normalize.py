"""Normalization utilities."""

from __future__ import annotations

import re


_WHITESPACE_RE = re.compile(r"\s+")
_SUGGESTION_MARKER_RE = re.compile(r"\s*(✅|\U0001F195)\s*$")
_PRIORITY_TAG_RE = re.compile(r"^\s*[\[(](P[0-3])[\])]\s*|\s*[\[(](P[0-3])[\])]\s*$", re.IGNORECASE)


def normalize_light(text: str) -> str:
    """Collapse whitespace runs and strip leading/trailing whitespace."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_suggestion_marker(text: str) -> str:
    """Drop a trailing review marker from a suggested scenario."""
    return normalize_light(_SUGGESTION_MARKER_RE.sub("", text))


def split_priority_tag(text: str) -> tuple[str, str | None]:
    """Split a leading or trailing ``[P0]``/``(P0)`` tag off a scenario line.

    Returns the cleaned text and the tag (upper-cased) or ``None``.
    """
    match = _PRIORITY_TAG_RE.search(text)
    if not match:
        return normalize_light(text), None
    tag = (match.group(1) or match.group(2)).upper()
    cleaned = text[: match.start()] + " " + text[match.end() :]
    return normalize_light(cleaned), tag
