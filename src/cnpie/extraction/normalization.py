"""Text normalization helpers used during decoding and validation."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def meaningful_length(text: str) -> int:
    """Length of *text* once whitespace runs count as a single character."""

    return len(normalize_whitespace(text))
