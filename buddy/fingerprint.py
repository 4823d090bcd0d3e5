"""Cheap screen-text signatures for change detection."""

from __future__ import annotations

FINGERPRINT_CHARS = 350


def fingerprint(text: str, limit: int = FINGERPRINT_CHARS) -> str:
    """Return a lightweight signature for screen text.

    Only the first ``limit`` characters are inspected, lower-cased, with all
    whitespace removed. Two screens sharing that prefix count as the same
    screen; collisions are expected.
    """

    prefix = text[:limit].lower()
    return "".join(ch for ch in prefix if not ch.isspace())
