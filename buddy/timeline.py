"""Stderr debug output and event timeline logging."""

from __future__ import annotations

import sys
import threading
import time
from typing import Optional


def log_verbose(verbose: bool, message: str) -> None:
    if verbose:
        print(f"[Debug] {message}", file=sys.stderr)


def truncate(text: str, limit: int = 80) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class Timeline:
    """Write ``key=value`` event lines to stderr or an append-only file."""

    def __init__(self, enabled: bool, path: Optional[str] = None) -> None:
        self._enabled = enabled
        self._path = path
        self._start = time.monotonic()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log(self, event: str, **fields: object) -> None:
        if not self._enabled:
            return
        now = time.monotonic()
        elapsed = now - self._start
        payload = {
            "t": f"{elapsed:.3f}",
            "event": event,
            **fields,
        }
        line = " ".join(f"{key}={value}" for key, value in payload.items())
        if self._path:
            with self._lock:
                with open(self._path, "a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        else:
            print(f"[Timeline] {line}", file=sys.stderr)


def disabled_timeline() -> Timeline:
    """Return a timeline that drops every event."""

    return Timeline(enabled=False)
