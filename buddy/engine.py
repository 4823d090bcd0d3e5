"""Screen-text reactions: fingerprint gate, Gemini call, dedupe, delivery."""

from __future__ import annotations

from dataclasses import dataclass, replace
import sys
import threading
from typing import Any, Callable, List, Optional, Sequence

from buddy.fingerprint import FINGERPRINT_CHARS, fingerprint
from buddy.gemini import InferenceError
from buddy.parsing import ReactionEvent, ResponseFormatError, parse_reaction
from buddy.timeline import Timeline, disabled_timeline, log_verbose, truncate

DeliverFn = Callable[[str, str], None]

MAX_IN_FLIGHT = 3


@dataclass
class EngineState:
    """State of the most recently accepted cycle."""

    last_fingerprint: Optional[str] = None
    last_message: Optional[str] = None


def build_prompt(screen_text: str, buddy_ids: Sequence[str]) -> str:
    ids = ", ".join(buddy_ids)
    return (
        "You're a productivity buddy. Based on the following screen contents, "
        "write ONE message in this format:\n\n"
        "BUDDY_ID: message\n\n"
        f"- BUDDY_ID must be one of: {ids}\n"
        "- Message should be smart, short, and relevant.\n"
        "- If the user is focused (like coding or reading docs), respond nicely.\n"
        "- If they're procrastinating (e.g., YouTube or memes), respond with humor or sarcasm.\n"
        "- NEVER repeat the same message twice in a row, or give the same message "
        "with different grammar or punctuation or order.\n"
        "- Don't respond if you can't find anything relevant.\n\n"
        "Screen:\n"
        '"""\n'
        f"{screen_text}\n"
        '"""'
    )


class ReactionEngine:
    """Decide whether a screen deserves a reaction and produce it.

    ``react`` runs one blocking cycle. ``analyze`` runs the same cycle on a
    worker thread and hands any resulting event to ``deliver`` from that
    thread, never from the caller's.
    """

    def __init__(
        self,
        client: Any,
        buddy_ids: Sequence[str],
        fingerprint_chars: int = FINGERPRINT_CHARS,
        single_flight: bool = True,
        max_in_flight: int = MAX_IN_FLIGHT,
        verbose: bool = False,
        timeline: Optional[Timeline] = None,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1.")
        self._client = client
        self._buddy_ids = list(buddy_ids)
        self._fingerprint_chars = fingerprint_chars
        self._single_flight = single_flight
        self._max_in_flight = 1 if single_flight else max_in_flight
        self._verbose = verbose
        self._timeline = timeline or disabled_timeline()
        self._state = EngineState()
        self._lock = threading.Lock()
        self._in_flight = 0
        self._workers: List[threading.Thread] = []
        self._cycle_id = 0

    @property
    def buddy_ids(self) -> List[str]:
        with self._lock:
            return list(self._buddy_ids)

    def set_buddy_ids(self, buddy_ids: Sequence[str]) -> None:
        """Replace the ids the model may address; applies to the next cycle."""

        with self._lock:
            self._buddy_ids = list(buddy_ids)

    @property
    def state(self) -> EngineState:
        with self._lock:
            return replace(self._state)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def react(self, screen_text: str) -> Optional[ReactionEvent]:
        """Run one cycle and return the event to deliver, if any."""

        current = fingerprint(screen_text, self._fingerprint_chars)
        with self._lock:
            if current == self._state.last_fingerprint:
                log_verbose(self._verbose, "Skipped reaction (same screen).")
                self._timeline.log("skip", reason="same_screen")
                return None
            # Recorded before the request so a failing screen is not retried.
            self._state.last_fingerprint = current
            self._cycle_id += 1
            cycle_id = self._cycle_id
            buddy_ids = list(self._buddy_ids)

        prompt = build_prompt(screen_text, buddy_ids)
        self._timeline.log("gemini_request", id=cycle_id, chars=len(screen_text))
        try:
            raw_text = self._client.complete(prompt)
        except InferenceError as exc:
            print(f"[Engine] Gemini request failed: {exc}", file=sys.stderr)
            self._timeline.log("gemini_error", id=cycle_id, error=str(exc))
            return None

        try:
            event = parse_reaction(raw_text)
        except ResponseFormatError as exc:
            print(f"[Engine] {exc}", file=sys.stderr)
            self._timeline.log("parse_error", id=cycle_id, raw=truncate(raw_text))
            return None

        with self._lock:
            if event.message == self._state.last_message:
                log_verbose(self._verbose, "Skipped duplicate message.")
                self._timeline.log("skip", id=cycle_id, reason="duplicate_message")
                return None
            self._state.last_message = event.message

        self._timeline.log(
            "reaction", id=cycle_id, route=event.route_id, message=truncate(event.message)
        )
        return event

    def analyze(self, screen_text: str, deliver: DeliverFn) -> bool:
        """Start a cycle in the background. Returns False if none was started."""

        with self._lock:
            if self._in_flight >= self._max_in_flight:
                log_verbose(
                    self._verbose,
                    f"Skipped reaction ({self._in_flight} cycle(s) in flight).",
                )
                self._timeline.log("skip", reason="in_flight", count=self._in_flight)
                return False
            self._in_flight += 1
            self._workers = [w for w in self._workers if w.is_alive()]
            worker = threading.Thread(
                target=self._run_cycle, args=(screen_text, deliver), daemon=True
            )
            self._workers.append(worker)
        worker.start()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Join in-flight cycles. Returns True when none are left running."""

        with self._lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join(timeout)
        return not any(worker.is_alive() for worker in workers)

    def _run_cycle(self, screen_text: str, deliver: DeliverFn) -> None:
        try:
            event = self.react(screen_text)
            if event is not None:
                deliver(event.route_id, event.message)
        except Exception as exc:
            print(f"[Engine] Reaction cycle error: {exc}", file=sys.stderr)
        finally:
            with self._lock:
                self._in_flight -= 1
