"""Route reaction messages to the surface currently listening for a buddy."""

from __future__ import annotations

import queue
import sys
import threading
from typing import Callable, Dict, List, Optional

from buddy.timeline import log_verbose, truncate

MessageHandler = Callable[[str], None]
Delivery = Callable[[Callable[[], None]], None]


def direct_delivery(job: Callable[[], None]) -> None:
    """Run the handler on the posting thread."""

    job()


class QueueDelivery:
    """Hand handlers to a queue drained by the thread that owns the UI.

    Jobs run in the order they were posted, so deliveries for one buddy keep
    their post order.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue(maxsize=maxsize)

    def __call__(self, job: Callable[[], None]) -> None:
        self._queue.put(job)

    def pending(self) -> int:
        return self._queue.qsize()

    def run_pending(self, timeout: Optional[float] = None) -> bool:
        """Run one queued job, waiting up to ``timeout``. Returns False if none."""

        try:
            if timeout is None:
                job = self._queue.get_nowait()
            else:
                job = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        try:
            job()
        finally:
            self._queue.task_done()
        return True

    def drain(self) -> int:
        """Run every queued job and return how many ran."""

        count = 0
        while self.run_pending():
            count += 1
        return count


class MessageRouter:
    """At most one handler per buddy id; the latest registration wins."""

    def __init__(self, delivery: Delivery = direct_delivery, verbose: bool = False) -> None:
        self._delivery = delivery
        self._verbose = verbose
        self._listeners: Dict[str, MessageHandler] = {}
        self._lock = threading.Lock()

    def register(self, buddy_id: str, handler: MessageHandler) -> None:
        with self._lock:
            self._listeners[buddy_id] = handler
        log_verbose(self._verbose, f"registered buddy={buddy_id}")

    def unregister(self, buddy_id: str) -> None:
        with self._lock:
            self._listeners.pop(buddy_id, None)

    def is_registered(self, buddy_id: str) -> bool:
        with self._lock:
            return buddy_id in self._listeners

    def route_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._listeners)

    def post(self, buddy_id: str, message: str) -> None:
        """Deliver ``message`` to the buddy's handler, or drop it."""

        print(f"[Messenger] Delivering to {buddy_id}: {truncate(message)}", file=sys.stderr)
        with self._lock:
            handler = self._listeners.get(buddy_id)
        if handler is None:
            log_verbose(self._verbose, f"no listener for buddy={buddy_id}; dropped")
            return
        self._delivery(lambda: handler(message))
