"""Commit notifications.

State transitions are synchronous; the outside world (dashboards, audit
feeds) hears about them afterwards. Delivery happens on a single worker
thread so subscribers see notices in commit order, and a failing
subscriber can neither block nor undo the transition that produced the
notice.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitNotice:
    project: str          # escrow contract name
    operation: str        # e.g. "invest", "push_impact"
    caller: str
    result: Any = None
    committed_at: datetime = field(default_factory=datetime.now)


Listener = Callable[[CommitNotice], None]


class CommitNotifier:
    """Fan-out of :class:`CommitNotice` objects to subscribers.

    Usage:
        notifier = CommitNotifier()
        unsubscribe = notifier.subscribe(print)
        notifier.publish(notice)
        notifier.close()  # waits for pending deliveries
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="greenbond-notify")
        self._closed = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, notice: CommitNotice) -> None:
        with self._lock:
            if self._closed:
                logger.warning("Notifier closed, dropping %s notice for %s", notice.operation, notice.project)
                return
            listeners = list(self._listeners)
            for listener in listeners:
                self._executor.submit(self._deliver, listener, notice)

    def close(self, wait: bool = True) -> None:
        """Stop accepting notices. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _deliver(listener: Listener, notice: CommitNotice) -> None:
        try:
            listener(notice)
        except Exception:
            logger.exception("Commit listener %r failed on %s", listener, notice.operation)
