"""Per-type consecutive failure counters with automatic pause."""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Optional

from notification_engine.logging import get_logger
from notification_engine.utils.timestamps import utc_now

logger = get_logger(__name__, component="notification")


@dataclass
class FailureCounter:
    notification_type: str
    consecutive_failures: int = 0
    paused: bool = False
    paused_at: Optional[datetime] = None


class FailureTracker:
    """Pauses a notification type after ``threshold`` consecutive failures.

    A success resets the count but does not lift a pause; only reset() does,
    so an operator decides when a paused type may send again. A threshold of
    0 disables pausing.
    """

    def __init__(self, threshold: int = 10, clock: Callable[[], datetime] = utc_now):
        if threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {threshold}")
        self.threshold = threshold
        self.clock = clock
        self._counters: Dict[str, FailureCounter] = {}
        self._lock = threading.Lock()

    def _counter(self, notification_type: str) -> FailureCounter:
        counter = self._counters.get(notification_type)
        if counter is None:
            counter = FailureCounter(notification_type=notification_type)
            self._counters[notification_type] = counter
        return counter

    def record_failure(self, notification_type: str) -> FailureCounter:
        """Count a failure; returns a copy of the counter after the update."""
        with self._lock:
            counter = self._counter(notification_type)
            counter.consecutive_failures += 1
            just_paused = (
                self.threshold > 0
                and not counter.paused
                and counter.consecutive_failures >= self.threshold
            )
            if just_paused:
                counter.paused = True
                counter.paused_at = self.clock()
            snapshot = replace(counter)

        if just_paused:
            logger.error(
                f"Notification type '{notification_type}' paused after "
                f"{snapshot.consecutive_failures} consecutive failures",
                extra={
                    "event": "notification.type.paused",
                    "notification_type": notification_type,
                    "consecutive_failures": snapshot.consecutive_failures,
                },
            )
        return snapshot

    def record_success(self, notification_type: str) -> None:
        with self._lock:
            self._counter(notification_type).consecutive_failures = 0

    def is_paused(self, notification_type: str) -> bool:
        with self._lock:
            counter = self._counters.get(notification_type)
            return bool(counter and counter.paused)

    def reset(self, notification_type: str) -> None:
        """Clear the failure count and lift any pause for a type."""
        with self._lock:
            self._counters.pop(notification_type, None)
        logger.info(
            f"Failure counter reset for '{notification_type}'",
            extra={"event": "notification.type.reset", "notification_type": notification_type},
        )

    def snapshot(self) -> Dict[str, FailureCounter]:
        with self._lock:
            return {name: replace(counter) for name, counter in self._counters.items()}
