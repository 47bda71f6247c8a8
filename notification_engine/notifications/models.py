"""Result types and exceptions for the notification service."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class TemplateNotFoundError(NotificationError):
    """Raised when no template exists for a (type, channel) pair."""

    def __init__(self, notification_type: str, channel: str):
        super().__init__(f"No template found for type '{notification_type}' on channel '{channel}'")
        self.notification_type = notification_type
        self.channel = channel


@dataclass
class NotificationResult:
    """Outcome of NotificationService.send().

    Attributes:
        success: True only when the provider accepted the message
        message_id: Provider reference when sent
        error: Human-readable reason when not sent (including skips)
        log_id: Notification log row created for this send
        warnings: Non-fatal rendering warnings (e.g. multi-segment SMS)
        skipped: True when a gate (disabled, opt-out, paused) stopped the send
    """

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    log_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    skipped: bool = False


@dataclass
class RetryRunResult:
    """Summary of one retry sweep.

    Attributes:
        processed: Rows this sweep attempted to deliver
        succeeded: Rows that reached sent
        failed: Rows that failed again (retryable or permanent)
        skipped: Due rows another worker claimed first
        abandoned: Rows finalized because their last claim expired at the retry limit
        errors: One {"log_id", "error"} entry per failed row
    """

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    abandoned: int = 0
    errors: List[Dict[str, Optional[str]]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "abandoned": self.abandoned,
            "errors": list(self.errors),
        }
