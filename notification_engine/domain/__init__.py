"""Domain models for the Notification Delivery Engine."""

from .models import (
    TERMINAL_STATUSES,
    BusinessContext,
    Channel,
    ClassifiedError,
    ErrorKind,
    NotificationLogEntry,
    NotificationMessage,
    NotificationStatus,
    NotificationTemplate,
    Priority,
    TemplateVariable,
)

__all__ = [
    "BusinessContext",
    "Channel",
    "ClassifiedError",
    "ErrorKind",
    "NotificationLogEntry",
    "NotificationMessage",
    "NotificationStatus",
    "NotificationTemplate",
    "Priority",
    "TemplateVariable",
    "TERMINAL_STATUSES",
]
