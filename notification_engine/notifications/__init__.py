"""Notification delivery orchestration.

Public API:
    - NotificationService: send, send_batch, process_retries, get_metrics, reset_failures
    - NotificationResult, RetryRunResult, NotificationMetrics
    - Collaborator protocols and their in-memory implementations
"""

from .collaborators import (
    InMemoryTemplateRepository,
    NotificationSettings,
    RecipientPreferences,
    StaticPreferences,
    StaticSettings,
    TemplateRepository,
    load_templates_file,
)
from .failure_tracker import FailureCounter, FailureTracker
from .metrics import ChannelMetrics, NotificationMetrics, compute_metrics
from .models import NotificationError, NotificationResult, RetryRunResult, TemplateNotFoundError
from .service import DEFAULT_TRANSACTIONAL_TYPES, NotificationService

__all__ = [
    "NotificationService",
    "NotificationResult",
    "RetryRunResult",
    "NotificationError",
    "TemplateNotFoundError",
    "NotificationMetrics",
    "ChannelMetrics",
    "compute_metrics",
    "FailureTracker",
    "FailureCounter",
    "TemplateRepository",
    "NotificationSettings",
    "RecipientPreferences",
    "InMemoryTemplateRepository",
    "StaticSettings",
    "StaticPreferences",
    "load_templates_file",
    "DEFAULT_TRANSACTIONAL_TYPES",
]
