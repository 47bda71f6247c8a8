"""Failure classification and retry scheduling."""

from .errors import classify_error, error_message, is_retryable
from .retry_policy import (
    DEFAULT_RETRY_CONFIG,
    compute_retry_after,
    compute_retry_delay,
    has_exceeded_max_retries,
)

__all__ = [
    "classify_error",
    "error_message",
    "is_retryable",
    "compute_retry_delay",
    "compute_retry_after",
    "has_exceeded_max_retries",
    "DEFAULT_RETRY_CONFIG",
]
