"""Background scheduling of retry sweeps."""

from .service import RetryScheduler

__all__ = [
    "RetryScheduler",
]
