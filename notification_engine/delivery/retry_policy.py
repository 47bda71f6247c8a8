"""Exponential backoff with jitter for failed deliveries."""

import random
from datetime import datetime, timedelta
from typing import Optional

from notification_engine.config.models import RetryConfig
from notification_engine.utils.timestamps import ensure_utc, utc_now

DEFAULT_RETRY_CONFIG = RetryConfig()


def compute_retry_delay(
    retry_count: int,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    rng: Optional[random.Random] = None,
) -> float:
    """Seconds to wait before the next attempt.

    delay = min(base * 2^retry_count, max) * uniform(1 - jitter, 1 + jitter)

    Jitter spreads out retries of messages that failed together.

    Args:
        retry_count: Retries already made for this entry (0 before the first retry)
        config: Backoff parameters
        rng: Random source (module-level random when None)

    Returns:
        Delay in seconds

    Examples:
        >>> 21 <= compute_retry_delay(0) <= 39
        True
    """
    if retry_count < 0:
        raise ValueError(f"retry_count must be >= 0, got {retry_count}")

    # Cap the exponent so huge retry counts cannot overflow the float
    exponential = config.base_delay_seconds * (2 ** min(retry_count, 64))
    capped = min(exponential, config.max_delay_seconds)

    jitter = config.jitter_factor
    uniform = (rng or random).uniform(1 - jitter, 1 + jitter)
    return capped * uniform


def compute_retry_after(
    retry_count: int,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> datetime:
    """Absolute UTC time at which the entry becomes eligible for retry."""
    base = ensure_utc(now) if now is not None else utc_now()
    return base + timedelta(seconds=compute_retry_delay(retry_count, config, rng))


def has_exceeded_max_retries(retry_count: int, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> bool:
    """True once retry_count has reached config.max_retries."""
    return retry_count >= config.max_retries
