"""Scoped logging context.

Fields pushed here (log_id, notification_type, channel, sweep_id, ...) are
copied onto every record emitted inside the scope by ContextualFilter.
Backed by contextvars so worker threads and the scheduler do not leak
fields into each other.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("notification_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active context fields."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the active context.

    Args:
        **kwargs: Fields to add. None values are dropped.

    Returns:
        Token for pop_log_context()
    """
    fields = {key: value for key, value in kwargs.items() if value is not None}
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop all context fields. Mostly useful in tests."""
    LogContextVar.set({})


class log_context:
    """Context manager that pushes fields on entry and restores on exit.

    Example:
        >>> with log_context(log_id="3f2a", notification_type="booking_confirmation"):
        ...     logger.info("Dispatching")  # record carries log_id and notification_type
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False

    def update(self, **kwargs) -> None:
        """Add fields to the already-entered scope.

        Used when an identifier (such as the log row id) only becomes known
        partway through the scope.
        """
        if self.token is None:
            raise RuntimeError("log_context.update() called outside of a with-block")
        fields = {key: value for key, value in kwargs.items() if value is not None}
        LogContextVar.set({**LogContextVar.get(), **fields})
