"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch every database failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL
    - Database file not accessible
    - get_session() called before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an operation targets a log entry that does not exist.

    Lookups that may legitimately miss return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated (e.g. duplicate id)."""

    pass


class InvalidStateTransitionError(PersistenceError):
    """Raised when an update would break a notification log invariant.

    Examples:
    - Modifying a row that is already sent, failed_permanent or skipped
    - Setting message_id on a row that is not sent (or sent without one)
    - Decreasing retry_count, or raising it past max_retries
    """

    pass
