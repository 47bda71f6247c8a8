"""Persistence layer for the notification log.

Public API:
    - init_database(database_url) / get_session() / close_database() / get_engine()
    - NotificationLogRepository and LogQueryFilters
    - PersistenceError and its subclasses

Example usage:
    >>> from notification_engine.persistence import init_database, get_session, NotificationLogRepository
    >>> init_database("sqlite:///./data/notifications.db")
    >>> with get_session() as session:
    ...     entry = NotificationLogRepository(session).get(log_id)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    InvalidStateTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import LogQueryFilters, NotificationLogRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "NotificationLogRepository",
    "LogQueryFilters",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "InvalidStateTransitionError",
]
