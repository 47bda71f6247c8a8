"""Notification log repository.

The log is the only mutable state of the engine. The repository enforces
the log's invariants itself rather than trusting callers:

- rows are created in ``pending``
- ``sent``, ``failed_permanent`` and ``skipped`` rows are never modified
- ``message_id`` is set iff the status is ``sent``
- ``retry_count`` never decreases and never exceeds ``max_retries``

Methods return domain models, never ORM objects.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from notification_engine.domain.models import (
    TERMINAL_STATUSES,
    Channel,
    NotificationLogEntry,
    NotificationStatus,
)
from notification_engine.utils.timestamps import ensure_utc, to_storage, utc_now

from .exceptions import (
    DataIntegrityError,
    InvalidStateTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from .schema import NotificationLogModel

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "retry_count",
        "retry_after",
        "message_id",
        "error_message",
        "sent_at",
        "subject",
        "content",
        "template_id",
    }
)
_DATETIME_FIELDS = ("retry_after", "sent_at")

ABANDONED_RETRY_MESSAGE = "Retry attempt abandoned: claim lease expired at the retry limit"


@dataclass
class LogQueryFilters:
    """Filters for NotificationLogRepository.query(). Unset filters match everything."""

    status: Optional[NotificationStatus] = None
    channel: Optional[Channel] = None
    type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_test: Optional[bool] = None
    user_id: Optional[str] = None
    recipient: Optional[str] = None
    limit: int = 100
    offset: int = 0


class NotificationLogRepository:
    """Repository for notification log rows."""

    def __init__(self, session: Session, max_retries: Optional[int] = None):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
            max_retries: Upper bound enforced on retry_count (unchecked when None)
        """
        self.session = session
        self.max_retries = max_retries

    def create(self, entry: NotificationLogEntry) -> str:
        """Insert a new row in ``pending`` and return its id.

        Any status, message_id or retry state on ``entry`` is ignored.

        Raises:
            DataIntegrityError: If a row with the same id already exists
            PersistenceError: If a database error occurs
        """
        now = ensure_utc(entry.created_at) or utc_now()
        record = entry.model_copy(
            update={
                "id": entry.id or uuid.uuid4().hex,
                "status": NotificationStatus.PENDING,
                "retry_count": 0,
                "retry_after": None,
                "message_id": None,
                "sent_at": None,
                "created_at": now,
                "updated_at": now,
            }
        )
        try:
            self.session.add(NotificationLogModel.from_domain(record))
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error creating log entry {record.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create log entry: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating log entry {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create log entry: {e}") from e

        return record.id

    def get(self, log_id: str) -> Optional[NotificationLogEntry]:
        """Fetch one entry by id, or None."""
        try:
            model = self.session.get(NotificationLogModel, log_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve log entry: {e}") from e
        return model.to_domain() if model is not None else None

    def update(self, log_id: str, **changes: Any) -> NotificationLogEntry:
        """Apply changes to a non-terminal row.

        Args:
            log_id: Entry id
            **changes: Any of UPDATABLE_FIELDS

        Returns:
            The updated entry

        Raises:
            RecordNotFoundError: If the id is unknown
            InvalidStateTransitionError: If the change breaks a log invariant
            ValueError: If an unknown field is passed
            PersistenceError: If a database error occurs
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            model = self.session.get(NotificationLogModel, log_id)
        except SQLAlchemyError as e:
            logger.error(f"Error loading log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load log entry: {e}") from e

        if model is None:
            raise RecordNotFoundError(f"Notification log entry not found: {log_id}")

        current_status = NotificationStatus(model.status)
        if current_status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Log entry {log_id} is {current_status.value} and cannot be modified"
            )

        new_status = NotificationStatus(changes.get("status", current_status))
        new_message_id = changes.get("message_id", model.message_id)
        if new_status == NotificationStatus.SENT and not new_message_id:
            raise InvalidStateTransitionError(f"Log entry {log_id} cannot be sent without a message_id")
        if new_status != NotificationStatus.SENT and new_message_id:
            raise InvalidStateTransitionError(
                f"Log entry {log_id} can only carry a message_id when sent (status {new_status.value})"
            )

        if "retry_count" in changes:
            new_count = int(changes["retry_count"])
            if new_count < model.retry_count:
                raise InvalidStateTransitionError(
                    f"retry_count cannot decrease ({model.retry_count} -> {new_count})"
                )
            if self.max_retries is not None and new_count > self.max_retries:
                raise InvalidStateTransitionError(
                    f"retry_count {new_count} exceeds max_retries {self.max_retries}"
                )
            model.retry_count = new_count

        model.status = new_status.value
        model.message_id = new_message_id
        for field_name in _DATETIME_FIELDS:
            if field_name in changes:
                setattr(model, field_name, to_storage(changes[field_name]))
        for field_name in ("error_message", "subject", "content", "template_id"):
            if field_name in changes:
                setattr(model, field_name, changes[field_name])
        model.updated_at = to_storage(utc_now())

        try:
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error updating log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update log entry: {e}") from e

        return model.to_domain()

    def query(self, filters: Optional[LogQueryFilters] = None) -> List[NotificationLogEntry]:
        """Return entries matching filters, newest first."""
        filters = filters or LogQueryFilters()
        stmt = select(NotificationLogModel)

        if filters.status is not None:
            stmt = stmt.where(NotificationLogModel.status == NotificationStatus(filters.status).value)
        if filters.channel is not None:
            stmt = stmt.where(NotificationLogModel.channel == Channel(filters.channel).value)
        if filters.type is not None:
            stmt = stmt.where(NotificationLogModel.type == filters.type)
        if filters.start_date is not None:
            stmt = stmt.where(NotificationLogModel.created_at >= to_storage(filters.start_date))
        if filters.end_date is not None:
            stmt = stmt.where(NotificationLogModel.created_at <= to_storage(filters.end_date))
        if filters.is_test is not None:
            stmt = stmt.where(NotificationLogModel.is_test == filters.is_test)
        if filters.user_id is not None:
            stmt = stmt.where(NotificationLogModel.user_id == filters.user_id)
        if filters.recipient is not None:
            stmt = stmt.where(NotificationLogModel.recipient == filters.recipient)

        stmt = (
            stmt.order_by(NotificationLogModel.created_at.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )

        try:
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error querying notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query notification log: {e}") from e

    def find_due_retries(
        self,
        now: datetime,
        max_retries: int,
        limit: int = 100,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Ids of failed_retryable rows whose retry_after has passed, oldest due first.

        Ids in exclude are never returned, so a caller paging through the due
        rows is not stopped by rows it already tried.
        """
        stmt = (
            select(NotificationLogModel.id)
            .where(
                NotificationLogModel.status == NotificationStatus.FAILED_RETRYABLE.value,
                NotificationLogModel.retry_after <= to_storage(now),
                NotificationLogModel.retry_count < max_retries,
            )
            .order_by(NotificationLogModel.retry_after.asc())
            .limit(limit)
        )
        excluded = list(exclude or ())
        if excluded:
            stmt = stmt.where(NotificationLogModel.id.not_in(excluded))
        try:
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error finding due retries: {e}", exc_info=True)
            raise PersistenceError(f"Failed to find due retries: {e}") from e

    def claim_retry(
        self,
        log_id: str,
        now: datetime,
        max_retries: int,
        lease_seconds: float,
    ) -> Optional[NotificationLogEntry]:
        """Atomically claim a due row for one retry attempt.

        A single conditional UPDATE increments retry_count and pushes
        retry_after forward by the lease, so a second sweep neither selects
        nor claims the row while this attempt is in flight. If the worker
        dies mid-attempt the row becomes due again once the lease expires;
        a row already at the retry limit is closed by
        finalize_exhausted_retries() instead.

        Returns:
            The claimed entry, or None if the row is no longer claimable
        """
        now = ensure_utc(now)
        lease_until = now + timedelta(seconds=lease_seconds)
        stmt = (
            update(NotificationLogModel)
            .where(
                NotificationLogModel.id == log_id,
                NotificationLogModel.status == NotificationStatus.FAILED_RETRYABLE.value,
                NotificationLogModel.retry_after <= to_storage(now),
                NotificationLogModel.retry_count < max_retries,
            )
            .values(
                retry_count=NotificationLogModel.retry_count + 1,
                retry_after=to_storage(lease_until),
                updated_at=to_storage(now),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                return None
            self.session.flush()
            model = self.session.get(NotificationLogModel, log_id, populate_existing=True)
        except SQLAlchemyError as e:
            logger.error(f"Error claiming log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim log entry: {e}") from e

        return model.to_domain() if model is not None else None

    def finalize_exhausted_retries(
        self,
        now: datetime,
        max_retries: int,
        error_message: str = ABANDONED_RETRY_MESSAGE,
    ) -> List[str]:
        """Move failed_retryable rows at the retry limit to failed_permanent.

        A row only sits at the limit in failed_retryable while its last claim
        is in flight. Once that claim's lease has expired the attempt was
        abandoned and no sweep can claim the row again.

        Returns:
            Ids of the rows found at the limit with an expired lease
        """
        now = ensure_utc(now)
        conditions = (
            NotificationLogModel.status == NotificationStatus.FAILED_RETRYABLE.value,
            NotificationLogModel.retry_count >= max_retries,
            NotificationLogModel.retry_after <= to_storage(now),
        )
        try:
            ids = list(self.session.execute(select(NotificationLogModel.id).where(*conditions)).scalars().all())
            if not ids:
                return []
            self.session.execute(
                update(NotificationLogModel)
                .where(NotificationLogModel.id.in_(ids), *conditions)
                .values(
                    status=NotificationStatus.FAILED_PERMANENT.value,
                    retry_after=None,
                    error_message=error_message,
                    updated_at=to_storage(now),
                )
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error finalizing exhausted retries: {e}", exc_info=True)
            raise PersistenceError(f"Failed to finalize exhausted retries: {e}") from e

        return ids

    def count_by_status(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_test: bool = False,
    ) -> Dict[str, int]:
        """Row counts per status for rows created in [start, end]."""
        stmt = select(NotificationLogModel.status, func.count()).group_by(NotificationLogModel.status)
        stmt = self._window(stmt, start, end, include_test)
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Error counting notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count notification log: {e}") from e

        counts = Counter({status.value: 0 for status in NotificationStatus})
        counts.update({status: count for status, count in rows})
        return dict(counts)

    def iter_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_test: bool = False,
        batch_size: int = 500,
    ) -> Iterator[NotificationLogEntry]:
        """Stream entries created in [start, end], oldest first."""
        stmt = select(NotificationLogModel).order_by(NotificationLogModel.created_at.asc())
        stmt = self._window(stmt, start, end, include_test)
        try:
            for model in self.session.execute(stmt.execution_options(yield_per=batch_size)).scalars():
                yield model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error reading notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read notification log: {e}") from e

    @staticmethod
    def _window(stmt, start, end, include_test):
        if start is not None:
            stmt = stmt.where(NotificationLogModel.created_at >= to_storage(start))
        if end is not None:
            stmt = stmt.where(NotificationLogModel.created_at <= to_storage(end))
        if not include_test:
            stmt = stmt.where(NotificationLogModel.is_test.is_(False))
        return stmt
