"""ORM model for the notification log and conversion to domain models.

Timestamps are stored as fixed-width ISO 8601 strings (see
utils.timestamps.to_storage) so that string comparison in SQL orders them
correctly. The template data snapshot is stored as JSON text.
"""

import json
import logging

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from notification_engine.domain.models import Channel, NotificationLogEntry, NotificationStatus
from notification_engine.utils.timestamps import from_storage, to_storage

logger = logging.getLogger(__name__)

Base = declarative_base()


class NotificationLogModel(Base):
    """ORM model for the notification_log table.

    One row per logical delivery, carrying its whole retry history.
    """

    __tablename__ = "notification_log"

    id = Column(String(32), primary_key=True, nullable=False)

    type = Column(String(100), nullable=False)
    channel = Column(String(10), nullable=False)
    recipient = Column(String(320), nullable=False)
    user_id = Column(String(255), nullable=True)

    template_id = Column(String(255), nullable=True)
    template_data_snapshot = Column(Text, nullable=False, default="{}")
    subject = Column(Text, nullable=True)
    content = Column(Text, nullable=True)

    status = Column(String(20), nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    retry_after = Column(String(50), nullable=True)
    message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    is_test = Column(Boolean, nullable=False, default=False)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)
    sent_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_notification_log_retry", "status", "retry_after"),
        Index("idx_notification_log_type_created", "type", "created_at"),
        Index("idx_notification_log_recipient", "recipient"),
    )

    def to_domain(self) -> NotificationLogEntry:
        return NotificationLogEntry(
            id=self.id,
            type=self.type,
            channel=Channel(self.channel),
            recipient=self.recipient,
            user_id=self.user_id,
            template_id=self.template_id,
            template_data_snapshot=json.loads(self.template_data_snapshot or "{}"),
            subject=self.subject,
            content=self.content,
            status=NotificationStatus(self.status),
            retry_count=self.retry_count,
            retry_after=from_storage(self.retry_after),
            message_id=self.message_id,
            error_message=self.error_message,
            is_test=bool(self.is_test),
            created_at=from_storage(self.created_at),
            updated_at=from_storage(self.updated_at),
            sent_at=from_storage(self.sent_at),
        )

    @classmethod
    def from_domain(cls, entry: NotificationLogEntry) -> "NotificationLogModel":
        return cls(
            id=entry.id,
            type=entry.type,
            channel=Channel(entry.channel).value,
            recipient=entry.recipient,
            user_id=entry.user_id,
            template_id=entry.template_id,
            template_data_snapshot=dump_snapshot(entry.template_data_snapshot),
            subject=entry.subject,
            content=entry.content,
            status=NotificationStatus(entry.status).value,
            retry_count=entry.retry_count,
            retry_after=to_storage(entry.retry_after),
            message_id=entry.message_id,
            error_message=entry.error_message,
            is_test=entry.is_test,
            created_at=to_storage(entry.created_at),
            updated_at=to_storage(entry.updated_at),
            sent_at=to_storage(entry.sent_at),
        )


def dump_snapshot(data) -> str:
    """Serialize template data; non-JSON values (dates, decimals) become strings."""
    return json.dumps(data or {}, default=str, sort_keys=True)


def create_schema(engine: Engine) -> None:
    """Create tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
