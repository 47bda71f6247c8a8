"""Unit tests for domain models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from notification_engine.domain.models import (
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


class TestNotificationMessage:
    """Tests for NotificationMessage model."""

    def test_valid_message(self):
        message = NotificationMessage(
            type="booking_confirmation",
            channel="email",
            recipient="jane@example.com",
            template_data={"pet_name": "Biscuit"},
        )

        assert message.channel == Channel.EMAIL
        assert message.priority == Priority.NORMAL
        assert message.is_test is False
        assert message.user_id is None

    def test_strips_whitespace(self):
        message = NotificationMessage(type="  promotion ", channel="sms", recipient=" +16575551234 ")

        assert message.type == "promotion"
        assert message.recipient == "+16575551234"

    @pytest.mark.parametrize("field", ["type", "recipient"])
    def test_rejects_blank_fields(self, field):
        data = {"type": "promotion", "channel": "sms", "recipient": "+16575551234"}
        data[field] = "   "

        with pytest.raises(ValidationError):
            NotificationMessage(**data)

    def test_rejects_unknown_channel(self):
        with pytest.raises(ValidationError):
            NotificationMessage(type="promotion", channel="fax", recipient="x")

    def test_scheduled_for_converted_to_utc(self):
        message = NotificationMessage(
            type="appointment_reminder",
            channel="sms",
            recipient="+16575551234",
            scheduled_for=datetime(2025, 11, 4, 9, 0),
        )

        assert message.scheduled_for.tzinfo == timezone.utc


class TestNotificationTemplate:
    def test_required_variables(self):
        template = NotificationTemplate(
            id="t1",
            type="booking_confirmation",
            channel=Channel.EMAIL,
            body_template_text="Hi {{ customer_name }}",
            variables=[
                TemplateVariable(name="customer_name", required=True),
                TemplateVariable(name="pet_name"),
            ],
        )

        assert template.required_variables == ["customer_name"]
        assert template.get_variable("pet_name").required is False
        assert template.get_variable("missing") is None
        assert template.version == 1

    def test_duplicate_variables_rejected(self):
        with pytest.raises(ValidationError):
            NotificationTemplate(
                id="t1",
                type="promotion",
                channel=Channel.SMS,
                variables=[TemplateVariable(name="pet_name"), TemplateVariable(name="pet_name")],
            )

    def test_version_must_be_positive(self):
        with pytest.raises(ValidationError):
            NotificationTemplate(id="t1", type="promotion", channel=Channel.SMS, version=0)


class TestNotificationStatus:
    @pytest.mark.parametrize(
        "status,terminal",
        [
            (NotificationStatus.PENDING, False),
            (NotificationStatus.FAILED_RETRYABLE, False),
            (NotificationStatus.SENT, True),
            (NotificationStatus.FAILED_PERMANENT, True),
            (NotificationStatus.SKIPPED, True),
        ],
    )
    def test_terminal_statuses(self, status, terminal):
        assert status.is_terminal is terminal


class TestNotificationLogEntry:
    def test_defaults(self):
        entry = NotificationLogEntry(type="promotion", channel=Channel.EMAIL, recipient="jane@example.com")

        assert entry.status == NotificationStatus.PENDING
        assert entry.retry_count == 0
        assert entry.template_data_snapshot == {}
        assert entry.is_terminal is False

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            NotificationLogEntry(type="promotion", channel=Channel.EMAIL, recipient="x", retry_count=-1)

    def test_datetimes_converted_to_utc(self):
        offset = timezone(timedelta(hours=2))
        entry = NotificationLogEntry(
            type="promotion",
            channel=Channel.EMAIL,
            recipient="x",
            retry_after=datetime(2025, 11, 4, 14, 0, tzinfo=offset),
        )

        assert entry.retry_after == datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)


class TestClassifiedError:
    def test_frozen(self):
        error = ClassifiedError(kind=ErrorKind.TRANSIENT, retryable=True, message="timeout")

        with pytest.raises(ValidationError):
            error.retryable = False
