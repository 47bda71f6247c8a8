"""Unit tests for delivery metrics."""

from datetime import datetime, timedelta, timezone

import pytest

from notification_engine.domain.models import Channel, NotificationLogEntry, NotificationStatus
from notification_engine.notifications.metrics import ChannelMetrics, NotificationMetrics, compute_metrics
from notification_engine.persistence import NotificationLogRepository, get_session

NOW = datetime(2025, 11, 30, 12, 0, tzinfo=timezone.utc)


def add_row(status, channel=Channel.EMAIL, type_="booking_confirmation", error=None, days_ago=1, is_test=False):
    with get_session() as session:
        repo = NotificationLogRepository(session)
        log_id = repo.create(
            NotificationLogEntry(
                type=type_,
                channel=channel,
                recipient="jane.doe@example.com" if channel == Channel.EMAIL else "+16575551234",
                created_at=NOW - timedelta(days=days_ago),
                is_test=is_test,
            )
        )
        if status == NotificationStatus.SENT:
            repo.update(log_id, status=status, message_id="<1@x>")
        elif status != NotificationStatus.PENDING:
            repo.update(log_id, status=status, error_message=error)


def metrics(**kwargs):
    with get_session() as session:
        return compute_metrics(NotificationLogRepository(session), end=NOW, **kwargs)


@pytest.mark.usefixtures("database")
class TestComputeMetrics:
    def test_empty_window(self):
        result = metrics()

        assert result.total == 0
        assert result.success_rate == 0.0
        assert result.by_status["sent"] == 0
        assert result.top_failure_reasons == []

    def test_counts_and_breakdowns(self):
        add_row(NotificationStatus.SENT)
        add_row(NotificationStatus.SENT, channel=Channel.SMS, type_="appointment_reminder")
        add_row(NotificationStatus.SENT, channel=Channel.SMS, type_="appointment_reminder")
        add_row(NotificationStatus.FAILED_PERMANENT, error="Invalid recipient")
        add_row(NotificationStatus.FAILED_RETRYABLE, channel=Channel.SMS, error="Timeout")
        add_row(NotificationStatus.SKIPPED, type_="promotion", error="recipient opted out")
        add_row(NotificationStatus.PENDING)

        result = metrics()

        assert result.total == 7
        assert result.sent == 3
        assert result.failed == 2
        assert result.success_rate == 60.0
        assert result.by_channel["email"] == ChannelMetrics(sent=1, failed=1, pending=1, skipped=1)
        assert result.by_channel["sms"] == ChannelMetrics(sent=2, failed=1)
        assert result.by_type["appointment_reminder"].sent == 2
        assert result.by_type["promotion"].skipped == 1

    def test_top_failure_reasons(self):
        for _ in range(3):
            add_row(NotificationStatus.FAILED_PERMANENT, error="Invalid recipient")
        add_row(NotificationStatus.FAILED_RETRYABLE, error="Timeout")
        add_row(NotificationStatus.SKIPPED, error="recipient opted out")

        result = metrics()

        assert result.top_failure_reasons == [
            {"reason": "Invalid recipient", "count": 3},
            {"reason": "Timeout", "count": 1},
        ]

    def test_default_window_is_thirty_days(self):
        add_row(NotificationStatus.SENT, days_ago=10)
        add_row(NotificationStatus.SENT, days_ago=45)

        result = metrics()

        assert result.total == 1
        assert result.start == NOW - timedelta(days=30)

    def test_test_sends_excluded_by_default(self):
        add_row(NotificationStatus.SENT)
        add_row(NotificationStatus.SENT, is_test=True)

        assert metrics().total == 1
        assert metrics(include_test=True).total == 2

    def test_to_dict(self):
        add_row(NotificationStatus.SENT)

        payload = metrics().to_dict()

        assert payload["total"] == 1
        assert payload["success_rate"] == 100.0
        assert payload["by_channel"]["email"] == {
            "total": 1,
            "sent": 1,
            "failed": 0,
            "pending": 0,
            "skipped": 0,
        }
        assert payload["end"] == NOW.isoformat()


def test_success_rate_rounding():
    result = NotificationMetrics(
        start=NOW,
        end=NOW,
        by_status={"sent": 1, "failed_retryable": 1, "failed_permanent": 1},
    )

    assert result.success_rate == 33.33
