"""Delivery metrics computed from the notification log."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from notification_engine.domain.models import NotificationStatus
from notification_engine.persistence.repositories import NotificationLogRepository
from notification_engine.utils.timestamps import ensure_utc, utc_now

TOP_FAILURE_REASONS = 5
DEFAULT_WINDOW_DAYS = 30


@dataclass
class ChannelMetrics:
    sent: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed + self.pending + self.skipped


@dataclass
class NotificationMetrics:
    """Aggregate delivery statistics for a time window.

    ``failed`` counts both failed_retryable and failed_permanent rows.
    ``success_rate`` is sent / (sent + failed) as a percentage, and 0.0 when
    nothing has been attempted.
    """

    start: datetime
    end: datetime
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_channel: Dict[str, ChannelMetrics] = field(default_factory=dict)
    by_type: Dict[str, ChannelMetrics] = field(default_factory=dict)
    top_failure_reasons: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return self.by_status.get(NotificationStatus.SENT.value, 0)

    @property
    def failed(self) -> int:
        return self.by_status.get(NotificationStatus.FAILED_RETRYABLE.value, 0) + self.by_status.get(
            NotificationStatus.FAILED_PERMANENT.value, 0
        )

    @property
    def success_rate(self) -> float:
        attempted = self.sent + self.failed
        if attempted == 0:
            return 0.0
        return round(self.sent / attempted * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        def breakdown(groups: Dict[str, ChannelMetrics]) -> Dict[str, Dict[str, int]]:
            return {
                name: {
                    "total": m.total,
                    "sent": m.sent,
                    "failed": m.failed,
                    "pending": m.pending,
                    "skipped": m.skipped,
                }
                for name, m in sorted(groups.items())
            }

        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "success_rate": self.success_rate,
            "by_status": dict(self.by_status),
            "by_channel": breakdown(self.by_channel),
            "by_type": breakdown(self.by_type),
            "top_failure_reasons": list(self.top_failure_reasons),
        }


def _bucket(metrics: ChannelMetrics, status: NotificationStatus) -> None:
    if status == NotificationStatus.SENT:
        metrics.sent += 1
    elif status in (NotificationStatus.FAILED_RETRYABLE, NotificationStatus.FAILED_PERMANENT):
        metrics.failed += 1
    elif status == NotificationStatus.PENDING:
        metrics.pending += 1
    else:
        metrics.skipped += 1


def compute_metrics(
    repo: NotificationLogRepository,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_test: bool = False,
) -> NotificationMetrics:
    """Aggregate log rows created in [start, end].

    Defaults to the last 30 days. Test sends are excluded unless include_test.
    """
    end = ensure_utc(end) or utc_now()
    start = ensure_utc(start) or end - timedelta(days=DEFAULT_WINDOW_DAYS)

    metrics = NotificationMetrics(
        start=start,
        end=end,
        by_status={status.value: 0 for status in NotificationStatus},
    )
    reasons: Counter = Counter()

    for entry in repo.iter_between(start, end, include_test=include_test):
        status = NotificationStatus(entry.status)
        metrics.total += 1
        metrics.by_status[status.value] += 1
        _bucket(metrics.by_channel.setdefault(entry.channel.value, ChannelMetrics()), status)
        _bucket(metrics.by_type.setdefault(entry.type, ChannelMetrics()), status)
        if status in (NotificationStatus.FAILED_RETRYABLE, NotificationStatus.FAILED_PERMANENT):
            reasons[entry.error_message or "Unknown error"] += 1

    metrics.top_failure_reasons = [
        {"reason": reason, "count": count}
        for reason, count in reasons.most_common(TOP_FAILURE_REASONS)
    ]
    return metrics
