"""Shared fixtures for notification engine tests."""

import random
from datetime import datetime, timedelta
from typing import List

import pytest

from notification_engine.config.models import BatchConfig, RetryConfig
from notification_engine.domain.models import (
    BusinessContext,
    Channel,
    NotificationMessage,
    NotificationTemplate,
    TemplateVariable,
)
from notification_engine.logging.context import clear_log_context
from notification_engine.notifications.collaborators import (
    InMemoryTemplateRepository,
    StaticPreferences,
    StaticSettings,
)
from notification_engine.notifications.failure_tracker import FailureTracker
from notification_engine.notifications.service import NotificationService
from notification_engine.persistence import close_database, init_database
from notification_engine.providers.factory import ProviderSet
from notification_engine.providers.mock import MockEmailProvider, MockSMSProvider
from notification_engine.rendering.engine import TemplateEngine
from notification_engine.utils.timestamps import utc_now


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingSleep:
    """Sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def database(tmp_path):
    """File-backed SQLite database, initialized for the duration of a test."""
    db_url = f"sqlite:///{tmp_path / 'notifications.db'}"
    init_database(db_url)
    yield db_url
    close_database()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def business():
    return BusinessContext()


@pytest.fixture
def booking_email_template():
    return NotificationTemplate(
        id="booking_confirmation_email_v1",
        type="booking_confirmation",
        channel=Channel.EMAIL,
        subject_template="Booking confirmed for {{ pet_name }}",
        body_template_html="<p>Hi {{ customer_name }}, {{ pet_name }} is booked on {{ appointment_date }}.</p>",
        body_template_text="Hi {{ customer_name }}, {{ pet_name }} is booked on {{ appointment_date }}. {{ business.name }}",
        variables=[
            TemplateVariable(name="customer_name", required=True, max_length=50),
            TemplateVariable(name="pet_name", required=True, max_length=30),
            TemplateVariable(name="appointment_date", required=True, max_length=20),
        ],
    )


@pytest.fixture
def reminder_sms_template():
    return NotificationTemplate(
        id="appointment_reminder_sms_v1",
        type="appointment_reminder",
        channel=Channel.SMS,
        body_template_text="Reminder: {{ pet_name }} has an appointment tomorrow at {{ appointment_time }}. {{ business.phone }}",
        variables=[
            TemplateVariable(name="pet_name", required=True, max_length=30),
            TemplateVariable(name="appointment_time", required=True, max_length=10),
        ],
    )


@pytest.fixture
def promo_email_template():
    return NotificationTemplate(
        id="promo_email_v1",
        type="promotion",
        channel=Channel.EMAIL,
        subject_template="A treat for {{ pet_name }}",
        body_template_text="Book this week and save 10%!",
        variables=[TemplateVariable(name="pet_name")],
    )


@pytest.fixture
def template_repository(booking_email_template, reminder_sms_template, promo_email_template):
    return InMemoryTemplateRepository(
        [booking_email_template, reminder_sms_template, promo_email_template]
    )


@pytest.fixture
def email_provider():
    return MockEmailProvider(rng=random.Random(1))


@pytest.fixture
def sms_provider():
    return MockSMSProvider(rng=random.Random(2))


@pytest.fixture
def make_service(database, template_repository, email_provider, sms_provider, clock, sleep, business):
    """Factory building a NotificationService with test doubles; keyword overrides win."""

    def _make(**overrides) -> NotificationService:
        options = dict(
            template_engine=TemplateEngine(business),
            providers=ProviderSet(email=email_provider, sms=sms_provider),
            template_repository=template_repository,
            settings=StaticSettings(),
            preferences=StaticPreferences(),
            retry_config=RetryConfig(),
            batch_config=BatchConfig(),
            failure_tracker=FailureTracker(threshold=10, clock=clock),
            sleep=sleep,
            clock=clock,
            rng=random.Random(7),
        )
        options.update(overrides)
        return NotificationService(**options)

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def booking_message():
    return NotificationMessage(
        type="booking_confirmation",
        channel=Channel.EMAIL,
        recipient="jane.doe@example.com",
        template_data={
            "customer_name": "Jane",
            "pet_name": "Biscuit",
            "appointment_date": "2025-11-20",
        },
        user_id="user-1",
    )


@pytest.fixture
def reminder_message():
    return NotificationMessage(
        type="appointment_reminder",
        channel=Channel.SMS,
        recipient="+16575551234",
        template_data={"pet_name": "Biscuit", "appointment_time": "10:00 AM"},
        user_id="user-1",
    )
