"""Core domain models for messages, templates, and delivery records.

This module defines the data structures used throughout the engine:
- NotificationMessage: a caller's request to notify one recipient
- NotificationTemplate: read-only template owned by the template repository
- BusinessContext: fixed business fields injected into every render
- NotificationLogEntry: the single persistent record of one logical delivery
- ClassifiedError: normalized outcome of a provider failure
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Channel(str, Enum):
    """Delivery medium."""

    EMAIL = "email"
    SMS = "sms"


class NotificationStatus(str, Enum):
    """Delivery state of a notification log entry."""

    PENDING = "pending"
    SENT = "sent"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_PERMANENT = "failed_permanent"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is allowed from this state."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {NotificationStatus.SENT, NotificationStatus.FAILED_PERMANENT, NotificationStatus.SKIPPED}
)


class ErrorKind(str, Enum):
    """Failure taxonomy produced by the error classifier."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"


class Priority(str, Enum):
    """Advisory message priority. Stored and logged, not used for ordering."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


def _to_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class NotificationMessage(BaseModel):
    """A request to deliver one notification to one recipient."""

    type: str = Field(..., min_length=1, description="Notification type, e.g. booking_confirmation")
    channel: Channel = Field(..., description="Delivery channel")
    recipient: str = Field(..., min_length=1, description="Email address or phone number")
    template_data: Dict[str, Any] = Field(
        default_factory=dict, description="Variables available to the template"
    )
    user_id: Optional[str] = Field(None, description="Recipient account id, used for opt-out checks")
    priority: Priority = Field(Priority.NORMAL, description="Advisory priority")
    scheduled_for: Optional[datetime] = Field(None, description="Advisory send time")
    is_test: bool = Field(False, description="Marks sends that should be excluded from reporting")

    @field_validator("type", "recipient")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from identifying fields."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("scheduled_for")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)


class TemplateVariable(BaseModel):
    """A variable declared by a template."""

    name: str = Field(..., min_length=1)
    required: bool = False
    max_length: Optional[int] = Field(None, ge=0, description="Upper bound used for SMS length estimates")
    description: Optional[str] = None


class NotificationTemplate(BaseModel):
    """Template for one (type, channel) pair.

    Placeholders use ``{{ path.to.value }}`` syntax. ``subject_template`` is only
    meaningful for email.
    """

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    channel: Channel
    subject_template: Optional[str] = None
    body_template_html: Optional[str] = None
    body_template_text: str = ""
    variables: List[TemplateVariable] = Field(default_factory=list)
    version: int = Field(1, ge=1)

    @model_validator(mode="after")
    def validate_variables(self):
        """Reject duplicate variable declarations."""
        seen = set()
        for variable in self.variables:
            if variable.name in seen:
                raise ValueError(f"Duplicate template variable: {variable.name}")
            seen.add(variable.name)
        return self

    def get_variable(self, name: str) -> Optional[TemplateVariable]:
        """Look up a declared variable by name."""
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None

    @property
    def required_variables(self) -> List[str]:
        return [v.name for v in self.variables if v.required]


class BusinessContext(BaseModel):
    """Business identity fields exposed to templates as ``business.*``."""

    name: str = "Puppy Day"
    address: str = "14936 Leffingwell Rd, La Mirada, CA 90638"
    phone: str = "(657) 252-2903"
    email: str = "puppyday14936@gmail.com"
    hours: str = "Monday-Saturday, 9:00 AM - 5:00 PM"
    website: Optional[str] = "https://thepuppyday.com"


class ClassifiedError(BaseModel):
    """Normalized description of a delivery failure."""

    kind: ErrorKind
    retryable: bool
    message: str
    status_code: Optional[int] = None

    model_config = {"frozen": True}


class NotificationLogEntry(BaseModel):
    """Persistent record of one logical delivery and its retry history.

    Invariants (enforced by the log repository):
    - ``message_id`` is set iff ``status`` is ``sent``
    - ``retry_count`` never decreases and never exceeds the configured maximum
    - ``sent``, ``failed_permanent`` and ``skipped`` rows are never modified
    """

    id: Optional[str] = None
    type: str
    channel: Channel
    recipient: str
    user_id: Optional[str] = None
    template_id: Optional[str] = None
    template_data_snapshot: Dict[str, Any] = Field(default_factory=dict)
    subject: Optional[str] = None
    content: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = Field(0, ge=0)
    retry_after: Optional[datetime] = None
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    is_test: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    @field_validator("retry_after", "created_at", "updated_at", "sent_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return _to_utc(v)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
