"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from notification_engine.domain.models import BusinessContext, Channel

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class ProviderMode(str, Enum):
    """Which provider implementations are wired in at startup."""

    MOCK = "mock"
    LIVE = "live"


class RetryConfig(BaseModel):
    """Backoff parameters for failed deliveries.

    delay(n) = min(base * 2^n, max) * uniform(1 - jitter, 1 + jitter)
    """

    max_retries: int = Field(2, ge=0, le=10, description="Retries after the first attempt")
    base_delay_seconds: float = Field(30, gt=0, description="Delay before the first retry")
    max_delay_seconds: float = Field(300, gt=0, description="Upper bound before jitter")
    jitter_factor: float = Field(0.3, ge=0, le=1, description="Relative jitter applied to each delay")

    @model_validator(mode="after")
    def validate_bounds(self):
        """Ensure the cap is not below the base delay."""
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                f"max_delay_seconds ({self.max_delay_seconds}) must be >= "
                f"base_delay_seconds ({self.base_delay_seconds})"
            )
        return self


class BatchConfig(BaseModel):
    """Pacing for batch sends and retry sweeps."""

    chunk_size: int = Field(10, ge=1, le=1000, description="Messages per send_batch chunk")
    chunk_delay_seconds: float = Field(0.1, ge=0, le=60, description="Pause between chunks")
    retry_batch_size: int = Field(100, ge=1, le=10000, description="Log rows per retry batch")
    retry_batch_delay_seconds: float = Field(1.0, ge=0, le=300, description="Pause between retry batches")


class ProviderConfig(BaseModel):
    """Channel provider selection and provider-level settings."""

    mode: ProviderMode = Field(ProviderMode.MOCK, validate_default=True, description="mock or live")
    email_from: str = Field(
        "Puppy Day <puppyday14936@gmail.com>", min_length=1, description="From header for email"
    )
    email_reply_to: Optional[str] = Field(None, description="Optional Reply-To header")
    sms_from_number: str = Field("+16572522903", description="Sender number in E.164 format")
    request_timeout: int = Field(30, ge=5, le=300, description="HTTP/SMTP timeout in seconds")
    mock_failure_rate: float = Field(0.0, ge=0, le=1, description="Random failure probability for mocks")
    mock_delay_ms: int = Field(0, ge=0, le=10000, description="Simulated latency for mocks")
    mock_seed: Optional[int] = Field(None, description="Seed for the mock failure RNG")

    @field_validator("sms_from_number")
    @classmethod
    def validate_from_number(cls, v: str) -> str:
        """Require E.164 format for the sender number."""
        stripped = v.strip()
        if not stripped.startswith("+") or not stripped[1:].isdigit() or len(stripped) < 8:
            raise ValueError(f"sms_from_number must be in E.164 format (e.g. +16575551234), got: {v}")
        return stripped

    model_config = {"use_enum_values": True}


class NotificationsConfig(BaseModel):
    """Which notification types are sent and how they are gated."""

    disabled_types: List[str] = Field(
        default_factory=list, description="Types that are never sent"
    )
    disabled_channels: List[Channel] = Field(
        default_factory=list, description="Channels that are never used"
    )
    transactional_types: List[str] = Field(
        default_factory=lambda: [
            "booking_confirmation",
            "appointment_status",
            "appointment_cancelled",
            "report_card_ready",
        ],
        description="Types that bypass recipient opt-out checks",
    )
    opt_outs: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="recipient id -> list of opted-out types ('*' for all)",
    )
    pause_threshold: int = Field(
        10, ge=0, description="Consecutive failures before a type is paused (0 disables)"
    )
    templates_file: Optional[str] = Field(
        None, description="YAML file with notification templates"
    )

    @field_validator("disabled_types", "transactional_types")
    @classmethod
    def normalize_types(cls, v: List[str]) -> List[str]:
        """Strip whitespace and drop empty entries."""
        return [item.strip() for item in v if item and item.strip()]

    model_config = {"use_enum_values": True}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, validate_default=True, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, validate_default=True, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification engine."""

    business: BusinessContext = Field(default_factory=BusinessContext)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    retry_sweep_interval: str = Field("5m", description="How often the worker sweeps for due retries")
    claim_lease: str = Field("5m", description="How long a claimed retry is hidden from other sweeps")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Computed fields
    retry_sweep_interval_seconds: Optional[int] = None
    claim_lease_seconds: Optional[int] = None

    @field_validator("retry_sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        """Sweep interval must be between one minute and one hour."""
        try:
            validate_duration_range(parse_duration(v), 60, 3600, label="Retry sweep interval")
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("claim_lease")
    @classmethod
    def validate_claim_lease(cls, v: str) -> str:
        """Claim lease must be between ten seconds and one day."""
        try:
            validate_duration_range(parse_duration(v), 10, 86400, label="Claim lease")
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_fields(self):
        """Compute second-valued durations."""
        self.retry_sweep_interval_seconds = parse_duration(self.retry_sweep_interval)
        self.claim_lease_seconds = parse_duration(self.claim_lease)
        return self
