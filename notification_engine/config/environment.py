"""Environment variable loading and validation.

Secrets and deployment-specific values come from the environment (or a
``.env`` file loaded by the CLI); everything else lives in the YAML file.
"""

import os
import re
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/notifications.db"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: str = "local",
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_use_tls: bool = True,
        twilio_account_sid: Optional[str] = None,
        twilio_auth_token: Optional[str] = None,
        twilio_from_number: Optional[str] = None,
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_use_tls = smtp_use_tls
        self.twilio_account_sid = twilio_account_sid
        self.twilio_auth_token = twilio_auth_token
        self.twilio_from_number = twilio_from_number

    @property
    def has_smtp(self) -> bool:
        return bool(self.smtp_host and self.smtp_port)

    @property
    def has_twilio(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


def load_environment_config(require_live_credentials: bool = False) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Always read:
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/notifications.db)
    - LOG_LEVEL: Override log level
    - ENVIRONMENT: Label attached to log records (default: local)

    Read for live providers (required when require_live_credentials is True):
    - SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_USE_TLS
    - TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER (optional)

    Args:
        require_live_credentials: Whether SMTP and Twilio credentials must be present

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If variables are missing or invalid
    """
    errors = []

    log_level = os.getenv("LOG_LEVEL")
    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port = None
    smtp_port_str = os.getenv("SMTP_PORT")
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    smtp_use_tls = True
    tls_str = os.getenv("SMTP_USE_TLS")
    if tls_str:
        if tls_str.strip().lower() in _TRUTHY:
            smtp_use_tls = True
        elif tls_str.strip().lower() in _FALSY:
            smtp_use_tls = False
        else:
            errors.append(f"Invalid SMTP_USE_TLS: '{tls_str}'. Use true or false.")

    twilio_sid = os.getenv("TWILIO_ACCOUNT_SID")
    twilio_token = os.getenv("TWILIO_AUTH_TOKEN")
    twilio_from = os.getenv("TWILIO_FROM_NUMBER")
    if twilio_from and not re.match(r"^\+\d{8,15}$", twilio_from.strip()):
        errors.append(f"Invalid TWILIO_FROM_NUMBER: '{twilio_from}'. Must be E.164, e.g. +16575551234.")

    if require_live_credentials:
        if not smtp_host:
            errors.append("Missing required environment variable for live email: SMTP_HOST")
        if not smtp_port_str:
            errors.append("Missing required environment variable for live email: SMTP_PORT")
        if not twilio_sid:
            errors.append("Missing required environment variable for live SMS: TWILIO_ACCOUNT_SID")
        if not twilio_token:
            errors.append("Missing required environment variable for live SMS: TWILIO_AUTH_TOKEN")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Set providers.mode to 'mock' to run without SMTP/Twilio credentials",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        database_url=os.getenv("DATABASE_URL"),
        log_level=log_level.upper() if log_level else None,
        environment=os.getenv("ENVIRONMENT", "local"),
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_use_tls=smtp_use_tls,
        twilio_account_sid=twilio_sid,
        twilio_auth_token=twilio_token,
        twilio_from_number=twilio_from.strip() if twilio_from else None,
    )
