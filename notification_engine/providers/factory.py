"""Factory for building the channel providers selected by configuration."""

import random
from dataclasses import dataclass

from notification_engine.config.environment import EnvironmentConfig
from notification_engine.config.models import ProviderConfig, ProviderMode
from notification_engine.logging import get_logger

from .base import EmailProvider, SMSProvider
from .exceptions import ProviderConfigurationError
from .mock import MockEmailProvider, MockSMSProvider
from .smtp_email import SmtpEmailProvider
from .twilio_sms import TwilioSMSProvider

logger = get_logger(__name__, component="provider")


@dataclass
class ProviderSet:
    """The email and SMS provider pair used by the notification service."""

    email: EmailProvider
    sms: SMSProvider


def _build_mock(provider_config: ProviderConfig, env_config: EnvironmentConfig) -> ProviderSet:
    rng = random.Random(provider_config.mock_seed)
    options = {
        "failure_rate": provider_config.mock_failure_rate,
        "delay_seconds": provider_config.mock_delay_ms / 1000.0,
    }
    return ProviderSet(
        email=MockEmailProvider(rng=rng, **options),
        sms=MockSMSProvider(rng=rng, **options),
    )


def _build_live(provider_config: ProviderConfig, env_config: EnvironmentConfig) -> ProviderSet:
    missing = []
    if not env_config.has_smtp:
        missing.append("SMTP_HOST/SMTP_PORT")
    if not env_config.has_twilio:
        missing.append("TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN")
    if missing:
        raise ProviderConfigurationError(
            f"Live provider mode requires credentials: {', '.join(missing)}"
        )

    email = SmtpEmailProvider(
        host=env_config.smtp_host,
        port=env_config.smtp_port,
        username=env_config.smtp_user,
        password=env_config.smtp_pass,
        use_tls=env_config.smtp_use_tls,
        default_from=provider_config.email_from,
        default_reply_to=provider_config.email_reply_to,
        timeout=provider_config.request_timeout,
    )
    sms = TwilioSMSProvider(
        account_sid=env_config.twilio_account_sid,
        auth_token=env_config.twilio_auth_token,
        from_number=env_config.twilio_from_number or provider_config.sms_from_number,
        timeout=provider_config.request_timeout,
    )
    return ProviderSet(email=email, sms=sms)


def build_providers(provider_config: ProviderConfig, env_config: EnvironmentConfig) -> ProviderSet:
    """Instantiate the providers for the configured mode.

    Args:
        provider_config: providers section of the application config
        env_config: Environment configuration holding live credentials

    Returns:
        ProviderSet with one email and one SMS provider

    Raises:
        ProviderConfigurationError: If the mode is unknown or live credentials are missing
    """
    builder_map = {
        ProviderMode.MOCK.value: _build_mock,
        ProviderMode.LIVE.value: _build_live,
    }

    mode = provider_config.mode.value if isinstance(provider_config.mode, ProviderMode) else str(provider_config.mode)
    builder = builder_map.get(mode)
    if builder is None:
        supported = ", ".join(sorted(builder_map.keys()))
        raise ProviderConfigurationError(f"Unknown provider mode: {mode}. Supported modes: {supported}")

    providers = builder(provider_config, env_config)
    logger.info(
        f"Using {mode} providers",
        extra={
            "event": "provider.init",
            "mode": mode,
            "email_provider": providers.email.name,
            "sms_provider": providers.sms.name,
        },
    )
    return providers
