"""Tests for mock providers and the provider factory."""

import random

import pytest

from notification_engine.config.environment import EnvironmentConfig
from notification_engine.config.models import ProviderConfig
from notification_engine.delivery import classify_error
from notification_engine.domain.models import ErrorKind
from notification_engine.providers import (
    EmailParams,
    MockEmailProvider,
    MockSMSProvider,
    ProviderConfigurationError,
    ProviderError,
    SMSParams,
    SmtpEmailProvider,
    TwilioSMSProvider,
    build_providers,
)


class TestMockEmailProvider:
    def test_send_captures_message(self):
        provider = MockEmailProvider()

        result = provider.send(EmailParams(to="jane@example.com", subject="Hi", text="Hello"))

        assert result.success is True
        assert result.provider_ref.startswith("<") and result.provider_ref.endswith("@mock.local>")
        assert provider.total_sent == 1
        assert provider.last().params.subject == "Hi"
        assert provider.messages_to("jane@example.com")[0].provider_ref == result.provider_ref

    def test_invalid_address_is_rejected(self):
        provider = MockEmailProvider()

        result = provider.send(EmailParams(to="not-an-address", subject="Hi", text="Hello"))

        assert result.success is False
        assert result.error.status_code == 422
        assert provider.total_sent == 0
        assert len(provider.failed()) == 1

    def test_forced_failure_for_recipient(self):
        provider = MockEmailProvider()
        provider.fail_for("jane@example.com")

        failed = provider.send(EmailParams(to="jane@example.com", subject="s", text="t"))
        other = provider.send(EmailParams(to="sam@example.com", subject="s", text="t"))

        assert failed.success is False
        assert classify_error(failed.error).kind == ErrorKind.TRANSIENT
        assert other.success is True

        provider.clear_failures()
        assert provider.send(EmailParams(to="jane@example.com", subject="s", text="t")).success

    def test_failure_rate_one_always_fails_transiently(self):
        provider = MockEmailProvider(failure_rate=1.0)

        result = provider.send(EmailParams(to="jane@example.com", subject="s", text="t"))

        assert result.success is False
        assert result.error.code == "MOCK_RANDOM_FAILURE"
        assert classify_error(result.error).retryable is True

    def test_failure_rate_is_clamped(self):
        provider = MockEmailProvider()
        provider.set_failure_rate(5)
        assert provider.failure_rate == 1.0
        provider.set_failure_rate(-1)
        assert provider.failure_rate == 0.0

    def test_seeded_rng_is_repeatable(self):
        def outcomes(seed):
            provider = MockEmailProvider(failure_rate=0.5, rng=random.Random(seed))
            return [
                provider.send(EmailParams(to="a@example.com", subject="s", text="t")).success
                for _ in range(20)
            ]

        assert outcomes(3) == outcomes(3)

    def test_simulated_latency_uses_sleep_func(self):
        calls = []
        provider = MockEmailProvider(delay_seconds=0.25, sleep_func=calls.append)

        provider.send(EmailParams(to="a@example.com", subject="s", text="t"))

        assert calls == [0.25]

    def test_clear_drops_captures(self):
        provider = MockEmailProvider()
        provider.send(EmailParams(to="a@example.com", subject="s", text="t"))

        provider.clear()

        assert provider.sent == []
        assert provider.last() is None


class TestMockSMSProvider:
    def test_send_returns_sid_and_segments(self):
        provider = MockSMSProvider()

        result = provider.send(SMSParams(to="+16575551234", body="x" * 200))

        assert result.success is True
        assert result.provider_ref.startswith("SM")
        assert result.segment_count == 2
        assert provider.total_segments == 2

    @pytest.mark.parametrize("number", ["6575551234", "+446575551234", "+1657555123", ""])
    def test_non_us_e164_numbers_are_rejected(self, number):
        provider = MockSMSProvider()

        result = provider.send(SMSParams(to=number, body="hi"))

        assert result.success is False
        assert result.error.status_code == 400
        assert result.error.code == "21211"
        assert classify_error(result.error).kind == ErrorKind.VALIDATION


class TestBuildProviders:
    def test_mock_mode(self):
        providers = build_providers(
            ProviderConfig(mode="mock", mock_failure_rate=0.2, mock_delay_ms=150),
            EnvironmentConfig(),
        )

        assert isinstance(providers.email, MockEmailProvider)
        assert isinstance(providers.sms, MockSMSProvider)
        assert providers.email.failure_rate == 0.2
        assert providers.sms.delay_seconds == pytest.approx(0.15)

    def test_live_mode(self):
        env = EnvironmentConfig(
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="user",
            smtp_pass="pass",
            twilio_account_sid="AC123",
            twilio_auth_token="token",
        )

        providers = build_providers(ProviderConfig(mode="live"), env)

        assert isinstance(providers.email, SmtpEmailProvider)
        assert isinstance(providers.sms, TwilioSMSProvider)
        assert providers.email.host == "smtp.example.com"
        assert providers.sms.from_number == "+16572522903"

    def test_live_mode_prefers_env_from_number(self):
        env = EnvironmentConfig(
            smtp_host="smtp.example.com",
            smtp_port=587,
            twilio_account_sid="AC123",
            twilio_auth_token="token",
            twilio_from_number="+16575550000",
        )

        assert build_providers(ProviderConfig(mode="live"), env).sms.from_number == "+16575550000"

    def test_live_mode_without_credentials(self):
        with pytest.raises(ProviderConfigurationError, match="TWILIO_ACCOUNT_SID"):
            build_providers(
                ProviderConfig(mode="live"),
                EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=587),
            )

    def test_provider_error_repr_and_dict(self):
        error = ProviderError("boom", status_code=503, code="X")

        assert error.to_dict() == {"message": "boom", "status_code": 503, "code": "X"}
        assert "status_code=503" in repr(error)
