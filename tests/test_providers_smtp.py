"""Unit tests for the SMTP email provider.

SMTP connections are replaced with mocks through smtp_factory and
smtp_ssl_factory; nothing touches the network.
"""

import smtplib
import socket
from unittest.mock import MagicMock, Mock

import pytest

from notification_engine.delivery import classify_error
from notification_engine.domain.models import ErrorKind
from notification_engine.providers import EmailParams, ProviderConfigurationError, SmtpEmailProvider
from notification_engine.providers.smtp_email import normalize_recipient, smtp_error_to_provider_error


@pytest.fixture
def smtp_conn():
    return MagicMock()


@pytest.fixture
def smtp_factory(smtp_conn):
    return Mock(return_value=smtp_conn)


@pytest.fixture
def smtp_ssl_factory(smtp_conn):
    return Mock(return_value=smtp_conn)


@pytest.fixture
def provider(smtp_factory, smtp_ssl_factory):
    return SmtpEmailProvider(
        host="smtp.example.com",
        port=587,
        username="user@example.com",
        password="secret",
        smtp_factory=smtp_factory,
        smtp_ssl_factory=smtp_ssl_factory,
    )


@pytest.fixture
def params():
    return EmailParams(
        to="jane@example.com",
        subject="Booking confirmed",
        text="Plain body",
        html="<p>HTML body</p>",
    )


class TestSend:
    def test_starttls_login_and_send(self, provider, params, smtp_factory, smtp_ssl_factory, smtp_conn):
        result = provider.send(params)

        assert result.success is True
        smtp_factory.assert_called_once_with("smtp.example.com", 587, timeout=30)
        smtp_ssl_factory.assert_not_called()
        smtp_conn.starttls.assert_called_once()
        smtp_conn.login.assert_called_once_with("user@example.com", "secret")
        smtp_conn.send_message.assert_called_once()
        smtp_conn.quit.assert_called_once()

    def test_message_id_is_provider_ref(self, provider, params, smtp_conn):
        result = provider.send(params)

        sent = smtp_conn.send_message.call_args[0][0]
        assert sent["Message-ID"] == result.provider_ref
        assert result.provider_ref.endswith("@gmail.com>")

    def test_message_headers_and_parts(self, provider, params, smtp_conn):
        provider.send(params)

        sent = smtp_conn.send_message.call_args[0][0]
        assert sent["To"] == "jane@example.com"
        assert sent["Subject"] == "Booking confirmed"
        assert "Puppy Day" in sent["From"]
        assert sent.get_content_type() == "multipart/alternative"
        assert sent.get_body(preferencelist=("plain",)).get_content().strip() == "Plain body"
        assert "HTML body" in sent.get_body(preferencelist=("html",)).get_content()

    def test_text_only_message(self, provider, smtp_conn):
        provider.send(EmailParams(to="jane@example.com", subject="s", text="only text"))

        sent = smtp_conn.send_message.call_args[0][0]
        assert sent.get_content_type() == "text/plain"

    def test_reply_to_header(self, smtp_factory, smtp_conn):
        provider = SmtpEmailProvider(
            host="smtp.example.com",
            port=587,
            default_reply_to="help@thepuppyday.com",
            smtp_factory=smtp_factory,
        )

        provider.send(EmailParams(to="jane@example.com", subject="s", text="t"))

        assert smtp_conn.send_message.call_args[0][0]["Reply-To"] == "help@thepuppyday.com"

    def test_implicit_tls_port(self, smtp_factory, smtp_ssl_factory, smtp_conn, params):
        provider = SmtpEmailProvider(
            host="smtp.gmail.com",
            port=465,
            smtp_factory=smtp_factory,
            smtp_ssl_factory=smtp_ssl_factory,
        )

        assert provider.send(params).success
        smtp_ssl_factory.assert_called_once()
        smtp_factory.assert_not_called()
        smtp_conn.starttls.assert_not_called()

    def test_no_login_without_credentials(self, smtp_factory, smtp_conn, params):
        provider = SmtpEmailProvider(
            host="localhost", port=25, use_tls=False, smtp_factory=smtp_factory
        )

        assert provider.send(params).success
        smtp_conn.login.assert_not_called()
        smtp_conn.starttls.assert_not_called()

    def test_invalid_recipient_does_not_connect(self, provider, smtp_factory):
        result = provider.send(EmailParams(to="not an email", subject="s", text="t"))

        assert result.success is False
        assert result.error.status_code == 422
        smtp_factory.assert_not_called()

    def test_quit_called_after_failure(self, provider, params, smtp_conn):
        smtp_conn.send_message.side_effect = smtplib.SMTPServerDisconnected("gone")

        result = provider.send(params)

        assert result.success is False
        smtp_conn.quit.assert_called_once()

    def test_quit_errors_are_ignored(self, provider, params, smtp_conn):
        smtp_conn.quit.side_effect = smtplib.SMTPServerDisconnected("already closed")

        assert provider.send(params).success is True

    def test_requires_host(self):
        with pytest.raises(ProviderConfigurationError):
            SmtpEmailProvider(host="", port=587)


class TestErrorMapping:
    @pytest.mark.parametrize(
        "exc,kind",
        [
            (smtplib.SMTPServerDisconnected("gone"), ErrorKind.TRANSIENT),
            (smtplib.SMTPConnectError(421, b"busy"), ErrorKind.TRANSIENT),
            (socket.timeout("timed out"), ErrorKind.TRANSIENT),
            (ConnectionRefusedError(111, "refused"), ErrorKind.TRANSIENT),
            (smtplib.SMTPResponseException(451, b"try again later"), ErrorKind.TRANSIENT),
            (smtplib.SMTPAuthenticationError(535, b"bad credentials"), ErrorKind.PERMANENT),
            (smtplib.SMTPRecipientsRefused({"jane@example.com": (550, b"no")}), ErrorKind.VALIDATION),
            (smtplib.SMTPResponseException(550, b"mailbox unavailable"), ErrorKind.PERMANENT),
            (smtplib.SMTPDataError(554, b"transaction failed"), ErrorKind.VALIDATION),
        ],
    )
    def test_mapping_feeds_classifier(self, exc, kind):
        assert classify_error(smtp_error_to_provider_error(exc)).kind == kind

    def test_auth_failure_is_401(self):
        error = smtp_error_to_provider_error(smtplib.SMTPAuthenticationError(535, b"no"))

        assert error.status_code == 401

    def test_send_failure_returns_classifiable_result(self, provider, params, smtp_conn):
        smtp_conn.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        result = provider.send(params)

        assert result.success is False
        assert classify_error(result.error).retryable is False


def test_normalize_recipient():
    assert normalize_recipient("Jane@Example.com") == "Jane@example.com"
    with pytest.raises(ValueError):
        normalize_recipient("nope")
