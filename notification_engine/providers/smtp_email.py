"""SMTP email provider.

Thin wrapper around smtplib with TLS/SSL, optional authentication, and
connection cleanup. SMTP failures are normalized into ProviderErrors with
HTTP-like status codes so the error classifier can treat every channel the
same way.
"""

import smtplib
import socket
import ssl
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from notification_engine.logging import get_logger
from notification_engine.utils.masking import mask_recipient

from .base import EmailParams, EmailProvider, ProviderResult
from .exceptions import ProviderConfigurationError, ProviderError

logger = get_logger(__name__, component="provider")

IMPLICIT_TLS_PORT = 465
MAILBOX_UNAVAILABLE_CODES = (550, 551, 553)


def normalize_recipient(address: str) -> str:
    """Validate and normalize a recipient address.

    Raises:
        ValueError: If the address is not a valid email address
    """
    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address '{address}': {e}") from e


def smtp_error_to_provider_error(exc: BaseException) -> ProviderError:
    """Map an smtplib/socket exception to a ProviderError.

    - connection refused/reset/timeouts -> network codes (transient)
    - authentication failure            -> 401
    - refused recipient                 -> 422
    - refused sender                    -> 403
    - 4xx replies                       -> 503 (transient)
    - 550/551/553 replies               -> 404
    - other 5xx replies                 -> 400
    """
    if isinstance(exc, smtplib.SMTPConnectError):
        return ProviderError(f"SMTP connection failed: {exc}", code="ECONNREFUSED")
    if isinstance(exc, smtplib.SMTPServerDisconnected):
        return ProviderError(f"SMTP server disconnected: {exc}", code="ECONNRESET")
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return ProviderError(f"SMTP connection timed out: {exc}", code="ETIMEDOUT")
    if isinstance(exc, ConnectionRefusedError):
        return ProviderError(f"SMTP connection refused: {exc}", code="ECONNREFUSED")
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return ProviderError(f"SMTP authentication failed: {exc.smtp_code}", status_code=401)
    if isinstance(exc, smtplib.SMTPRecipientsRefused):
        return ProviderError(f"Recipient refused by SMTP server: {exc.recipients}", status_code=422)
    if isinstance(exc, smtplib.SMTPSenderRefused):
        return ProviderError(f"Sender refused by SMTP server: {exc.sender}", status_code=403)
    if isinstance(exc, smtplib.SMTPResponseException):
        reply = exc.smtp_error.decode("utf-8", "replace") if isinstance(exc.smtp_error, bytes) else str(exc.smtp_error)
        message = f"SMTP error {exc.smtp_code}: {reply}"
        if 400 <= exc.smtp_code < 500:
            return ProviderError(message, status_code=503, code=str(exc.smtp_code))
        if exc.smtp_code in MAILBOX_UNAVAILABLE_CODES:
            return ProviderError(message, status_code=404, code=str(exc.smtp_code))
        return ProviderError(message, status_code=400, code=str(exc.smtp_code))
    if isinstance(exc, OSError):
        return ProviderError(f"Network error during SMTP delivery: {exc}", code="ECONNRESET")
    return ProviderError(f"SMTP delivery failed: {exc}")


class SmtpEmailProvider(EmailProvider):
    """Sends email over SMTP.

    Port 465 uses implicit TLS; other ports use STARTTLS when use_tls is set.
    smtp_factory and smtp_ssl_factory exist so tests can substitute fakes.
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        default_from: str = "Puppy Day <puppyday14936@gmail.com>",
        default_reply_to: Optional[str] = None,
        timeout: int = 30,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        if not host:
            raise ProviderConfigurationError("SMTP host is required")
        if not port:
            raise ProviderConfigurationError("SMTP port is required")

        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_from = default_from
        self.default_reply_to = default_reply_to
        self.timeout = timeout
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def build_message(self, params: EmailParams, recipient: str) -> EmailMessage:
        """Build a multipart/alternative message with a generated Message-ID."""
        sender = params.from_address or self.default_from
        sender_domain = parseaddr(sender)[1].rpartition("@")[2] or self.host

        message = EmailMessage()
        message["Subject"] = params.subject
        message["From"] = sender
        message["To"] = recipient
        message["Message-ID"] = make_msgid(domain=sender_domain)
        reply_to = params.reply_to or self.default_reply_to
        if reply_to:
            message["Reply-To"] = reply_to

        message.set_content(params.text or "")
        if params.html:
            message.add_alternative(params.html, subtype="html")
        return message

    def send(self, params: EmailParams) -> ProviderResult:
        try:
            recipient = normalize_recipient(params.to)
        except ValueError as e:
            return ProviderResult.failed(ProviderError(str(e), status_code=422))

        message = self.build_message(params, recipient)
        message_id = message["Message-ID"]

        smtp = None
        try:
            if self.port == IMPLICIT_TLS_PORT:
                smtp = self.smtp_ssl_factory(
                    self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
                )
            else:
                smtp = self.smtp_factory(self.host, self.port, timeout=self.timeout)
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if self.username and self.password:
                smtp.login(self.username, self.password)

            smtp.send_message(message)

        except (smtplib.SMTPException, OSError) as e:
            error = smtp_error_to_provider_error(e)
            logger.warning(
                f"SMTP delivery failed: {error.message}",
                extra={
                    "event": "provider.smtp.failed",
                    "recipient": mask_recipient(recipient),
                    "error_type": type(e).__name__,
                    "status_code": error.status_code,
                    "error_code": error.code,
                },
            )
            return ProviderResult.failed(error)
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.debug(f"Error closing SMTP connection: {e}")

        logger.info(
            "Email accepted by SMTP server",
            extra={
                "event": "provider.smtp.sent",
                "recipient": mask_recipient(recipient),
                "provider_ref": message_id,
            },
        )
        return ProviderResult.ok(message_id)
