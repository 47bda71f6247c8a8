"""Channel provider interfaces.

A provider delivers one rendered message over one channel. The notification
service depends only on these interfaces; which implementation is used
(mock or live) is decided once at startup by providers.factory.

Contract: ``send()`` reports delivery failures through a failed
ProviderResult carrying a ProviderError. It does not raise for them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from notification_engine.domain.models import Channel

from .exceptions import ProviderError


@dataclass
class EmailParams:
    """A rendered email ready for delivery."""

    to: str
    subject: str
    text: str
    html: Optional[str] = None
    from_address: Optional[str] = None
    reply_to: Optional[str] = None


@dataclass
class SMSParams:
    """A rendered SMS ready for delivery."""

    to: str
    body: str
    from_number: Optional[str] = None


@dataclass
class ProviderResult:
    """Outcome of a single provider call.

    Attributes:
        success: Whether the provider accepted the message
        provider_ref: Provider message id (Message-ID header, Twilio SID, ...)
        segment_count: SMS segments billed, when the provider reports it
        error: Failure details when success is False
    """

    success: bool
    provider_ref: Optional[str] = None
    segment_count: Optional[int] = None
    error: Optional[ProviderError] = None

    @classmethod
    def ok(cls, provider_ref: str, segment_count: Optional[int] = None) -> "ProviderResult":
        return cls(success=True, provider_ref=provider_ref, segment_count=segment_count)

    @classmethod
    def failed(cls, error: ProviderError) -> "ProviderResult":
        return cls(success=False, error=error)


class EmailProvider(ABC):
    """Delivers email messages."""

    channel = Channel.EMAIL
    name = "email"

    @abstractmethod
    def send(self, params: EmailParams) -> ProviderResult:
        """Deliver one email.

        Args:
            params: Rendered message and addressing

        Returns:
            ProviderResult; failures carry a ProviderError
        """


class SMSProvider(ABC):
    """Delivers SMS messages."""

    channel = Channel.SMS
    name = "sms"

    @abstractmethod
    def send(self, params: SMSParams) -> ProviderResult:
        """Deliver one SMS.

        Args:
            params: Rendered body and addressing

        Returns:
            ProviderResult; failures carry a ProviderError
        """
