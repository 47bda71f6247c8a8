"""Channel providers (email and SMS) and the factory that selects them."""

from .base import EmailParams, EmailProvider, ProviderResult, SMSParams, SMSProvider
from .exceptions import ProviderConfigurationError, ProviderError
from .factory import ProviderSet, build_providers
from .mock import CapturedMessage, MockEmailProvider, MockSMSProvider
from .smtp_email import SmtpEmailProvider
from .twilio_sms import TwilioSMSProvider, normalize_phone_number

__all__ = [
    "EmailParams",
    "EmailProvider",
    "SMSParams",
    "SMSProvider",
    "ProviderResult",
    "ProviderError",
    "ProviderConfigurationError",
    "ProviderSet",
    "build_providers",
    "CapturedMessage",
    "MockEmailProvider",
    "MockSMSProvider",
    "SmtpEmailProvider",
    "TwilioSMSProvider",
    "normalize_phone_number",
]
