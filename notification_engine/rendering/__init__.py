"""Template rendering and SMS sizing."""

from .engine import (
    DEFAULT_VARIABLE_LENGTH,
    SHORTENED_URL_LENGTH,
    SMS_MULTI_SEGMENT_LENGTH,
    SMS_SINGLE_SEGMENT_LENGTH,
    RenderedOutput,
    SmsEstimate,
    TemplateEngine,
    TemplateRenderError,
    ValidationResult,
)

__all__ = [
    "TemplateEngine",
    "TemplateRenderError",
    "RenderedOutput",
    "SmsEstimate",
    "ValidationResult",
    "SMS_SINGLE_SEGMENT_LENGTH",
    "SMS_MULTI_SEGMENT_LENGTH",
    "SHORTENED_URL_LENGTH",
    "DEFAULT_VARIABLE_LENGTH",
]
