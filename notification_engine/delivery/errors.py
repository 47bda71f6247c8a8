"""Classification of delivery failures into retryable and final outcomes.

Rules are checked in order and the first match wins:

1. Network-layer failure (reset, refused, timeout, unreachable) -> transient
   (message wording only counts when there is no status, or 408/5xx)
2. HTTP 429 or rate-limit wording                                 -> rate_limit
3. HTTP 5xx                                                       -> transient
4. HTTP 400/422 or validation wording                             -> validation
5. HTTP 401/403/404                                               -> permanent
6. Anything else                                                  -> permanent

Only transient and rate_limit errors are retryable.
"""

import smtplib
import socket
from collections.abc import Mapping
from typing import Any, Optional

import requests

from notification_engine.domain.models import ClassifiedError, ErrorKind

NETWORK_ERROR_CODES = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "EHOSTUNREACH",
    "ENETUNREACH",
    "ENOTFOUND",
    "EAI_AGAIN",
    "EPIPE",
)

NETWORK_ERROR_PHRASES = (
    "connection reset",
    "connection refused",
    "connection aborted",
    "timed out",
    "timeout",
    "socket hang up",
    "network is unreachable",
    "host is unreachable",
    "name or service not known",
    "temporary failure in name resolution",
)

RATE_LIMIT_PHRASES = (
    "rate limit",
    "rate-limit",
    "too many requests",
    "throttled",
    "quota exceeded",
)

VALIDATION_PHRASES = (
    "invalid",
    "malformed",
    "bad request",
    "validation",
    "missing required",
    "unprocessable",
    "not valid",
)

NETWORK_EXCEPTION_TYPES = (
    ConnectionError,
    TimeoutError,
    socket.timeout,
    socket.gaierror,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    smtplib.SMTPServerDisconnected,
    smtplib.SMTPConnectError,
)


def error_message(raw: Any) -> str:
    """Best-effort human-readable message for any error shape."""
    if raw is None:
        return "Unknown error"
    if isinstance(raw, str):
        return raw or "Unknown error"
    if isinstance(raw, Mapping):
        message = raw.get("message") or raw.get("error") or raw.get("detail")
        return str(message) if message else str(dict(raw))
    message = getattr(raw, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(raw)
    return text or type(raw).__name__


def _status_code(raw: Any) -> Optional[int]:
    if isinstance(raw, Mapping):
        candidates = [raw.get("status_code"), raw.get("status"), raw.get("statusCode")]
    else:
        response = getattr(raw, "response", None)
        candidates = [
            getattr(raw, "status_code", None),
            getattr(raw, "status", None),
            getattr(response, "status_code", None) if response is not None else None,
        ]
        if isinstance(raw, smtplib.SMTPResponseException):
            candidates.append(raw.smtp_code)

    for candidate in candidates:
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int) and candidate > 0:
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _error_code(raw: Any) -> str:
    if isinstance(raw, Mapping):
        code = raw.get("code") or raw.get("errno")
    else:
        code = getattr(raw, "code", None)
        if code is None and isinstance(raw, OSError) and raw.errno is not None:
            code = raw.errno
    return str(code).upper() if code is not None else ""


def _contains(text: str, phrases) -> bool:
    return any(phrase in text for phrase in phrases)


def _is_network_error(raw: Any, code: str, text: str, status: Optional[int]) -> bool:
    if isinstance(raw, BaseException) and isinstance(raw, NETWORK_EXCEPTION_TYPES):
        return True
    if code in NETWORK_ERROR_CODES:
        return True
    # A provider that answered with a client status is not a network failure,
    # whatever its message says
    if status is not None and status != 408 and status < 500:
        return False
    upper_text = text.upper()
    if any(network_code in upper_text for network_code in NETWORK_ERROR_CODES):
        return True
    return _contains(text, NETWORK_ERROR_PHRASES)


def classify_error(raw: Any) -> ClassifiedError:
    """Classify an exception, ProviderError, message string, or error mapping.

    Args:
        raw: The failure as reported by a provider or raised by a transport

    Returns:
        ClassifiedError with kind, retryable flag, message and status code

    Examples:
        >>> classify_error({"code": "ECONNRESET", "message": "socket closed"}).kind
        <ErrorKind.TRANSIENT: 'transient'>
        >>> classify_error({"status_code": 404, "message": "Not Found"}).retryable
        False
    """
    message = error_message(raw)
    text = message.lower()
    status = _status_code(raw)
    code = _error_code(raw)

    def result(kind: ErrorKind, retryable: bool) -> ClassifiedError:
        return ClassifiedError(kind=kind, retryable=retryable, message=message, status_code=status)

    if _is_network_error(raw, code, text, status):
        return result(ErrorKind.TRANSIENT, True)

    if status == 429 or _contains(text, RATE_LIMIT_PHRASES):
        return result(ErrorKind.RATE_LIMIT, True)

    if status is not None and 500 <= status <= 599:
        return result(ErrorKind.TRANSIENT, True)

    if status in (400, 422) or _contains(text, VALIDATION_PHRASES):
        return result(ErrorKind.VALIDATION, False)

    if status in (401, 403, 404):
        return result(ErrorKind.PERMANENT, False)

    return result(ErrorKind.PERMANENT, False)


def is_retryable(raw: Any) -> bool:
    """Shorthand for classify_error(raw).retryable."""
    return classify_error(raw).retryable
