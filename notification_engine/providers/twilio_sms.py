"""Twilio SMS provider.

Talks to the Twilio REST API directly with requests. HTTP and transport
failures are turned into ProviderErrors carrying the HTTP status and the
Twilio error code.
"""

import logging
import re
from typing import Any, Dict, Optional

import requests

from notification_engine.logging import get_logger
from notification_engine.utils.masking import mask_recipient

from .base import ProviderResult, SMSParams, SMSProvider
from .exceptions import ProviderConfigurationError, ProviderError

logger = get_logger(__name__, component="provider")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
INVALID_NUMBER_CODE = "21211"
E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


def normalize_phone_number(number: str) -> str:
    """Normalize a phone number to E.164.

    Bare 10-digit numbers are treated as US numbers.

    Raises:
        ValueError: If the number cannot be normalized

    Examples:
        >>> normalize_phone_number("(657) 252-2903")
        '+16572522903'
        >>> normalize_phone_number("+44 20 7946 0958")
        '+442079460958'
    """
    raw = (number or "").strip()
    digits = re.sub(r"\D", "", raw)

    if raw.startswith("+"):
        candidate = f"+{digits}"
    elif len(digits) == 10:
        candidate = f"+1{digits}"
    elif len(digits) == 11 and digits.startswith("1"):
        candidate = f"+{digits}"
    else:
        candidate = ""

    if not E164_PATTERN.match(candidate):
        raise ValueError(f"Invalid phone number format: {number}")
    return candidate


class TwilioSMSProvider(SMSProvider):
    """Sends SMS through the Twilio Messages API."""

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        api_base: str = TWILIO_API_BASE,
    ) -> None:
        """Initialize Twilio provider.

        Args:
            account_sid: Twilio account SID (AC...)
            auth_token: Twilio auth token
            from_number: Sender number in E.164 form
            timeout: HTTP request timeout in seconds
            session: Optional requests session (tests pass a mock)
            api_base: API root URL

        Raises:
            ProviderConfigurationError: If credentials or the sender number are missing
        """
        if not account_sid or not auth_token:
            raise ProviderConfigurationError("Twilio account SID and auth token are required")
        if not from_number:
            raise ProviderConfigurationError("Twilio from number is required")

        self.account_sid = account_sid
        self.from_number = from_number
        self.timeout = timeout
        self.api_base = api_base.rstrip("/")

        self._session = session or requests.Session()
        self._session.auth = (account_sid, auth_token)

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    def _make_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        """POST a message and return the parsed JSON body.

        Raises:
            ProviderError: On HTTP >= 400, timeouts, connection errors or bad JSON
        """
        url = self.messages_url
        try:
            logger.debug(
                f"HTTP POST request to {url}",
                extra={"event": "provider.twilio.request", "url": url, "timeout": self.timeout},
            )
            response = self._session.post(url, data=form, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ProviderError(
                f"Request to Twilio timed out after {self.timeout} seconds", code="ETIMEDOUT"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise ProviderError(f"Connection to Twilio failed: {e}", code="ECONNRESET") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request to Twilio failed: {e}") from e

        if response.status_code >= 400:
            body = self._safe_json(response)
            twilio_code = body.get("code")
            message = body.get("message") or response.reason or "Twilio request failed"

            is_retryable = response.status_code >= 500 or response.status_code == 429
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from Twilio",
                extra={
                    "event": "provider.twilio.http_error",
                    "status_code": response.status_code,
                    "twilio_code": twilio_code,
                },
            )
            raise ProviderError(
                f"HTTP {response.status_code}: {message}",
                status_code=response.status_code,
                code=str(twilio_code) if twilio_code is not None else None,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Failed to parse Twilio response: {e}", status_code=502) from e

    @staticmethod
    def _safe_json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def send(self, params: SMSParams) -> ProviderResult:
        try:
            to_number = normalize_phone_number(params.to)
        except ValueError as e:
            return ProviderResult.failed(
                ProviderError(str(e), status_code=400, code=INVALID_NUMBER_CODE)
            )

        form = {
            "To": to_number,
            "From": params.from_number or self.from_number,
            "Body": params.body,
        }

        try:
            data = self._make_request(form)
        except ProviderError as error:
            logger.warning(
                f"Twilio delivery failed: {error.message}",
                extra={
                    "event": "provider.twilio.failed",
                    "recipient": mask_recipient(to_number),
                    "status_code": error.status_code,
                    "error_code": error.code,
                },
            )
            return ProviderResult.failed(error)

        sid = data.get("sid")
        if not sid:
            return ProviderResult.failed(
                ProviderError("Twilio response did not include a message SID", status_code=502)
            )

        segments = data.get("num_segments")
        try:
            segment_count = int(segments) if segments is not None else None
        except (TypeError, ValueError):
            segment_count = None

        logger.info(
            "SMS accepted by Twilio",
            extra={
                "event": "provider.twilio.sent",
                "recipient": mask_recipient(to_number),
                "provider_ref": sid,
                "segment_count": segment_count,
                "twilio_status": data.get("status"),
            },
        )
        return ProviderResult.ok(sid, segment_count=segment_count)
