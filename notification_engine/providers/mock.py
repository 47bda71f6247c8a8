"""In-memory channel providers for development and tests.

Mocks behave like the live providers from the service's point of view:
they return ProviderResults, never raise, and produce provider references
in the same shape (``<...@mock.local>`` Message-IDs, ``SM...`` SIDs).
Every call is captured for assertions.
"""

import random
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from notification_engine.logging import get_logger
from notification_engine.rendering.engine import TemplateEngine
from notification_engine.utils.masking import mask_recipient
from notification_engine.utils.timestamps import utc_now

from .base import EmailParams, EmailProvider, ProviderResult, SMSParams, SMSProvider
from .exceptions import ProviderError

logger = get_logger(__name__, component="provider")

US_E164_PATTERN = re.compile(r"^\+1\d{10}$")
DEFAULT_SMS_FROM = "+16572522903"


@dataclass
class CapturedMessage:
    """One call made to a mock provider."""

    params: Union[EmailParams, SMSParams]
    provider_ref: Optional[str]
    success: bool
    sent_at: datetime = field(default_factory=utc_now)
    segment_count: Optional[int] = None
    error: Optional[ProviderError] = None

    @property
    def to(self) -> str:
        return self.params.to


class _MockProvider:
    """Shared capture, latency and failure injection for mock providers."""

    def __init__(
        self,
        failure_rate: float = 0.0,
        delay_seconds: float = 0.0,
        rng: Optional[random.Random] = None,
        sleep_func: Callable[[float], None] = time.sleep,
    ):
        """Initialize mock provider.

        Args:
            failure_rate: Probability (0..1) that a send fails with a transient error
            delay_seconds: Fixed simulated latency per call
            rng: Random source for failure injection (seed it for repeatable runs)
            sleep_func: Used for the simulated latency
        """
        self.failure_rate = 0.0
        self.set_failure_rate(failure_rate)
        self.delay_seconds = delay_seconds
        self.rng = rng or random.Random()
        self.sleep_func = sleep_func
        self._forced_failures: Dict[str, ProviderError] = {}
        self._sent: List[CapturedMessage] = []
        self._lock = threading.Lock()

    def set_failure_rate(self, rate: float) -> None:
        """Clamp and set the random failure probability."""
        self.failure_rate = max(0.0, min(1.0, float(rate)))

    def fail_for(self, recipient: str, error: Optional[ProviderError] = None) -> None:
        """Make every send to recipient fail with error until cleared.

        Defaults to a transient 503 error.
        """
        self._forced_failures[recipient] = error or ProviderError(
            "Service temporarily unavailable", status_code=503
        )

    def clear_failures(self) -> None:
        self._forced_failures.clear()

    def _pick_failure(self, recipient: str) -> Optional[ProviderError]:
        forced = self._forced_failures.get(recipient)
        if forced is not None:
            return forced
        with self._lock:
            roll = self.rng.random()
        if roll < self.failure_rate:
            return ProviderError(
                "Mock provider unavailable (simulated random failure)",
                status_code=503,
                code="MOCK_RANDOM_FAILURE",
            )
        return None

    def _simulate_latency(self) -> None:
        if self.delay_seconds > 0:
            self.sleep_func(self.delay_seconds)

    def _capture(self, captured: CapturedMessage) -> None:
        with self._lock:
            self._sent.append(captured)

    @property
    def sent(self) -> List[CapturedMessage]:
        """Every captured call, successful or not, in call order."""
        with self._lock:
            return list(self._sent)

    def successful(self) -> List[CapturedMessage]:
        return [message for message in self.sent if message.success]

    def failed(self) -> List[CapturedMessage]:
        return [message for message in self.sent if not message.success]

    def messages_to(self, recipient: str) -> List[CapturedMessage]:
        return [message for message in self.sent if message.to == recipient]

    def last(self) -> Optional[CapturedMessage]:
        sent = self.sent
        return sent[-1] if sent else None

    def clear(self) -> None:
        """Drop captured messages and forced failures."""
        with self._lock:
            self._sent.clear()
        self._forced_failures.clear()


class MockEmailProvider(_MockProvider, EmailProvider):
    """Email provider that records messages instead of sending them."""

    name = "mock-email"

    def send(self, params: EmailParams) -> ProviderResult:
        self._simulate_latency()

        if "@" not in (params.to or ""):
            error = ProviderError(f"Invalid email address: {params.to}", status_code=422)
        else:
            error = self._pick_failure(params.to)

        if error is not None:
            self._capture(CapturedMessage(params=params, provider_ref=None, success=False, error=error))
            logger.info(
                f"Mock email failed: {error.message}",
                extra={
                    "event": "provider.mock.failed",
                    "channel": "email",
                    "recipient": mask_recipient(params.to),
                    "status_code": error.status_code,
                },
            )
            return ProviderResult.failed(error)

        message_id = f"<{uuid.uuid4().hex}@mock.local>"
        self._capture(CapturedMessage(params=params, provider_ref=message_id, success=True))
        logger.info(
            "Mock email sent",
            extra={
                "event": "provider.mock.sent",
                "channel": "email",
                "recipient": mask_recipient(params.to),
                "provider_ref": message_id,
                "subject_length": len(params.subject or ""),
            },
        )
        return ProviderResult.ok(message_id)

    @property
    def total_sent(self) -> int:
        return len(self.successful())


class MockSMSProvider(_MockProvider, SMSProvider):
    """SMS provider that records messages instead of sending them.

    Only US numbers in +1XXXXXXXXXX form are accepted, mirroring the live
    account's geographic permissions.
    """

    name = "mock-sms"

    def send(self, params: SMSParams) -> ProviderResult:
        if not US_E164_PATTERN.match(params.to or ""):
            error = ProviderError(
                f"Invalid phone number format: {params.to}. Must start with +1",
                status_code=400,
                code="21211",
            )
            self._capture(CapturedMessage(params=params, provider_ref=None, success=False, error=error))
            logger.info(
                "Mock SMS rejected",
                extra={
                    "event": "provider.mock.failed",
                    "channel": "sms",
                    "recipient": mask_recipient(params.to),
                    "status_code": 400,
                },
            )
            return ProviderResult.failed(error)

        self._simulate_latency()

        segments = TemplateEngine.segment_count(params.body)
        error = self._pick_failure(params.to)
        if error is not None:
            self._capture(
                CapturedMessage(
                    params=params, provider_ref=None, success=False, segment_count=segments, error=error
                )
            )
            logger.info(
                f"Mock SMS failed: {error.message}",
                extra={
                    "event": "provider.mock.failed",
                    "channel": "sms",
                    "recipient": mask_recipient(params.to),
                    "status_code": error.status_code,
                },
            )
            return ProviderResult.failed(error)

        sid = f"SM{uuid.uuid4().hex}"
        self._capture(
            CapturedMessage(params=params, provider_ref=sid, success=True, segment_count=segments)
        )
        logger.info(
            "Mock SMS sent",
            extra={
                "event": "provider.mock.sent",
                "channel": "sms",
                "recipient": mask_recipient(params.to),
                "from_number": params.from_number or DEFAULT_SMS_FROM,
                "provider_ref": sid,
                "segment_count": segments,
            },
        )
        return ProviderResult.ok(sid, segment_count=segments)

    @property
    def total_segments(self) -> int:
        return sum(message.segment_count or 0 for message in self.successful())
