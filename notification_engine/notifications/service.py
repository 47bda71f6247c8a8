"""Notification service: the delivery orchestrator.

Coordinates the send flow for one message:
1. Gate checks (type/channel disabled, recipient opted out, type paused)
2. Template lookup and rendering
3. Durable ``pending`` log row before any provider call
4. Provider call on the message's channel
5. Outcome recorded on the same row (sent, failed_retryable, failed_permanent)

Retries re-use the row: process_retries() claims due rows atomically,
re-renders them from their data snapshot and sends again.

Every log write runs in its own committed session (session_factory), so a
crash after the provider call still leaves the pending row behind.
"""

import random
import time
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterable, List, Mapping, Optional, Set

from sqlalchemy.orm import Session

from notification_engine.config.models import BatchConfig, RetryConfig
from notification_engine.delivery.errors import classify_error
from notification_engine.delivery.retry_policy import compute_retry_after, has_exceeded_max_retries
from notification_engine.domain.models import (
    Channel,
    ClassifiedError,
    NotificationLogEntry,
    NotificationMessage,
    NotificationStatus,
    NotificationTemplate,
)
from notification_engine.logging import get_logger
from notification_engine.logging.context import log_context
from notification_engine.persistence.database import get_session
from notification_engine.persistence.exceptions import PersistenceError
from notification_engine.persistence.repositories import NotificationLogRepository
from notification_engine.providers.base import EmailParams, ProviderResult, SMSParams
from notification_engine.providers.factory import ProviderSet
from notification_engine.rendering.engine import RenderedOutput, TemplateEngine, TemplateRenderError
from notification_engine.utils.masking import mask_recipient
from notification_engine.utils.timestamps import utc_now

from .collaborators import NotificationSettings, RecipientPreferences, TemplateRepository
from .failure_tracker import FailureTracker
from .metrics import NotificationMetrics, compute_metrics
from .models import NotificationResult, RetryRunResult, TemplateNotFoundError

logger = get_logger(__name__, component="notification")

DEFAULT_TRANSACTIONAL_TYPES = (
    "booking_confirmation",
    "appointment_status",
    "appointment_cancelled",
    "report_card_ready",
)
DEFAULT_CLAIM_LEASE_SECONDS = 300

SKIP_DISABLED = "notification type disabled"
SKIP_OPTED_OUT = "recipient opted out"
SKIP_PAUSED = "notification type paused after repeated failures"


class NotificationService:
    """Sends notifications and drives retries through the notification log."""

    def __init__(
        self,
        template_engine: TemplateEngine,
        providers: ProviderSet,
        template_repository: TemplateRepository,
        settings: NotificationSettings,
        preferences: RecipientPreferences,
        retry_config: Optional[RetryConfig] = None,
        batch_config: Optional[BatchConfig] = None,
        failure_tracker: Optional[FailureTracker] = None,
        transactional_types: Iterable[str] = DEFAULT_TRANSACTIONAL_TYPES,
        claim_lease_seconds: float = DEFAULT_CLAIM_LEASE_SECONDS,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        """Initialize notification service.

        Args:
            template_engine: Renders templates with the business context
            providers: Email and SMS providers built at startup
            template_repository: Template lookup by (type, channel)
            settings: Type/channel enable switches
            preferences: Recipient opt-outs (ignored for transactional types)
            retry_config: Backoff parameters (defaults when None)
            batch_config: Chunking for send_batch and process_retries
            failure_tracker: Per-type pause counters (threshold 10 when None)
            transactional_types: Types that bypass opt-out checks
            claim_lease_seconds: How long a claimed retry stays invisible to other sweeps
            session_factory: Context manager yielding a committed session per unit of work
            sleep: Used for pauses between batches
            clock: Current UTC time
            rng: Random source for retry jitter
        """
        self.template_engine = template_engine
        self.providers = providers
        self.template_repository = template_repository
        self.settings = settings
        self.preferences = preferences
        self.retry_config = retry_config or RetryConfig()
        self.batch_config = batch_config or BatchConfig()
        self.failure_tracker = failure_tracker or FailureTracker()
        self.transactional_types = set(transactional_types)
        self.claim_lease_seconds = claim_lease_seconds
        self.session_factory = session_factory
        self.sleep = sleep
        self.clock = clock
        self.rng = rng

    # Log access

    def _repo(self, session: Session) -> NotificationLogRepository:
        return NotificationLogRepository(session, max_retries=self.retry_config.max_retries)

    def _create_entry(self, entry: NotificationLogEntry) -> str:
        with self.session_factory() as session:
            return self._repo(session).create(entry)

    def _update_entry(self, log_id: str, **changes: Any) -> NotificationLogEntry:
        with self.session_factory() as session:
            return self._repo(session).update(log_id, **changes)

    def get_log_entry(self, log_id: str) -> Optional[NotificationLogEntry]:
        with self.session_factory() as session:
            return self._repo(session).get(log_id)

    # Sending

    def send(self, message: NotificationMessage) -> NotificationResult:
        """Deliver one message. Never raises; the outcome is in the result.

        Args:
            message: What to send and to whom

        Returns:
            NotificationResult; success is True only when the provider accepted it
        """
        with log_context(
            notification_type=message.type,
            channel=message.channel.value,
            recipient=mask_recipient(message.recipient),
        ) as ctx:
            try:
                return self._send(message, ctx)
            except PersistenceError as e:
                logger.error(
                    f"Failed to record notification: {e}",
                    exc_info=True,
                    extra={"event": "notification.send.persistence_error"},
                )
                return NotificationResult(success=False, error=f"Failed to record notification: {e}")
            except Exception as e:
                logger.error(
                    f"Unexpected error sending notification: {e}",
                    exc_info=True,
                    extra={"event": "notification.send.error", "error_type": type(e).__name__},
                )
                return NotificationResult(success=False, error=f"Unexpected error: {e}")

    def _send(self, message: NotificationMessage, ctx: log_context) -> NotificationResult:
        skip_reason = self._skip_reason(message)
        if skip_reason is not None:
            log_id = self._create_entry(self._new_entry(message))
            ctx.update(log_id=log_id)
            self._update_entry(log_id, status=NotificationStatus.SKIPPED, error_message=skip_reason)
            logger.info(
                f"Notification skipped: {skip_reason}",
                extra={"event": "notification.send.skipped", "reason": skip_reason},
            )
            return NotificationResult(success=False, error=skip_reason, log_id=log_id, skipped=True)

        template = self.template_repository.get_by_type_and_channel(message.type, message.channel)
        if template is None:
            error = str(TemplateNotFoundError(message.type, message.channel.value))
            return self._fail_before_dispatch(message, ctx, error, template=None)

        warnings = self._missing_variable_warnings(template, message.template_data)
        try:
            rendered = self.template_engine.render(template, message.template_data)
        except TemplateRenderError as e:
            return self._fail_before_dispatch(message, ctx, str(e), template=template)
        warnings.extend(rendered.warnings)

        log_id = self._create_entry(self._new_entry(message, template, rendered))
        ctx.update(log_id=log_id)
        logger.info(
            "Dispatching notification",
            extra={
                "event": "notification.send.started",
                "template_id": template.id,
                "segment_count": rendered.segment_count if message.channel == Channel.SMS else None,
            },
        )

        outcome = self._dispatch(message.channel, message.recipient, rendered)
        if outcome.success:
            self._mark_sent(log_id, outcome, message.type)
            return NotificationResult(
                success=True, message_id=outcome.provider_ref, log_id=log_id, warnings=warnings
            )

        classified = classify_error(outcome.error)
        self._mark_failed(log_id, retry_count=0, classified=classified, notification_type=message.type)
        return NotificationResult(
            success=False, error=classified.message, log_id=log_id, warnings=warnings
        )

    def _skip_reason(self, message: NotificationMessage) -> Optional[str]:
        if not self.settings.is_enabled(message.type, message.channel):
            return SKIP_DISABLED
        if message.type not in self.transactional_types:
            if self.preferences.is_opted_out(message.user_id or message.recipient, message.type):
                return SKIP_OPTED_OUT
        if self.failure_tracker.is_paused(message.type):
            return SKIP_PAUSED
        return None

    def _missing_variable_warnings(self, template: NotificationTemplate, data: Mapping) -> List[str]:
        validation = self.template_engine.validate(template, (data or {}).keys())
        for error in validation.errors:
            logger.warning(
                error,
                extra={"event": "template.validation.warning", "template_id": template.id},
            )
        return list(validation.errors)

    def _fail_before_dispatch(
        self,
        message: NotificationMessage,
        ctx: log_context,
        error: str,
        template: Optional[NotificationTemplate],
    ) -> NotificationResult:
        log_id = self._create_entry(self._new_entry(message, template))
        ctx.update(log_id=log_id)
        self._update_entry(log_id, status=NotificationStatus.FAILED_PERMANENT, error_message=error)
        logger.error(
            f"Notification failed before dispatch: {error}",
            extra={"event": "notification.send.failed", "retryable": False},
        )
        return NotificationResult(success=False, error=error, log_id=log_id)

    def _new_entry(
        self,
        message: NotificationMessage,
        template: Optional[NotificationTemplate] = None,
        rendered: Optional[RenderedOutput] = None,
    ) -> NotificationLogEntry:
        return NotificationLogEntry(
            type=message.type,
            channel=message.channel,
            recipient=message.recipient,
            user_id=message.user_id,
            template_id=template.id if template else None,
            template_data_snapshot=dict(message.template_data),
            subject=rendered.subject if rendered else None,
            content=rendered.text if rendered else None,
            is_test=message.is_test,
            created_at=self.clock(),
        )

    def _dispatch(self, channel: Channel, recipient: str, rendered: RenderedOutput) -> ProviderResult:
        """Call the channel's provider; exceptions become failed results."""
        try:
            if Channel(channel) == Channel.EMAIL:
                return self.providers.email.send(
                    EmailParams(
                        to=recipient,
                        subject=rendered.subject or "",
                        text=rendered.text,
                        html=rendered.html,
                    )
                )
            return self.providers.sms.send(SMSParams(to=recipient, body=rendered.text))
        except Exception as e:
            logger.warning(
                f"Provider raised {type(e).__name__}: {e}",
                extra={"event": "provider.exception", "error_type": type(e).__name__},
            )
            return ProviderResult(success=False, error=e)

    def _mark_sent(self, log_id: str, outcome: ProviderResult, notification_type: str) -> None:
        self._update_entry(
            log_id,
            status=NotificationStatus.SENT,
            message_id=outcome.provider_ref,
            sent_at=self.clock(),
            retry_after=None,
            error_message=None,
        )
        self.failure_tracker.record_success(notification_type)
        logger.info(
            "Notification sent",
            extra={"event": "notification.send.success", "provider_ref": outcome.provider_ref},
        )

    def _mark_failed(
        self, log_id: str, retry_count: int, classified: ClassifiedError, notification_type: str
    ) -> NotificationStatus:
        """Record a failed attempt; returns the status the row moved to."""
        if classified.retryable and not has_exceeded_max_retries(retry_count, self.retry_config):
            retry_after = compute_retry_after(retry_count, self.retry_config, now=self.clock(), rng=self.rng)
            self._update_entry(
                log_id,
                status=NotificationStatus.FAILED_RETRYABLE,
                retry_after=retry_after,
                error_message=classified.message,
            )
            status = NotificationStatus.FAILED_RETRYABLE
        else:
            self._update_entry(
                log_id,
                status=NotificationStatus.FAILED_PERMANENT,
                retry_after=None,
                error_message=classified.message,
            )
            status = NotificationStatus.FAILED_PERMANENT

        self.failure_tracker.record_failure(notification_type)
        logger.warning(
            f"Notification failed: {classified.message}",
            extra={
                "event": "notification.send.failed",
                "error_kind": classified.kind.value,
                "status_code": classified.status_code,
                "retryable": classified.retryable,
                "retry_count": retry_count,
                "new_status": status.value,
            },
        )
        return status

    def send_batch(self, messages: Iterable[NotificationMessage]) -> List[NotificationResult]:
        """Send messages in chunks; results are in input order.

        One message failing never affects the others.
        """
        messages = list(messages)
        chunk_size = self.batch_config.chunk_size
        results: List[NotificationResult] = []

        for start in range(0, len(messages), chunk_size):
            if start > 0 and self.batch_config.chunk_delay_seconds > 0:
                self.sleep(self.batch_config.chunk_delay_seconds)
            for message in messages[start:start + chunk_size]:
                results.append(self.send(message))

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            f"Batch complete: {succeeded}/{len(results)} sent",
            extra={
                "event": "notification.batch.complete",
                "total": len(results),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
            },
        )
        return results

    # Retries

    def process_retries(self) -> RetryRunResult:
        """Run one retry sweep over due failed_retryable rows. Never raises."""
        result = RetryRunResult()
        sweep_started = self.clock()
        seen: Set[str] = set()
        batch_size = self.batch_config.retry_batch_size

        logger.info("Retry sweep started", extra={"event": "notification.retry.sweep_started"})

        try:
            with self.session_factory() as session:
                abandoned = self._repo(session).finalize_exhausted_retries(
                    sweep_started, self.retry_config.max_retries
                )
        except PersistenceError as e:
            logger.error(
                f"Failed to finalize exhausted retries: {e}",
                exc_info=True,
                extra={"event": "notification.retry.sweep_error"},
            )
            result.errors.append({"log_id": None, "error": str(e)})
            return self._finish_sweep(result)

        result.abandoned = len(abandoned)
        for log_id in abandoned:
            logger.warning(
                "Retry attempt abandoned at the retry limit; marked failed_permanent",
                extra={"event": "notification.retry.abandoned", "log_id": log_id},
            )

        while True:
            try:
                with self.session_factory() as session:
                    # Rows whose claim failed stay due; skip them so later pages are reached
                    batch = self._repo(session).find_due_retries(
                        sweep_started, self.retry_config.max_retries, limit=batch_size, exclude=seen
                    )
            except PersistenceError as e:
                logger.error(
                    f"Failed to load due retries: {e}",
                    exc_info=True,
                    extra={"event": "notification.retry.sweep_error"},
                )
                result.errors.append({"log_id": None, "error": str(e)})
                break

            if not batch:
                break
            if seen and self.batch_config.retry_batch_delay_seconds > 0:
                self.sleep(self.batch_config.retry_batch_delay_seconds)
            seen.update(batch)

            for log_id in batch:
                self._retry_one(log_id, result)

            if len(batch) < batch_size:
                break

        return self._finish_sweep(result)

    def _finish_sweep(self, result: RetryRunResult) -> RetryRunResult:
        logger.info(
            f"Retry sweep complete: {result.succeeded} sent, {result.failed} failed, {result.skipped} skipped",
            extra={
                "event": "notification.retry.sweep_completed",
                "processed": result.processed,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "skipped": result.skipped,
                "abandoned": result.abandoned,
                "error_count": len(result.errors),
            },
        )
        return result

    def _retry_one(self, log_id: str, result: RetryRunResult) -> None:
        with log_context(log_id=log_id):
            try:
                with self.session_factory() as session:
                    entry = self._repo(session).claim_retry(
                        log_id,
                        self.clock(),
                        self.retry_config.max_retries,
                        self.claim_lease_seconds,
                    )
            except PersistenceError as e:
                logger.error(
                    f"Failed to claim retry: {e}",
                    exc_info=True,
                    extra={"event": "notification.retry.claim_error"},
                )
                result.errors.append({"log_id": log_id, "error": str(e)})
                return

            if entry is None:
                result.skipped += 1
                logger.debug("Retry already claimed elsewhere", extra={"event": "notification.retry.claim_lost"})
                return

            result.processed += 1
            try:
                error = self._attempt_retry(entry)
            except PersistenceError as e:
                logger.error(
                    f"Failed to record retry: {e}",
                    exc_info=True,
                    extra={"event": "notification.retry.persistence_error"},
                )
                error = str(e)
            except Exception as e:
                logger.error(
                    f"Unexpected error during retry: {e}",
                    exc_info=True,
                    extra={"event": "notification.retry.error"},
                )
                error = f"Unexpected error: {e}"

            if error is None:
                result.succeeded += 1
            else:
                result.failed += 1
                result.errors.append({"log_id": log_id, "error": error})

    def _attempt_retry(self, entry: NotificationLogEntry) -> Optional[str]:
        """Re-send a claimed row; returns an error message, or None on success."""
        with log_context(notification_type=entry.type, channel=entry.channel.value, retry_count=entry.retry_count):
            logger.info("Retrying notification", extra={"event": "notification.retry.started"})

            template = self.template_repository.get_by_type_and_channel(entry.type, entry.channel)
            if template is None:
                error = str(TemplateNotFoundError(entry.type, entry.channel.value))
                self._update_entry(
                    entry.id,
                    status=NotificationStatus.FAILED_PERMANENT,
                    retry_after=None,
                    error_message=error,
                )
                return error

            try:
                rendered = self.template_engine.render(template, entry.template_data_snapshot)
            except TemplateRenderError as e:
                self._update_entry(
                    entry.id,
                    status=NotificationStatus.FAILED_PERMANENT,
                    retry_after=None,
                    error_message=str(e),
                )
                return str(e)

            outcome = self._dispatch(entry.channel, entry.recipient, rendered)
            if outcome.success:
                self._mark_sent(entry.id, outcome, entry.type)
                return None

            classified = classify_error(outcome.error)
            self._mark_failed(entry.id, entry.retry_count, classified, entry.type)
            return classified.message

    # Operations

    def render_preview(
        self, notification_type: str, channel: Channel, data: Optional[Mapping] = None
    ) -> RenderedOutput:
        """Render a template without sending or logging anything.

        Raises:
            TemplateNotFoundError: If no template exists for the pair
            TemplateRenderError: If rendering fails
        """
        template = self.template_repository.get_by_type_and_channel(notification_type, channel)
        if template is None:
            raise TemplateNotFoundError(notification_type, Channel(channel).value)
        rendered = self.template_engine.render(template, data or {})
        rendered.warnings = self._missing_variable_warnings(template, data or {}) + rendered.warnings
        return rendered

    def get_metrics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_test: bool = False,
    ) -> NotificationMetrics:
        """Delivery statistics for rows created in [start, end] (last 30 days by default)."""
        with self.session_factory() as session:
            return compute_metrics(self._repo(session), start, end, include_test=include_test)

    def reset_failures(self, notification_type: str) -> None:
        """Clear the failure counter for a type and lift its pause."""
        self.failure_tracker.reset(notification_type)
