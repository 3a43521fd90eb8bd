"""Structured log events for webhook dispatch.

Dispatch outcomes are only ever visible to operators through logs, so every
stage of the pipeline emits a ``[<event type>] key=value`` line through
:class:`DispatchEventLogger`. Final delivery outcomes are also described by
:class:`DeliveryReport` values that the engine hands to an optional callback
for metrics collection.

Usage
-----
>>> event_logger = DispatchEventLogger()
>>> event_logger.log_filtered_out(event, reason="event_type")

"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from hooksync.logging import get_logger, log_debug, log_error, log_info, log_warning

from .errors import WebhookDeliveryError

if typ.TYPE_CHECKING:
    from .extraction import ExtractionRejected
    from .models import RawEvent

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_CLIENT_ERROR_THRESHOLD = 400


class DispatchEventType(enum.StrEnum):
    """Structured log event types for the dispatch pipeline."""

    EVENT_FILTERED = "dispatch.event.filtered"
    EVENT_REJECTED = "dispatch.event.rejected"
    EVENT_FAILED = "dispatch.event.failed"
    EVENT_SUBMITTED = "dispatch.event.submitted"
    DELIVERY_DISABLED = "dispatch.delivery.disabled"
    DELIVERY_SUCCEEDED = "dispatch.delivery.succeeded"
    DELIVERY_RETRY_SCHEDULED = "dispatch.delivery.retry_scheduled"
    DELIVERY_EXHAUSTED = "dispatch.delivery.exhausted"
    DELIVERY_ABANDONED = "dispatch.delivery.abandoned"
    DELIVERY_REFUSED = "dispatch.delivery.refused"
    DELIVERY_UNSERIALIZABLE = "dispatch.delivery.unserializable"
    ENGINE_SHUTDOWN = "dispatch.engine.shutdown"


class DeliveryOutcome(enum.StrEnum):
    """Final outcome of one submitted payload."""

    DELIVERED = "delivered"
    CONFIGURATION_DISABLED = "configuration_disabled"
    RETRY_EXHAUSTED = "retry_exhausted"
    ABANDONED = "abandoned"
    REFUSED = "refused"
    SERIALIZATION_FAILED = "serialization_failed"


class ErrorCategory(enum.StrEnum):
    """Categories used to enrich delivery failure logs."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class DeliveryReport:
    """Final outcome of a payload, emitted once per submission."""

    event_id: str
    user_id: str | None
    outcome: DeliveryOutcome
    attempts: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return True when the payload reached the endpoint."""
        return self.outcome is DeliveryOutcome.DELIVERED


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise a delivery failure for log enrichment.

    Timeouts, network faults and 5xx responses are transient; other HTTP
    statuses are client errors. The category does not change retry
    behaviour.
    """
    if not isinstance(exc, WebhookDeliveryError):
        return ErrorCategory.UNKNOWN
    status = exc.status_code
    if status is None or status >= _HTTP_SERVER_ERROR_THRESHOLD:
        return ErrorCategory.TRANSIENT
    if status >= _HTTP_CLIENT_ERROR_THRESHOLD:
        return ErrorCategory.CLIENT_ERROR
    return ErrorCategory.UNKNOWN


class DispatchEventLogger:
    """Emit structured dispatch events via femtologging."""

    def log_filtered_out(self, event: RawEvent, *, reason: str) -> None:
        """Log an event skipped by the filter at DEBUG."""
        log_debug(
            logger,
            "[%s] event_id=%s event_type=%s client_id=%s reason=%s",
            DispatchEventType.EVENT_FILTERED,
            event.event_id,
            event.event_type,
            event.client_id,
            reason,
        )

    def log_rejected(self, event: RawEvent, rejection: ExtractionRejected) -> None:
        """Log a missing realm or user at WARNING, and lookup faults at ERROR."""
        if rejection.is_failure:
            cause = rejection.cause
            log_error(
                logger,
                "[%s] event_id=%s realm_id=%s user_id=%s error_type=%s "
                "error_message=%s",
                DispatchEventType.EVENT_FAILED,
                event.event_id,
                event.realm_id,
                event.user_id,
                type(cause).__name__,
                str(cause),
                exc_info=cause,
            )
            return
        log_warning(
            logger,
            "[%s] event_id=%s realm_id=%s user_id=%s reason=%s",
            DispatchEventType.EVENT_REJECTED,
            event.event_id,
            event.realm_id,
            event.user_id,
            rejection.reason,
        )

    def log_listener_fault(self, event: RawEvent, error: BaseException) -> None:
        """Log an unexpected fault while handling an event."""
        log_error(
            logger,
            "[%s] event_id=%s error_type=%s error_message=%s",
            DispatchEventType.EVENT_FAILED,
            getattr(event, "event_id", None),
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_submitted(self, event: RawEvent) -> None:
        """Log an event handed to the dispatch engine."""
        log_info(
            logger,
            "[%s] event_id=%s event_type=%s user_id=%s client_id=%s",
            DispatchEventType.EVENT_SUBMITTED,
            event.event_id,
            event.event_type,
            event.user_id,
            event.client_id,
        )

    def log_retry_scheduled(
        self,
        *,
        event_id: str,
        attempt: int,
        retries_remaining: int,
        delay_s: float,
        error: BaseException,
    ) -> None:
        """Log a failed attempt that will be retried."""
        log_warning(
            logger,
            "[%s] event_id=%s attempt=%d retries_remaining=%d delay_seconds=%.3f "
            "error_category=%s error_message=%s",
            DispatchEventType.DELIVERY_RETRY_SCHEDULED,
            event_id,
            attempt,
            retries_remaining,
            delay_s,
            categorize_error(error),
            str(error),
        )

    def log_report(self, report: DeliveryReport) -> None:
        """Log a final delivery outcome at the level it warrants."""
        match report.outcome:
            case DeliveryOutcome.DELIVERED:
                log_info(
                    logger,
                    "[%s] event_id=%s user_id=%s attempts=%d",
                    DispatchEventType.DELIVERY_SUCCEEDED,
                    report.event_id,
                    report.user_id,
                    report.attempts,
                )
            case DeliveryOutcome.CONFIGURATION_DISABLED:
                log_debug(
                    logger,
                    "[%s] event_id=%s endpoint not configured",
                    DispatchEventType.DELIVERY_DISABLED,
                    report.event_id,
                )
            case DeliveryOutcome.REFUSED:
                log_warning(
                    logger,
                    "[%s] event_id=%s engine is shut down",
                    DispatchEventType.DELIVERY_REFUSED,
                    report.event_id,
                )
            case DeliveryOutcome.ABANDONED:
                log_warning(
                    logger,
                    "[%s] event_id=%s user_id=%s attempts=%d",
                    DispatchEventType.DELIVERY_ABANDONED,
                    report.event_id,
                    report.user_id,
                    report.attempts,
                )
            case DeliveryOutcome.SERIALIZATION_FAILED:
                log_error(
                    logger,
                    "[%s] event_id=%s error_message=%s",
                    DispatchEventType.DELIVERY_UNSERIALIZABLE,
                    report.event_id,
                    report.error,
                )
            case DeliveryOutcome.RETRY_EXHAUSTED:
                log_error(
                    logger,
                    "[%s] event_id=%s user_id=%s attempts=%d error_message=%s",
                    DispatchEventType.DELIVERY_EXHAUSTED,
                    report.event_id,
                    report.user_id,
                    report.attempts,
                    report.error,
                )

    def log_shutdown(self, *, drained: bool, abandoned: int) -> None:
        """Log engine teardown."""
        log_info(
            logger,
            "[%s] drained=%s abandoned=%d",
            DispatchEventType.ENGINE_SHUTDOWN,
            drained,
            abandoned,
        )


__all__ = [
    "DeliveryOutcome",
    "DeliveryReport",
    "DispatchEventLogger",
    "DispatchEventType",
    "ErrorCategory",
    "categorize_error",
]
