"""Exceptions raised inside the webhook dispatch core.

None of these escape :meth:`SyncEventListener.on_event` or
:meth:`DispatchEngine.submit`; they travel between the transport, the engine
and the observability layer so that failures can be categorised and logged
once at the point where they are contained.
"""

from __future__ import annotations

# Error message previews are clipped to keep log lines bounded.
_DETAIL_PREVIEW_LIMIT = 200


def _preview(detail: str) -> str:
    if len(detail) > _DETAIL_PREVIEW_LIMIT:
        return detail[:_DETAIL_PREVIEW_LIMIT] + "..."
    return detail


class HookSyncError(Exception):
    """Base exception for all hooksync errors."""


class SyncConfigError(HookSyncError):
    """Raised when a constructed configuration violates its invariants."""

    @classmethod
    def invalid_worker_count(cls, value: int) -> SyncConfigError:
        """Return an error for a worker pool smaller than one."""
        return cls(f"worker_count must be at least 1, got: {value}")

    @classmethod
    def invalid_timeout(cls, field: str, value: float) -> SyncConfigError:
        """Return an error for a non-positive timeout."""
        return cls(f"{field} must be positive, got: {value}")

    @classmethod
    def invalid_retry(cls, field: str, value: float) -> SyncConfigError:
        """Return an error for a negative retry setting."""
        return cls(f"retry {field} must not be negative, got: {value}")


class WebhookDeliveryError(HookSyncError):
    """Raised when a single delivery attempt fails.

    Attributes
    ----------
    status_code
        HTTP status returned by the endpoint, when a response was received.

    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int) -> WebhookDeliveryError:
        """Return an error for non-2xx responses."""
        msg = f"Webhook endpoint returned HTTP {status_code}"
        return cls(msg, status_code=status_code)

    @classmethod
    def timeout(cls) -> WebhookDeliveryError:
        """Return an error for connect or read timeouts."""
        return cls("Webhook request timed out")

    @classmethod
    def network_error(cls, detail: str) -> WebhookDeliveryError:
        """Return an error for DNS, connection or TLS failures."""
        return cls(f"Webhook network error: {_preview(detail)}")

    @classmethod
    def unexpected(cls, exc: BaseException) -> WebhookDeliveryError:
        """Wrap an exception the transport did not anticipate."""
        detail = _preview(str(exc))
        return cls(f"Unexpected webhook failure: {type(exc).__name__}: {detail}")


__all__ = ["HookSyncError", "SyncConfigError", "WebhookDeliveryError"]
