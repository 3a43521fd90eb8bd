"""Webhook dispatch core: filtering, extraction and concurrent delivery."""

from __future__ import annotations

from .config import (
    AuthType,
    RetryPolicy,
    SyncConfig,
    load_env_defaults,
    merge_snapshots,
    realm_overrides,
)
from .engine import DeliveryJob, DispatchEngine
from .errors import HookSyncError, SyncConfigError, WebhookDeliveryError
from .extraction import ExtractionRejected, RejectionReason, extract
from .filters import EventFilter, should_dispatch
from .listener import ListenerOutcome, SyncEventListener, SyncListenerFactory
from .models import EventType, RawEvent, SyncPayload, decode_payload, encode_payload
from .observability import (
    DeliveryOutcome,
    DeliveryReport,
    DispatchEventLogger,
    DispatchEventType,
    ErrorCategory,
    categorize_error,
)
from .transport import WebhookClient, build_request_headers

__all__ = [
    "AuthType",
    "DeliveryJob",
    "DeliveryOutcome",
    "DeliveryReport",
    "DispatchEngine",
    "DispatchEventLogger",
    "DispatchEventType",
    "ErrorCategory",
    "EventFilter",
    "EventType",
    "ExtractionRejected",
    "HookSyncError",
    "ListenerOutcome",
    "RawEvent",
    "RejectionReason",
    "RetryPolicy",
    "SyncConfig",
    "SyncConfigError",
    "SyncEventListener",
    "SyncListenerFactory",
    "SyncPayload",
    "WebhookClient",
    "WebhookDeliveryError",
    "build_request_headers",
    "categorize_error",
    "decode_payload",
    "encode_payload",
    "extract",
    "load_env_defaults",
    "merge_snapshots",
    "realm_overrides",
    "should_dispatch",
]
