"""Configuration snapshots for webhook dispatch.

A :class:`SyncConfig` is built from a flat key/value snapshot: process-wide
defaults (usually from ``HOOKSYNC_*`` environment variables) with per-realm
overrides merged on top.

Usage
-----
Build a configuration directly:

>>> config = SyncConfig(endpoint="https://hooks.example.test/users")
>>> config.retry.max_attempts
3

Or from a snapshot of string values:

>>> config = SyncConfig.from_mapping(
...     {"apiEndpoint": "https://hooks.example.test/users", "maxRetries": "5"}
... )
>>> config.retry.max_attempts
5

"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import enum
import os
import re
import types

from hooksync.logging import get_logger, log_warning

from .errors import SyncConfigError
from .models import EventType

logger = get_logger(__name__)

_DEFAULT_CONNECT_TIMEOUT_S = 10.0
_DEFAULT_READ_TIMEOUT_S = 30.0
_DEFAULT_WORKER_COUNT = 5
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_DELAY_S = 5.0

ENV_PREFIX = "HOOKSYNC_"
REALM_ATTRIBUTE_PREFIX = "hooksync."

SNAPSHOT_KEYS: tuple[str, ...] = (
    "apiEndpoint",
    "apiToken",
    "apiAuthType",
    "clientIds",
    "eventTypes",
    "additionalAttributes",
    "apiHeaders",
    "connectionTimeout",
    "readTimeout",
    "threadPoolSize",
    "retryEnabled",
    "maxRetries",
    "retryDelay",
)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

type Snapshot = cabc.Mapping[str, str | None]


class AuthType(enum.StrEnum):
    """How the API token is presented in the ``Authorization`` header."""

    NONE = "none"
    BEARER = "bearer"
    RAW = "raw"

    @classmethod
    def parse(cls, value: str | None) -> AuthType:
        """Parse an auth type name; unknown non-blank names mean ``RAW``."""
        if value is None or not value.strip():
            return cls.BEARER
        lowered = value.strip().lower()
        if lowered == cls.BEARER.value:
            return cls.BEARER
        if lowered == cls.NONE.value:
            return cls.NONE
        return cls.RAW


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed-delay retry policy for failed deliveries.

    Attributes
    ----------
    enabled
        Whether failed deliveries are retried at all.
    max_attempts
        Number of retries after the first attempt. A payload is therefore
        sent at most ``max_attempts + 1`` times.
    delay_s
        Seconds to wait before each retry.

    """

    enabled: bool = True
    max_attempts: int = _DEFAULT_MAX_RETRIES
    delay_s: float = _DEFAULT_RETRY_DELAY_S

    def __post_init__(self) -> None:
        """Reject negative retry settings."""
        if self.max_attempts < 0:
            raise SyncConfigError.invalid_retry("max_attempts", self.max_attempts)
        if self.delay_s < 0:
            raise SyncConfigError.invalid_retry("delay_s", self.delay_s)

    @property
    def retry_budget(self) -> int:
        """Return how many retries a failed payload may consume."""
        return self.max_attempts if self.enabled else 0


@dataclasses.dataclass(frozen=True, slots=True)
class SyncConfig:
    """Immutable dispatch settings shared by every delivery worker.

    Attributes
    ----------
    endpoint
        Webhook URL. ``None`` or blank disables delivery.
    auth_type
        Presentation of ``auth_token`` in the ``Authorization`` header.
    auth_token
        API token; no ``Authorization`` header is derived when blank.
    headers
        Static headers added to every request.
    client_ids
        Clients whose events are dispatched; empty matches every client.
    event_types
        Event types to dispatch; empty means registration and login only.
    extra_attributes
        User profile attributes copied into each payload, in order.
    connect_timeout_s, read_timeout_s
        HTTP timeouts in seconds.
    worker_count
        Maximum number of concurrent deliveries.
    retry
        Retry policy for failed deliveries.

    """

    endpoint: str | None = None
    auth_type: AuthType = AuthType.BEARER
    auth_token: str | None = None
    headers: cabc.Mapping[str, str] = dataclasses.field(
        default_factory=lambda: types.MappingProxyType({})
    )
    client_ids: frozenset[str] = frozenset()
    event_types: frozenset[EventType] = frozenset()
    extra_attributes: tuple[str, ...] = ()
    connect_timeout_s: float = _DEFAULT_CONNECT_TIMEOUT_S
    read_timeout_s: float = _DEFAULT_READ_TIMEOUT_S
    worker_count: int = _DEFAULT_WORKER_COUNT
    retry: RetryPolicy = dataclasses.field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Freeze collection fields and validate numeric invariants."""
        object.__setattr__(
            self, "headers", types.MappingProxyType(dict(self.headers))
        )
        object.__setattr__(self, "client_ids", frozenset(self.client_ids))
        object.__setattr__(self, "event_types", frozenset(self.event_types))
        object.__setattr__(self, "extra_attributes", tuple(self.extra_attributes))
        if self.worker_count < 1:
            raise SyncConfigError.invalid_worker_count(self.worker_count)
        if self.connect_timeout_s <= 0:
            raise SyncConfigError.invalid_timeout(
                "connect_timeout_s", self.connect_timeout_s
            )
        if self.read_timeout_s <= 0:
            raise SyncConfigError.invalid_timeout(
                "read_timeout_s", self.read_timeout_s
            )

    @property
    def is_enabled(self) -> bool:
        """Return True when an endpoint is configured."""
        return bool(self.endpoint and self.endpoint.strip())

    @classmethod
    def from_mapping(cls, snapshot: Snapshot) -> SyncConfig:
        """Build a configuration from a flat key/value snapshot.

        Parsing is lenient: malformed or out-of-range numbers fall back to
        their defaults with a warning, unknown event type names and malformed
        header entries are dropped.

        Parameters
        ----------
        snapshot
            Mapping of the recognised keys (see ``SNAPSHOT_KEYS``) to raw
            string values. Missing keys and ``None`` values use defaults.

        Returns
        -------
        SyncConfig
            Frozen configuration built from the snapshot.

        """
        endpoint = _blank_to_none(snapshot.get("apiEndpoint"))
        return cls(
            endpoint=endpoint,
            auth_type=AuthType.parse(snapshot.get("apiAuthType")),
            auth_token=_blank_to_none(snapshot.get("apiToken")),
            headers=_parse_headers(snapshot.get("apiHeaders")),
            client_ids=frozenset(_split_csv(snapshot.get("clientIds"))),
            event_types=_parse_event_types(snapshot.get("eventTypes")),
            extra_attributes=tuple(
                dict.fromkeys(_split_csv(snapshot.get("additionalAttributes")))
            ),
            connect_timeout_s=_parse_number(
                snapshot, "connectionTimeout", _DEFAULT_CONNECT_TIMEOUT_S, minimum=1
            ),
            read_timeout_s=_parse_number(
                snapshot, "readTimeout", _DEFAULT_READ_TIMEOUT_S, minimum=1
            ),
            worker_count=int(
                _parse_number(
                    snapshot, "threadPoolSize", _DEFAULT_WORKER_COUNT, minimum=1
                )
            ),
            retry=RetryPolicy(
                enabled=_parse_bool(snapshot, "retryEnabled", default=True),
                max_attempts=int(
                    _parse_number(
                        snapshot, "maxRetries", _DEFAULT_MAX_RETRIES, minimum=0
                    )
                ),
                delay_s=_parse_number(
                    snapshot, "retryDelay", _DEFAULT_RETRY_DELAY_S, minimum=0
                ),
            ),
        )

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Build configuration from ``HOOKSYNC_*`` environment variables."""
        return cls.from_mapping(load_env_defaults())


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _split_csv(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_event_types(value: str | None) -> frozenset[EventType]:
    parsed = (EventType.parse(name) for name in _split_csv(value))
    return frozenset(event_type for event_type in parsed if event_type is not None)


def _parse_headers(value: str | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for entry in _split_csv(value):
        name, separator, header_value = entry.partition(":")
        if not separator or not name.strip():
            continue
        headers[name.strip()] = header_value.strip()
    return headers


def _parse_number(
    snapshot: Snapshot,
    key: str,
    default: float,
    *,
    minimum: float,
) -> float:
    raw = snapshot.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        log_warning(
            logger, "Ignoring non-integer %s=%r, using default %s", key, raw, default
        )
        return default
    if value < minimum:
        log_warning(
            logger,
            "Ignoring out-of-range %s=%d (minimum %s), using default %s",
            key,
            value,
            minimum,
            default,
        )
        return default
    return float(value)


def _parse_bool(snapshot: Snapshot, key: str, *, default: bool) -> bool:
    raw = snapshot.get(key)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered not in _FALSE_VALUES:
        log_warning(logger, "Treating non-boolean %s=%r as false", key, raw)
    return False


def env_var_for(key: str) -> str:
    """Return the environment variable name for a snapshot key.

    >>> env_var_for("threadPoolSize")
    'HOOKSYNC_THREAD_POOL_SIZE'

    """
    return ENV_PREFIX + re.sub(r"(?<!^)(?=[A-Z])", "_", key).upper()


def load_env_defaults() -> dict[str, str | None]:
    """Read process-wide snapshot defaults from the environment."""
    return {key: os.environ.get(env_var_for(key)) for key in SNAPSHOT_KEYS}


def realm_overrides(attributes: cabc.Mapping[str, str | None]) -> dict[str, str]:
    """Extract ``hooksync.``-prefixed realm attributes as snapshot overrides."""
    overrides: dict[str, str] = {}
    for key in SNAPSHOT_KEYS:
        value = attributes.get(REALM_ATTRIBUTE_PREFIX + key)
        if value is not None:
            overrides[key] = value
    return overrides


def merge_snapshots(defaults: Snapshot, overrides: Snapshot) -> dict[str, str | None]:
    """Merge realm overrides over defaults; ``None`` overrides are ignored."""
    merged = dict(defaults)
    merged.update(
        {key: value for key, value in overrides.items() if value is not None}
    )
    return merged


__all__ = [
    "ENV_PREFIX",
    "REALM_ATTRIBUTE_PREFIX",
    "SNAPSHOT_KEYS",
    "AuthType",
    "RetryPolicy",
    "Snapshot",
    "SyncConfig",
    "env_var_for",
    "load_env_defaults",
    "merge_snapshots",
    "realm_overrides",
]
