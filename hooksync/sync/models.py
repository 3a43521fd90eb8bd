"""Typed domain models for identity event dispatch."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import enum
import typing as typ

import msgspec


class EventType(enum.StrEnum):
    """User lifecycle event types raised by the identity platform."""

    LOGIN = "LOGIN"
    LOGIN_ERROR = "LOGIN_ERROR"
    REGISTER = "REGISTER"
    REGISTER_ERROR = "REGISTER_ERROR"
    LOGOUT = "LOGOUT"
    LOGOUT_ERROR = "LOGOUT_ERROR"
    CODE_TO_TOKEN = "CODE_TO_TOKEN"
    CLIENT_LOGIN = "CLIENT_LOGIN"
    REFRESH_TOKEN = "REFRESH_TOKEN"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    UPDATE_EMAIL = "UPDATE_EMAIL"
    UPDATE_PASSWORD = "UPDATE_PASSWORD"
    UPDATE_TOTP = "UPDATE_TOTP"
    REMOVE_TOTP = "REMOVE_TOTP"
    VERIFY_EMAIL = "VERIFY_EMAIL"
    SEND_VERIFY_EMAIL = "SEND_VERIFY_EMAIL"
    RESET_PASSWORD = "RESET_PASSWORD"
    SEND_RESET_PASSWORD = "SEND_RESET_PASSWORD"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"
    GRANT_CONSENT = "GRANT_CONSENT"
    REVOKE_GRANT = "REVOKE_GRANT"
    IMPERSONATE = "IMPERSONATE"
    IDENTITY_PROVIDER_LOGIN = "IDENTITY_PROVIDER_LOGIN"
    IDENTITY_PROVIDER_FIRST_LOGIN = "IDENTITY_PROVIDER_FIRST_LOGIN"
    IDENTITY_PROVIDER_LINK_ACCOUNT = "IDENTITY_PROVIDER_LINK_ACCOUNT"

    @classmethod
    def parse(cls, value: object) -> EventType | None:
        """Return the member named by ``value`` (case-insensitive) or ``None``."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        return cls.__members__.get(value.strip().upper())


DEFAULT_EVENT_TYPES: frozenset[EventType] = frozenset(
    {EventType.REGISTER, EventType.LOGIN}
)


@dataclasses.dataclass(frozen=True, slots=True)
class RawEvent:
    """Identity event notification as supplied by the host.

    ``event_type`` is kept as the host's type name so that events whose type
    is unknown to :class:`EventType` can still flow through filtering, where
    they simply never match.
    """

    event_id: str
    event_type: str
    user_id: str | None
    client_id: str | None
    realm_id: str
    ip_address: str | None = None
    timestamp: int = 0
    session_id: str | None = None


class Realm(typ.Protocol):
    """Read-only view of a tenant realm."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...


class User(typ.Protocol):
    """Read-only view of a user profile within a realm."""

    @property
    def id(self) -> str: ...

    @property
    def username(self) -> str | None: ...

    @property
    def email(self) -> str | None: ...

    @property
    def first_name(self) -> str | None: ...

    @property
    def last_name(self) -> str | None: ...

    def first_attribute(self, name: str) -> str | None:
        """Return the first value stored for attribute ``name``."""
        ...


type RealmLookup = cabc.Callable[[str], Realm | None]
type UserLookup = cabc.Callable[[Realm, str], User | None]


class SyncPayload(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """Enriched event record delivered to the webhook endpoint.

    Field names are emitted in camelCase. Extra profile attributes are nested
    under ``attributes`` rather than inlined, so they can never collide with
    the fixed identity fields.
    """

    event_id: str
    event_type: str
    user_id: str
    username: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    realm_id: str
    realm_name: str | None = None
    client_id: str | None = None
    ip_address: str | None = None
    timestamp: int = 0
    session_id: str | None = None
    attributes: dict[str, str] = msgspec.field(default_factory=dict)


_ENCODER = msgspec.json.Encoder()


def encode_payload(payload: SyncPayload) -> bytes:
    """Serialize a payload to the JSON request body."""
    return _ENCODER.encode(payload)


def decode_payload(body: bytes | str) -> SyncPayload:
    """Parse a JSON request body back into a :class:`SyncPayload`."""
    return msgspec.json.decode(body, type=SyncPayload)


__all__ = [
    "DEFAULT_EVENT_TYPES",
    "EventType",
    "RawEvent",
    "Realm",
    "RealmLookup",
    "SyncPayload",
    "User",
    "UserLookup",
    "decode_payload",
    "encode_payload",
]
