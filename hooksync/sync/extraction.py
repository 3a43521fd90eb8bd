"""Build delivery payloads from identity events.

Extraction resolves the event's realm and user through injected lookups and
copies identity fields into a :class:`SyncPayload`. Missing entities and
lookup faults are returned as :class:`ExtractionRejected` values rather than
raised, so the caller can skip the event and carry on.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from .models import EventType, SyncPayload

if typ.TYPE_CHECKING:
    from .config import SyncConfig
    from .models import RawEvent, Realm, RealmLookup, User, UserLookup


class RejectionReason(enum.StrEnum):
    """Why an event could not be turned into a payload."""

    REALM_NOT_FOUND = "realm_not_found"
    USER_NOT_FOUND = "user_not_found"
    EXTRACTION_FAILED = "extraction_failed"


@dataclasses.dataclass(frozen=True, slots=True)
class ExtractionRejected:
    """Result returned when extraction does not produce a payload.

    Attributes
    ----------
    reason
        Rejection category.
    event_id
        Identifier of the rejected event.
    cause
        Exception raised by a lookup, for ``EXTRACTION_FAILED`` only.

    """

    reason: RejectionReason
    event_id: str
    cause: Exception | None = None

    @property
    def is_failure(self) -> bool:
        """Return True when an unexpected fault caused the rejection."""
        return self.reason is RejectionReason.EXTRACTION_FAILED


type ExtractionResult = SyncPayload | ExtractionRejected


def _collect_attributes(user: User, names: tuple[str, ...]) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for name in names:
        value = user.first_attribute(name)
        if value is not None:
            attributes[name] = value
    return attributes


def _build_payload(
    event: RawEvent,
    realm: Realm,
    user: User,
    config: SyncConfig,
) -> SyncPayload:
    # Filtered events always parse; the raw name is kept for direct callers.
    event_type = EventType.parse(event.event_type) or str(event.event_type)
    return SyncPayload(
        event_id=event.event_id,
        event_type=str(event_type),
        user_id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        realm_id=event.realm_id,
        realm_name=realm.name,
        client_id=event.client_id,
        ip_address=event.ip_address,
        timestamp=event.timestamp,
        session_id=event.session_id,
        attributes=_collect_attributes(user, config.extra_attributes),
    )


def extract(
    event: RawEvent,
    realm_lookup: RealmLookup,
    user_lookup: UserLookup,
    config: SyncConfig,
) -> ExtractionResult:
    """Resolve the event's realm and user and build its payload.

    Parameters
    ----------
    event
        Incoming identity event.
    realm_lookup
        Returns the realm for a realm id, or ``None`` when it does not exist.
    user_lookup
        Returns the user for a realm and user id, or ``None``.
    config
        Supplies the extra attribute names to copy.

    Returns
    -------
    SyncPayload | ExtractionRejected
        The payload, or the reason no payload could be built.

    """
    try:
        realm = realm_lookup(event.realm_id)
        if realm is None:
            return ExtractionRejected(RejectionReason.REALM_NOT_FOUND, event.event_id)

        user = None if event.user_id is None else user_lookup(realm, event.user_id)
        if user is None:
            return ExtractionRejected(RejectionReason.USER_NOT_FOUND, event.event_id)

        return _build_payload(event, realm, user, config)
    except Exception as exc:  # noqa: BLE001 - lookups are host code
        return ExtractionRejected(
            RejectionReason.EXTRACTION_FAILED, event.event_id, cause=exc
        )


__all__ = ["ExtractionRejected", "ExtractionResult", "RejectionReason", "extract"]
