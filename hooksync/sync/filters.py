"""Event filtering for webhook dispatch.

An event is dispatched only when both its type and its client match the
realm configuration. The predicates never raise: events carrying unknown or
malformed type names are simply not dispatched.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from .models import DEFAULT_EVENT_TYPES, EventType

if typ.TYPE_CHECKING:
    from .config import SyncConfig
    from .models import RawEvent


@dataclasses.dataclass(frozen=True, slots=True)
class EventFilter:
    """Compiled event-type and client predicates for one configuration."""

    event_types: frozenset[EventType] = DEFAULT_EVENT_TYPES
    client_ids: frozenset[str] = frozenset()

    @classmethod
    def from_config(cls, config: SyncConfig) -> EventFilter:
        """Compile the filter, substituting the default event types if unset."""
        return cls(
            event_types=config.event_types or DEFAULT_EVENT_TYPES,
            client_ids=config.client_ids,
        )

    def should_dispatch(self, event: RawEvent) -> bool:
        """Return True when the event passes both predicates."""
        return self.matches_event_type(event) and self.matches_client(event)

    def matches_event_type(self, event: RawEvent) -> bool:
        """Return True when the event type is selected."""
        event_type = EventType.parse(getattr(event, "event_type", None))
        return event_type is not None and event_type in self.event_types

    def matches_client(self, event: RawEvent) -> bool:
        """Return True when no client filter is set or the client is listed."""
        if not self.client_ids:
            return True
        client_id = getattr(event, "client_id", None)
        return isinstance(client_id, str) and client_id in self.client_ids


def should_dispatch(event: RawEvent, config: SyncConfig) -> bool:
    """Decide whether an event should be extracted and dispatched."""
    return EventFilter.from_config(config).should_dispatch(event)


__all__ = ["EventFilter", "should_dispatch"]
