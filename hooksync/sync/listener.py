"""Event listener that drives filtering, extraction and dispatch.

The host calls :meth:`SyncEventListener.on_event` from its event-processing
path. Each stage contains its own faults: filtered, rejected and failed
events are logged and skipped, and nothing propagates back to the host.

:class:`SyncListenerFactory` builds listeners per realm, merging the realm's
``hooksync.*`` attributes over process-wide defaults and keeping one
dispatch engine per realm while its configuration is unchanged.
"""

from __future__ import annotations

import enum
import threading
import typing as typ
import weakref

from hooksync.logging import configure_from_env, get_logger, log_error, log_info

from .config import SyncConfig, load_env_defaults, merge_snapshots, realm_overrides
from .engine import DEFAULT_SHUTDOWN_GRACE_S, DispatchEngine
from .extraction import ExtractionRejected, extract
from .filters import EventFilter
from .observability import DeliveryOutcome, DeliveryReport, DispatchEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from .config import Snapshot
    from .engine import OutcomeCallback
    from .models import RawEvent, RealmLookup, UserLookup

    type ClientFactory = cabc.Callable[[SyncConfig], httpx.AsyncClient]

logger = get_logger(__name__)


class ListenerOutcome(enum.StrEnum):
    """What the listener did with one event."""

    FILTERED_OUT = "filtered_out"
    REJECTED = "rejected"
    FAILED = "failed"
    SUBMITTED = "submitted"
    DISABLED = "disabled"
    REFUSED = "refused"


class SyncEventListener:
    """Turn accepted identity events into webhook deliveries.

    Parameters
    ----------
    config
        Configuration snapshot for the realm being served.
    engine
        Dispatch engine that delivers the payloads, or ``None`` when
        ``config`` has no endpoint and nothing will ever be sent.
    realm_lookup, user_lookup
        Host-provided lookups used to enrich events.
    owns_engine
        Whether :meth:`close` shuts the engine down.
    on_outcome
        Receives the ``CONFIGURATION_DISABLED`` report for events accepted
        while no engine is attached. Engine outcomes go to the engine's own
        callback.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: SyncConfig,
        engine: DispatchEngine | None,
        realm_lookup: RealmLookup,
        user_lookup: UserLookup,
        *,
        owns_engine: bool = False,
        event_logger: DispatchEventLogger | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        """Compile the event filter for ``config``."""
        self._config = config
        self._engine = engine
        self._realm_lookup = realm_lookup
        self._user_lookup = user_lookup
        self._owns_engine = owns_engine
        self._event_logger = event_logger or DispatchEventLogger()
        self._on_outcome = on_outcome
        self._filter = EventFilter.from_config(config)

    @property
    def config(self) -> SyncConfig:
        """Return the listener's configuration snapshot."""
        return self._config

    @property
    def engine(self) -> DispatchEngine | None:
        """Return the engine receiving this listener's payloads."""
        return self._engine

    def on_event(self, event: RawEvent) -> ListenerOutcome:
        """Filter, enrich and submit one event. Never raises."""
        try:
            return self._process(event)
        except Exception as exc:  # noqa: BLE001 - the host path must not fail
            self._event_logger.log_listener_fault(event, exc)
            return ListenerOutcome.FAILED

    def _process(self, event: RawEvent) -> ListenerOutcome:
        if not self._filter.matches_event_type(event):
            self._event_logger.log_filtered_out(event, reason="event_type")
            return ListenerOutcome.FILTERED_OUT
        if not self._filter.matches_client(event):
            self._event_logger.log_filtered_out(event, reason="client")
            return ListenerOutcome.FILTERED_OUT

        if self._engine is None:
            self._report_disabled(event)
            return ListenerOutcome.DISABLED

        result = extract(event, self._realm_lookup, self._user_lookup, self._config)
        if isinstance(result, ExtractionRejected):
            self._event_logger.log_rejected(event, result)
            if result.is_failure:
                return ListenerOutcome.FAILED
            return ListenerOutcome.REJECTED

        if self._engine.submit(result):
            self._event_logger.log_submitted(event)
            return ListenerOutcome.SUBMITTED
        if not self._engine.config.is_enabled:
            return ListenerOutcome.DISABLED
        if not self._engine.is_accepting:
            return ListenerOutcome.REFUSED
        # The engine reported the payload as unserializable.
        return ListenerOutcome.FAILED

    def _report_disabled(self, event: RawEvent) -> None:
        report = DeliveryReport(
            event_id=event.event_id,
            user_id=event.user_id,
            outcome=DeliveryOutcome.CONFIGURATION_DISABLED,
        )
        self._event_logger.log_report(report)
        if self._on_outcome is None:
            return
        try:
            self._on_outcome(report)
        except Exception as exc:  # noqa: BLE001 - observer faults stay contained
            log_error(
                logger,
                "Delivery outcome callback failed for event %s: %s",
                report.event_id,
                exc,
                exc_info=exc,
            )

    def close(self) -> None:
        """Shut down the engine if this listener owns it."""
        if self._owns_engine and self._engine is not None:
            self._engine.shutdown()


class SyncListenerFactory:
    """Create per-realm listeners from defaults and realm attributes.

    Engines are cached per realm id, and realms without an endpoint get no
    engine at all. A realm whose merged configuration changes gets a new
    engine. The previous one keeps accepting work for the listeners already
    handed out; once the last of them is garbage collected it is shut down
    on a background thread, letting outstanding deliveries finish within
    the engine's grace period.

    Parameters
    ----------
    defaults
        Process-wide configuration snapshot.
    realm_lookup, user_lookup
        Host-provided lookups passed to every listener.
    client_factory
        Builds the ``httpx.AsyncClient`` for each new engine. Every engine
        runs its own event loop, so clients are never shared; each one is
        closed when its engine shuts down. When omitted, engines create
        their own clients.
    on_outcome
        Receives every final :class:`DeliveryReport`.
    shutdown_grace_s
        Grace period used when engines are shut down.

    """

    def __init__(  # noqa: PLR0913
        self,
        defaults: Snapshot,
        realm_lookup: RealmLookup,
        user_lookup: UserLookup,
        *,
        client_factory: ClientFactory | None = None,
        on_outcome: OutcomeCallback | None = None,
        shutdown_grace_s: float = DEFAULT_SHUTDOWN_GRACE_S,
    ) -> None:
        """Store the process-wide defaults and host lookups."""
        self._defaults = dict(defaults)
        self._realm_lookup = realm_lookup
        self._user_lookup = user_lookup
        self._client_factory = client_factory
        self._on_outcome = on_outcome
        self._shutdown_grace_s = shutdown_grace_s
        self._engines: dict[str, DispatchEngine] = {}
        self._leases: dict[DispatchEngine, int] = {}
        self._retired: set[DispatchEngine] = set()
        self._retirements: list[threading.Thread] = []
        # Reentrant: listener finalizers may run on this thread during GC.
        self._lock = threading.RLock()

    @classmethod
    def from_env(
        cls,
        realm_lookup: RealmLookup,
        user_lookup: UserLookup,
    ) -> SyncListenerFactory:
        """Build a factory from ``HOOKSYNC_*`` environment variables.

        ``HOOKSYNC_LOG_LEVEL``, when set, also configures femtologging.
        """
        configure_from_env(logger)
        return cls(load_env_defaults(), realm_lookup, user_lookup)

    def config_for(
        self, realm_attributes: cabc.Mapping[str, str | None] | None = None
    ) -> SyncConfig:
        """Return the merged configuration for a realm's attributes."""
        overrides = realm_overrides(realm_attributes or {})
        return SyncConfig.from_mapping(merge_snapshots(self._defaults, overrides))

    def listener_for(
        self,
        realm_id: str,
        realm_attributes: cabc.Mapping[str, str | None] | None = None,
    ) -> SyncEventListener:
        """Return a listener for ``realm_id`` sharing the realm's engine.

        Never blocks on an engine shutdown.
        """
        config = self.config_for(realm_attributes)
        idle: DispatchEngine | None = None
        with self._lock:
            engine = self._engines.get(realm_id)
            if engine is not None and engine.config != config:
                del self._engines[realm_id]
                if self._leases.get(engine, 0):
                    self._retired.add(engine)
                else:
                    idle = engine
                engine = None
            if engine is None and config.is_enabled:
                engine = self._build_engine(config)
                self._engines[realm_id] = engine
                log_info(
                    logger,
                    "Started dispatch engine for realm %s (workers=%d)",
                    realm_id,
                    config.worker_count,
                )
            if engine is not None:
                self._leases[engine] = self._leases.get(engine, 0) + 1
        if idle is not None:
            self._retire(idle)

        listener = SyncEventListener(
            config,
            engine,
            self._realm_lookup,
            self._user_lookup,
            on_outcome=self._on_outcome,
        )
        if engine is not None:
            finalizer = weakref.finalize(listener, self._release, engine)
            finalizer.atexit = False
        return listener

    def close(self) -> None:
        """Shut down every engine created by this factory."""
        with self._lock:
            engines = [*self._engines.values(), *self._retired]
            self._engines.clear()
            self._retired.clear()
            self._leases.clear()
            retirements = list(self._retirements)
            self._retirements.clear()
        for engine in engines:
            engine.shutdown()
        for thread in retirements:
            thread.join()

    def _release(self, engine: DispatchEngine) -> None:
        with self._lock:
            remaining = self._leases.get(engine, 0) - 1
            if remaining > 0:
                self._leases[engine] = remaining
                return
            self._leases.pop(engine, None)
            if engine not in self._retired:
                return
            self._retired.discard(engine)
        self._retire(engine)

    def _retire(self, engine: DispatchEngine) -> None:
        thread = threading.Thread(
            target=engine.shutdown, name="hooksync-retire", daemon=True
        )
        with self._lock:
            self._retirements = [t for t in self._retirements if t.is_alive()]
            self._retirements.append(thread)
        thread.start()

    def _build_engine(self, config: SyncConfig) -> DispatchEngine:
        if self._client_factory is None:
            return DispatchEngine(
                config,
                on_outcome=self._on_outcome,
                shutdown_grace_s=self._shutdown_grace_s,
            )
        return DispatchEngine(
            config,
            http_client=self._client_factory(config),
            close_client=True,
            on_outcome=self._on_outcome,
            shutdown_grace_s=self._shutdown_grace_s,
        )


__all__ = ["ListenerOutcome", "SyncEventListener", "SyncListenerFactory"]
