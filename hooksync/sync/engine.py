"""Concurrent webhook delivery engine.

The engine runs an asyncio event loop on a dedicated daemon thread. A fixed
number of worker tasks pull delivery jobs from a queue and POST them through
a shared :class:`WebhookClient`, so at most ``worker_count`` requests are in
flight at once. Failed attempts are re-enqueued by an event-loop timer after
the configured retry delay; no worker is held while a retry waits.

:meth:`DispatchEngine.submit` is safe to call from any thread and never
blocks on network I/O, which keeps the host's event-processing path
independent of endpoint latency.

Usage
-----
>>> with DispatchEngine(config) as engine:
...     engine.submit(payload)
...     engine.wait_idle(timeout=10)

"""

from __future__ import annotations

import asyncio
import collections.abc as cabc
import dataclasses
import threading
import typing as typ

import msgspec

from hooksync.logging import get_logger, log_error, log_warning

from .errors import WebhookDeliveryError
from .models import encode_payload
from .observability import DeliveryOutcome, DeliveryReport, DispatchEventLogger
from .transport import WebhookClient

if typ.TYPE_CHECKING:
    import types

    import httpx

    from .config import SyncConfig
    from .models import SyncPayload

logger = get_logger(__name__)

DEFAULT_SHUTDOWN_GRACE_S = 5.0
# Upper bound for cancelling workers and closing the HTTP client.
_TEARDOWN_TIMEOUT_S = 5.0

type OutcomeCallback = cabc.Callable[[DeliveryReport], None]


@dataclasses.dataclass(frozen=True, slots=True)
class DeliveryJob:
    """One pending delivery attempt for a serialized payload."""

    event_id: str
    user_id: str | None
    body: bytes
    attempt: int = 1
    retries_remaining: int = 0

    def next_attempt(self) -> DeliveryJob:
        """Return the job for the following retry, reusing the same body."""
        return dataclasses.replace(
            self,
            attempt=self.attempt + 1,
            retries_remaining=self.retries_remaining - 1,
        )

    def report(
        self,
        outcome: DeliveryOutcome,
        *,
        attempts: int,
        error: str | None = None,
    ) -> DeliveryReport:
        """Build the final report for this job."""
        return DeliveryReport(
            event_id=self.event_id,
            user_id=self.user_id,
            outcome=outcome,
            attempts=attempts,
            error=error,
        )


class DispatchEngine:
    """Deliver payloads to the webhook endpoint on a bounded worker pool.

    Parameters
    ----------
    config
        Frozen dispatch configuration shared by every worker.
    http_client
        Optional ``httpx.AsyncClient`` for testing; otherwise the engine
        creates and owns one.
    close_client
        Close the injected ``http_client`` during teardown. Set this when the
        client was built for this engine alone.
    event_logger
        Structured event logger; a default instance is created if omitted.
    on_outcome
        Optional callback receiving every final :class:`DeliveryReport`. It
        runs on the engine thread (or the submitting thread for outcomes
        decided in :meth:`submit`) and must not block.
    shutdown_grace_s
        Default number of seconds :meth:`shutdown` waits for outstanding
        deliveries before abandoning them.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: SyncConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        close_client: bool = False,
        event_logger: DispatchEventLogger | None = None,
        on_outcome: OutcomeCallback | None = None,
        shutdown_grace_s: float = DEFAULT_SHUTDOWN_GRACE_S,
        thread_name: str = "hooksync-dispatch",
    ) -> None:
        """Start the event loop thread and the worker tasks."""
        self._config = config
        self._event_logger = event_logger or DispatchEventLogger()
        self._on_outcome = on_outcome
        self._shutdown_grace_s = shutdown_grace_s
        self._condition = threading.Condition()
        self._pending = 0
        self._abandoned = 0
        self._accepting = True
        self._closed = False
        self._timers: dict[asyncio.TimerHandle, DeliveryJob] = {}
        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._client = WebhookClient(
            config, http_client=http_client, close_client=close_client
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name=thread_name, daemon=True
        )
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self._start_workers(), self._loop).result()

    def __enter__(self) -> typ.Self:
        """Return the running engine."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: types.TracebackType | None,
    ) -> None:
        """Shut the engine down."""
        self.shutdown()

    @property
    def config(self) -> SyncConfig:
        """Return the configuration the engine was built with."""
        return self._config

    @property
    def pending(self) -> int:
        """Return the number of accepted payloads without a final outcome."""
        with self._condition:
            return self._pending

    @property
    def is_accepting(self) -> bool:
        """Return True until :meth:`shutdown` has been called."""
        with self._condition:
            return self._accepting

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, payload: SyncPayload) -> bool:
        """Queue a payload for delivery without waiting for the outcome.

        Returns
        -------
        bool
            True when the payload was queued. False when delivery is
            disabled, the payload cannot be serialized, or the engine has
            been shut down; each case is logged and reported, never raised.

        """
        if not self._config.is_enabled:
            self._report(
                _report_for(payload, DeliveryOutcome.CONFIGURATION_DISABLED)
            )
            return False

        try:
            body = encode_payload(payload)
        except (msgspec.EncodeError, TypeError) as exc:
            self._report(
                _report_for(
                    payload, DeliveryOutcome.SERIALIZATION_FAILED, error=str(exc)
                )
            )
            return False

        job = DeliveryJob(
            event_id=payload.event_id,
            user_id=payload.user_id,
            body=body,
            retries_remaining=self._config.retry.retry_budget,
        )
        # Enqueue under the lock so shutdown cannot interleave between the
        # accepting check and the hand-off to the loop.
        with self._condition:
            accepted = self._accepting
            if accepted:
                self._pending += 1
                self._loop.call_soon_threadsafe(self._enqueue, job)
        if not accepted:
            self._report(job.report(DeliveryOutcome.REFUSED, attempts=0))
        return accepted

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every accepted payload has a final outcome.

        Returns
        -------
        bool
            False if ``timeout`` elapsed first.

        """
        with self._condition:
            return self._condition.wait_for(lambda: self._pending == 0, timeout)

    def shutdown(self, grace_s: float | None = None) -> None:
        """Stop accepting payloads and release the worker pool and transport.

        Outstanding deliveries, including scheduled retries, get up to
        ``grace_s`` seconds to finish. Whatever remains is cancelled and
        reported as abandoned. Later calls are logged and ignored.

        Raises
        ------
        RuntimeError
            If called from the engine's own thread, where waiting for the
            workers would deadlock.

        """
        if threading.current_thread() is self._thread:
            msg = "DispatchEngine.shutdown() cannot run on the engine thread"
            raise RuntimeError(msg)

        with self._condition:
            if self._closed:
                log_warning(logger, "Dispatch engine already shut down")
                return
            self._closed = True
            self._accepting = False

        grace = self._shutdown_grace_s if grace_s is None else grace_s
        drained = self.wait_idle(grace)

        future = asyncio.run_coroutine_threadsafe(self._teardown(), self._loop)
        try:
            future.result(timeout=_TEARDOWN_TIMEOUT_S)
        except TimeoutError:
            log_error(
                logger,
                "Dispatch engine teardown exceeded %.1f seconds",
                _TEARDOWN_TIMEOUT_S,
            )
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=_TEARDOWN_TIMEOUT_S)
            if not self._thread.is_alive():
                self._loop.close()

        with self._condition:
            abandoned = self._abandoned
        self._event_logger.log_shutdown(drained=drained, abandoned=abandoned)

    # ------------------------------------------------------------------
    # Event loop thread
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    async def _start_workers(self) -> None:
        self._workers = [
            asyncio.create_task(self._worker(), name=f"hooksync-worker-{index}")
            for index in range(self._config.worker_count)
        ]

    def _enqueue(self, job: DeliveryJob) -> None:
        self._queue.put_nowait(job)

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._attempt(job)
            except asyncio.CancelledError:
                self._complete(
                    job.report(DeliveryOutcome.ABANDONED, attempts=job.attempt)
                )
                raise
            finally:
                self._queue.task_done()

    async def _attempt(self, job: DeliveryJob) -> None:
        try:
            await self._client.post(job.body)
        except WebhookDeliveryError as exc:
            self._handle_failure(job, exc)
        except Exception as exc:  # noqa: BLE001 - every send fault is a failure
            self._handle_failure(job, WebhookDeliveryError.unexpected(exc))
        else:
            self._complete(
                job.report(DeliveryOutcome.DELIVERED, attempts=job.attempt)
            )

    def _handle_failure(self, job: DeliveryJob, error: WebhookDeliveryError) -> None:
        if job.retries_remaining <= 0:
            self._complete(
                job.report(
                    DeliveryOutcome.RETRY_EXHAUSTED,
                    attempts=job.attempt,
                    error=str(error),
                )
            )
            return

        delay_s = self._config.retry.delay_s
        retry = job.next_attempt()
        self._event_logger.log_retry_scheduled(
            event_id=job.event_id,
            attempt=job.attempt,
            retries_remaining=retry.retries_remaining,
            delay_s=delay_s,
            error=error,
        )
        self._schedule_retry(retry, delay_s)

    def _schedule_retry(self, job: DeliveryJob, delay_s: float) -> None:
        def _fire() -> None:
            self._timers.pop(handle, None)
            self._enqueue(job)

        handle = self._loop.call_later(delay_s, _fire)
        self._timers[handle] = job

    async def _teardown(self) -> None:
        for handle, job in list(self._timers.items()):
            handle.cancel()
            self._complete(
                job.report(DeliveryOutcome.ABANDONED, attempts=job.attempt - 1)
            )
        self._timers.clear()

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)

        while not self._queue.empty():
            job = self._queue.get_nowait()
            self._queue.task_done()
            self._complete(
                job.report(DeliveryOutcome.ABANDONED, attempts=job.attempt - 1)
            )

        await self._client.aclose()

    # ------------------------------------------------------------------
    # Outcome reporting
    # ------------------------------------------------------------------

    def _complete(self, report: DeliveryReport) -> None:
        """Report the final outcome of an accepted payload."""
        self._report(report)
        with self._condition:
            self._pending -= 1
            if report.outcome is DeliveryOutcome.ABANDONED:
                self._abandoned += 1
            if self._pending == 0:
                self._condition.notify_all()

    def _report(self, report: DeliveryReport) -> None:
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


def _report_for(
    payload: SyncPayload,
    outcome: DeliveryOutcome,
    *,
    error: str | None = None,
) -> DeliveryReport:
    return DeliveryReport(
        event_id=payload.event_id,
        user_id=payload.user_id,
        outcome=outcome,
        attempts=0,
        error=error,
    )


__all__ = [
    "DEFAULT_SHUTDOWN_GRACE_S",
    "DeliveryJob",
    "DispatchEngine",
    "OutcomeCallback",
]
