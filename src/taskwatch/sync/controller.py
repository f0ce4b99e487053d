"""Synchronization controller: one job, one live session at a time."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from functools import partial
from typing import Any

from taskwatch.errors import (
    DEFAULT_FAILURE_MESSAGE,
    ApiError,
    ExhaustedRetries,
    NormalizationError,
    TransportError,
)
from taskwatch.sync.models import (
    ConnectionDiagnostics,
    SnapshotDelta,
    SyncState,
    SyncView,
    TaskSnapshot,
    TaskStatus,
)
from taskwatch.sync.normalizer import MessageNormalizer
from taskwatch.sync.policy import ReconnectPolicy
from taskwatch.sync.session import DEFAULT_TERMINAL_GRACE_SECONDS, ConnectionSession
from taskwatch.sync.transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    Scheduler,
    TimerHandle,
    Transport,
)

logger = logging.getLogger(__name__)

NO_STATUS_FETCHER_MESSAGE = "Manual status checks are not available for this job."
UNEXPECTED_FETCH_ERROR_MESSAGE = "Unable to check story progress. Please try refreshing."

StatusFetcher = Callable[[str], Awaitable[Mapping[str, Any]]]
ChangeListener = Callable[[SyncView], None]


class SyncController:
    """Keeps a ``TaskSnapshot`` in sync with a remote job.

    Opens a session on construction, reconnects on abnormal closes as the
    reconnect policy allows, and stops at a terminal job status. Every
    session callback is tagged with the generation of the session that
    produced it; callbacks from superseded sessions or after ``dispose()``
    are dropped.
    """

    def __init__(  # noqa: PLR0913
        self,
        job_id: str,
        *,
        endpoint: str,
        transport: Transport,
        scheduler: Scheduler,
        normalizer: MessageNormalizer,
        policy: ReconnectPolicy,
        status_fetcher: StatusFetcher | None = None,
        on_change: ChangeListener | None = None,
        terminal_grace_seconds: float = DEFAULT_TERMINAL_GRACE_SECONDS,
    ) -> None:
        self.job_id = job_id
        self.endpoint = endpoint
        self._transport = transport
        self._scheduler = scheduler
        self._normalizer = normalizer
        self._policy = policy
        self._status_fetcher = status_fetcher
        self._on_change = on_change
        self._terminal_grace_seconds = terminal_grace_seconds

        self._snapshot = TaskSnapshot()
        self._diagnostics = ConnectionDiagnostics()
        self._state = SyncState.IDLE
        self._generation = 0
        self._session: ConnectionSession | None = None
        self._reconnect_timer: TimerHandle | None = None
        self._fetch_error: str | None = None
        self._disposed = False

        self._connect()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def snapshot(self) -> TaskSnapshot:
        return self._snapshot

    @property
    def diagnostics(self) -> ConnectionDiagnostics:
        return replace(self._diagnostics)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def view(self) -> SyncView:
        error = self._diagnostics.error
        return SyncView(
            job_id=self.job_id,
            state=self._state,
            status=self._snapshot.status,
            progress=self._snapshot.progress,
            result_url=self._snapshot.result_url,
            error_message=self._snapshot.error_message,
            is_connected=self._diagnostics.is_connected,
            attempt_count=self._diagnostics.attempt_count,
            connection_error=error.message if error is not None else None,
            fetch_error=self._fetch_error,
        )

    async def check_now(self) -> SyncView:
        """Fetch job status once and apply it like a progress message.

        Safe alongside an active session. Never raises: fetch failures end up
        in ``SyncView.fetch_error``; results arriving after ``dispose()`` are
        discarded.
        """

        if self._disposed:
            return self.view
        if self._status_fetcher is None:
            logger.warning("Status check for job %s skipped: no status fetcher", self.job_id)
            self._record_fetch_error(NO_STATUS_FETCHER_MESSAGE)
            return self.view

        try:
            payload = await self._status_fetcher(self.job_id)
        except ApiError as exc:
            if not self._disposed:
                logger.warning("Status check for job %s failed: %s", self.job_id, exc)
                self._record_fetch_error(exc.message)
            return self.view
        except Exception:
            if not self._disposed:
                logger.exception("Unexpected error checking status of job %s", self.job_id)
                self._record_fetch_error(UNEXPECTED_FETCH_ERROR_MESSAGE)
            return self.view

        if self._disposed:
            logger.debug("Discarding status for job %s: controller disposed", self.job_id)
            return self.view
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring status for job %s: not a JSON object", self.job_id)
            self._record_fetch_error(UNEXPECTED_FETCH_ERROR_MESSAGE)
            return self.view

        try:
            delta = self._normalizer.normalize(payload)
        except NormalizationError as exc:
            logger.warning("Ignoring status for job %s: %s", self.job_id, exc)
            self._record_fetch_error(exc.message)
            return self.view

        self._fetch_error = None
        self._apply_delta(delta, from_session=False)
        return self.view

    def dispose(self) -> None:
        """Stop syncing; no callback mutates the controller afterwards."""

        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        self._state = SyncState.DISPOSED
        self._cancel_reconnect()
        self._diagnostics.is_connected = False
        session, self._session = self._session, None
        if session is not None:
            session.close()
        logger.debug("Controller for job %s disposed", self.job_id)

    def _connect(self) -> None:
        self._generation += 1
        generation = self._generation
        previous, self._session = self._session, None
        if previous is not None:
            previous.close()

        self._state = SyncState.CONNECTING
        logger.info(
            "Connecting to progress channel for job %s (attempt %d/%d)",
            self.job_id,
            self._diagnostics.attempt_count + 1,
            self._policy.max_attempts,
        )
        session = ConnectionSession(
            transport=self._transport,
            scheduler=self._scheduler,
            normalizer=self._normalizer,
            on_open=partial(self._handle_open, generation),
            on_delta=partial(self._handle_delta, generation),
            on_close=partial(self._handle_close, generation),
            terminal_grace_seconds=self._terminal_grace_seconds,
        )
        self._session = session
        self._notify()
        try:
            session.open(self.endpoint)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("Could not open progress channel for job %s: %s", self.job_id, exc)
            self._handle_close(generation, ABNORMAL_CLOSURE, False)

    def _is_current(self, generation: int) -> bool:
        return not self._disposed and generation == self._generation

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        if self._state is SyncState.TERMINAL:
            self._close_session()
            return
        self._state = SyncState.LIVE
        self._diagnostics.is_connected = True
        self._diagnostics.attempt_count = 0
        self._diagnostics.error = None
        self._notify()

    def _handle_delta(self, generation: int, delta: SnapshotDelta) -> None:
        if not self._is_current(generation):
            logger.debug("Dropping delta from superseded session for job %s", self.job_id)
            return
        self._apply_delta(delta, from_session=True)

    def _handle_close(self, generation: int, code: int, was_clean: bool) -> None:
        if not self._is_current(generation):
            return
        self._session = None
        self._diagnostics.is_connected = False

        if self._state is SyncState.TERMINAL:
            self._notify()
            return
        if was_clean or code == NORMAL_CLOSURE:
            logger.info("Progress channel for job %s closed cleanly (code=%s)", self.job_id, code)
            self._state = SyncState.IDLE
            self._notify()
            return

        self._diagnostics.attempt_count = min(
            self._diagnostics.attempt_count + 1,
            self._policy.max_attempts,
        )
        attempts = self._diagnostics.attempt_count
        self._diagnostics.error = TransportError(
            message=f"Progress channel closed abnormally (code={code})",
            close_code=code,
        )
        if not self._policy.should_retry(attempts):
            logger.info(
                "Giving up on progress channel for job %s after %d attempts",
                self.job_id,
                attempts,
            )
            self._state = SyncState.GIVEN_UP
            self._diagnostics.error = ExhaustedRetries(attempts=attempts)
            self._notify()
            return

        delay = self._policy.next_delay(attempts)
        logger.debug(
            "Reconnecting job %s in %.2fs (attempt %d/%d)",
            self.job_id,
            delay,
            attempts,
            self._policy.max_attempts,
        )
        self._state = SyncState.RECONNECTING
        self._cancel_reconnect()
        self._reconnect_timer = self._scheduler.call_later(
            delay,
            partial(self._reconnect_due, generation),
        )
        self._notify()

    def _reconnect_due(self, generation: int) -> None:
        self._reconnect_timer = None
        if not self._is_current(generation) or self._state is not SyncState.RECONNECTING:
            return
        self._connect()

    def _apply_delta(self, delta: SnapshotDelta, *, from_session: bool) -> None:
        if self._snapshot.is_terminal:
            logger.debug(
                "Ignoring %s update for job %s: already %s",
                delta.status.value,
                self.job_id,
                self._snapshot.status.value,
            )
            return

        self._snapshot = _merge(self._snapshot, delta)
        if self._snapshot.is_terminal:
            logger.info("Job %s finished with status %s", self.job_id, self._snapshot.status.value)
            self._state = SyncState.TERMINAL
            self._cancel_reconnect()
            if not from_session:
                self._close_session()
        self._notify()

    def _close_session(self) -> None:
        session = self._session
        if session is not None:
            session.close()

    def _record_fetch_error(self, message: str) -> None:
        self._fetch_error = message
        self._notify()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _notify(self) -> None:
        if self._on_change is not None and not self._disposed:
            self._on_change(self.view)


def _merge(snapshot: TaskSnapshot, delta: SnapshotDelta) -> TaskSnapshot:
    if delta.status is TaskStatus.COMPLETED:
        return replace(
            snapshot,
            status=delta.status,
            progress=100,
            result_url=delta.result_url or snapshot.result_url,
        )
    if delta.status is TaskStatus.FAILED:
        return replace(
            snapshot,
            status=delta.status,
            error_message=delta.error_message or DEFAULT_FAILURE_MESSAGE,
        )
    progress = _coerce_progress(delta.progress)
    return replace(
        snapshot,
        status=delta.status,
        progress=snapshot.progress if progress is None else progress,
    )


def _coerce_progress(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric progress value: %r", value)
        return None
    if number != number:  # NaN
        return None
    return max(0, min(100, round(number)))
