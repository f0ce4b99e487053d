"""One real-time progress connection and its message pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable

from taskwatch.errors import NormalizationError, ParseError
from taskwatch.sync.models import SnapshotDelta, TaskStatus
from taskwatch.sync.normalizer import MessageNormalizer, parse_frame
from taskwatch.sync.transport import (
    NORMAL_CLOSURE,
    Scheduler,
    TimerHandle,
    Transport,
    TransportConnection,
)

logger = logging.getLogger(__name__)

DEFAULT_TERMINAL_GRACE_SECONDS = 1.0


class ConnectionSession:
    """Parses and normalizes frames from one transport connection.

    The session never retries. It reports ``on_close`` exactly once, and
    closes itself after a terminal delta so the owner sees a clean closure.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        transport: Transport,
        scheduler: Scheduler,
        normalizer: MessageNormalizer,
        on_open: Callable[[], None],
        on_delta: Callable[[SnapshotDelta], None],
        on_close: Callable[[int, bool], None],
        terminal_grace_seconds: float = DEFAULT_TERMINAL_GRACE_SECONDS,
    ) -> None:
        self._transport = transport
        self._scheduler = scheduler
        self._normalizer = normalizer
        self._on_open = on_open
        self._on_delta = on_delta
        self._on_close = on_close
        self._terminal_grace_seconds = terminal_grace_seconds
        self._connection: TransportConnection | None = None
        self._grace_timer: TimerHandle | None = None
        self._is_open = False
        self._close_requested = False
        self._close_reported = False
        self.endpoint: str | None = None

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_closed(self) -> bool:
        return self._close_requested or self._close_reported

    def open(self, endpoint: str) -> ConnectionSession:
        """Start the transport connection; a second call is a no-op."""

        if self._connection is not None or self.is_closed:
            return self
        self.endpoint = endpoint
        self._connection = self._transport.connect(endpoint, self)
        return self

    def close(self) -> None:
        if self._close_requested:
            return
        self._close_requested = True
        self._cancel_grace_timer()
        if self._connection is not None:
            self._connection.close(NORMAL_CLOSURE)

    def transport_opened(self) -> None:
        if self._close_requested:
            return
        self._is_open = True
        logger.info("Progress channel open: %s", self.endpoint)
        self._on_open()

    def frame_received(self, data: str | bytes) -> None:
        if self._close_reported:
            return
        logger.debug("Progress frame from %s: %r", self.endpoint, data)
        try:
            delta = self._normalizer.normalize(parse_frame(data))
        except ParseError as exc:
            logger.warning("Ignoring progress frame (%s); raw frame was %r", exc, exc.frame)
            return
        except NormalizationError as exc:
            logger.warning("Ignoring progress frame: %s", exc)
            return

        self._on_delta(delta)
        if delta.status is TaskStatus.COMPLETED:
            self._schedule_self_close(self._terminal_grace_seconds)
        elif delta.status is TaskStatus.FAILED:
            self.close()

    def transport_closed(self, code: int, was_clean: bool) -> None:
        if self._close_reported:
            return
        self._close_reported = True
        self._is_open = False
        self._cancel_grace_timer()
        logger.debug(
            "Progress channel closed: %s (code=%s clean=%s)",
            self.endpoint,
            code,
            was_clean,
        )
        self._on_close(code, was_clean)

    def _schedule_self_close(self, delay: float) -> None:
        if self._grace_timer is not None or self._close_requested:
            return
        self._grace_timer = self._scheduler.call_later(delay, self.close)

    def _cancel_grace_timer(self) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None
