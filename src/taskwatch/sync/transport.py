"""Injectable socket and timer capabilities for progress sessions.

The production transport runs one ``websockets`` client per connection as an
asyncio task; the running event loop doubles as the scheduler because
``loop.call_later`` already satisfies ``Scheduler``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosedError, InvalidHandshake, InvalidURI

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Cancel the pending callback; no-op once it has run."""
        raise NotImplementedError


class Scheduler(Protocol):
    """Timer capability (``asyncio.AbstractEventLoop`` satisfies it)."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        raise NotImplementedError


class TransportListener(Protocol):
    """Receiver of raw transport lifecycle events."""

    def transport_opened(self) -> None:
        raise NotImplementedError

    def frame_received(self, data: str | bytes) -> None:
        raise NotImplementedError

    def transport_closed(self, code: int, was_clean: bool) -> None:
        raise NotImplementedError


class TransportConnection(Protocol):
    def close(self, code: int = NORMAL_CLOSURE) -> None:
        """Request closure; safe to call repeatedly and before open."""
        raise NotImplementedError


class Transport(Protocol):
    """Opens real-time connections to a progress endpoint."""

    def connect(self, endpoint: str, listener: TransportListener) -> TransportConnection:
        raise NotImplementedError


class WebsocketTransport:
    """``Transport`` backed by the ``websockets`` asyncio client."""

    def __init__(
        self,
        *,
        open_timeout_seconds: float = 10.0,
        connector: Callable[..., Any] = websocket_connect,
    ) -> None:
        self._open_timeout = open_timeout_seconds
        self._connector = connector

    def connect(self, endpoint: str, listener: TransportListener) -> WebsocketConnection:
        """Start connecting in the background; must run inside an event loop."""

        return WebsocketConnection(
            endpoint,
            listener,
            connector=self._connector,
            open_timeout_seconds=self._open_timeout,
        )


class WebsocketConnection:
    """One websocket connection driven by its own asyncio task."""

    def __init__(
        self,
        endpoint: str,
        listener: TransportListener,
        *,
        connector: Callable[..., Any],
        open_timeout_seconds: float,
    ) -> None:
        self.endpoint = endpoint
        self._listener = listener
        self._connector = connector
        self._open_timeout = open_timeout_seconds
        self._opened = False
        self._reported = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self, code: int = NORMAL_CLOSURE) -> None:
        if self._reported:
            return
        if not self._opened:
            self._report(code, True)
        self._task.cancel()

    async def _run(self) -> None:
        try:
            async with self._connector(
                self.endpoint,
                open_timeout=self._open_timeout,
            ) as websocket:
                self._opened = True
                self._listener.transport_opened()
                async for frame in websocket:
                    self._listener.frame_received(frame)
                self._report(websocket.close_code or NORMAL_CLOSURE, True)
        except asyncio.CancelledError:
            self._report(NORMAL_CLOSURE, True)
            raise
        except ConnectionClosedError as exc:
            code = exc.rcvd.code if exc.rcvd is not None else ABNORMAL_CLOSURE
            logger.warning("Progress channel %s closed abnormally: %s", self.endpoint, exc)
            self._report(code, False)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as exc:
            logger.warning("Progress channel %s connect failed: %s", self.endpoint, exc)
            self._report(ABNORMAL_CLOSURE, False)
        except Exception:
            logger.exception("Progress channel %s stopped on an unexpected error", self.endpoint)
            self._report(ABNORMAL_CLOSURE, False)

    def _report(self, code: int, was_clean: bool) -> None:
        if self._reported:
            return
        self._reported = True
        self._listener.transport_closed(code, was_clean)
