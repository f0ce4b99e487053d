"""Shared test fixtures: a fake clock and an in-memory progress transport."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from taskwatch.sync.transport import ABNORMAL_CLOSURE, NORMAL_CLOSURE, TransportListener


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], Any]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Scheduler whose time only moves when a test calls ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [timer for timer in self._timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted(
                (timer for timer in self.pending() if timer.due <= target),
                key=lambda timer: timer.due,
            )
            if not due:
                break
            timer = due[0]
            self.now = timer.due
            timer.fired = True
            timer.callback()
        self.now = target


class FakeConnection:
    def __init__(self, endpoint: str, listener: TransportListener) -> None:
        self.endpoint = endpoint
        self.listener = listener
        self.state = "connecting"
        self.close_calls: list[int] = []

    def open(self) -> None:
        self.state = "open"
        self.listener.transport_opened()

    def send(self, message: dict[str, Any] | str | bytes) -> None:
        data = message if isinstance(message, (str, bytes)) else json.dumps(message)
        self.listener.frame_received(data)

    def drop(self, code: int = ABNORMAL_CLOSURE) -> None:
        self.state = "closed"
        self.listener.transport_closed(code, False)

    def close(self, code: int = NORMAL_CLOSURE) -> None:
        self.close_calls.append(code)
        if self.state == "closed":
            return
        self.state = "closed"
        self.listener.transport_closed(code, True)


class FakeTransport:
    """Records every connection; tests drive them by hand."""

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.fail_next_connect = False

    def connect(self, endpoint: str, listener: TransportListener) -> FakeConnection:
        if self.fail_next_connect:
            self.fail_next_connect = False
            raise OSError("connection refused")
        connection = FakeConnection(endpoint, listener)
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    def live_connections(self) -> list[FakeConnection]:
        return [conn for conn in self.connections if conn.state != "closed"]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()
