"""Reconnect decisions for the progress channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from taskwatch.config import RealtimeSettings


class ReconnectPolicy(Protocol):
    """Decides whether and when to open a new session after a connection loss."""

    max_attempts: int

    def should_retry(self, attempt_count: int) -> bool:
        """Return True while ``attempt_count`` is below the configured cap."""
        raise NotImplementedError

    def next_delay(self, attempt_count: int) -> float:
        """Return seconds to wait before the next connection attempt."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class FixedDelayPolicy:
    """Constant delay between attempts."""

    max_attempts: int
    delay_seconds: float

    def should_retry(self, attempt_count: int) -> bool:
        return attempt_count < self.max_attempts

    def next_delay(self, attempt_count: int) -> float:  # noqa: ARG002
        return self.delay_seconds


@dataclass(frozen=True, slots=True)
class ExponentialBackoffPolicy:
    """Delay doubles per attempt, capped at ``max_delay_seconds``."""

    max_attempts: int
    base_delay_seconds: float
    max_delay_seconds: float

    def should_retry(self, attempt_count: int) -> bool:
        return attempt_count < self.max_attempts

    def next_delay(self, attempt_count: int) -> float:
        return min(
            self.max_delay_seconds,
            self.base_delay_seconds * (2 ** max(attempt_count - 1, 0)),
        )


def build_reconnect_policy(settings: RealtimeSettings) -> ReconnectPolicy:
    """Select the policy variant named by ``settings.reconnect_backoff``."""

    if settings.reconnect_backoff == "exponential":
        return ExponentialBackoffPolicy(
            max_attempts=settings.reconnect_attempts,
            base_delay_seconds=settings.reconnect_delay_seconds,
            max_delay_seconds=settings.reconnect_max_delay_seconds,
        )
    if settings.reconnect_backoff == "fixed":
        return FixedDelayPolicy(
            max_attempts=settings.reconnect_attempts,
            delay_seconds=settings.reconnect_delay_seconds,
        )
    raise ValueError(f"Unsupported reconnect backoff: {settings.reconnect_backoff!r}")
