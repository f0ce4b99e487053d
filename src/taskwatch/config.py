"""Runtime configuration for the job API client and progress sync."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

RECONNECT_BACKOFF_MODES = ("fixed", "exponential")


@dataclass(slots=True)
class ApiSettings:
    """HTTP job API settings."""

    base_url: str = "http://localhost:8001"
    submit_timeout_seconds: float = 10.0
    status_timeout_seconds: float = 8.0


@dataclass(slots=True)
class RealtimeSettings:
    """WebSocket progress channel settings."""

    base_url: str = "ws://localhost:8001"
    reconnect_attempts: int = 5
    reconnect_delay_seconds: float = 3.0
    reconnect_backoff: str = "fixed"
    reconnect_max_delay_seconds: float = 30.0
    open_timeout_seconds: float = 10.0
    terminal_grace_seconds: float = 1.0


@dataclass(slots=True)
class PollingSettings:
    """Fallback status polling settings."""

    interval_seconds: float = 2.0
    max_attempts: int = 30


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    api: ApiSettings = field(default_factory=ApiSettings)
    realtime: RealtimeSettings = field(default_factory=RealtimeSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    debug: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for a local backend."""

        return cls(
            api=ApiSettings(
                base_url=os.getenv("TASKWATCH_API_URL", "http://localhost:8001").strip(),
                submit_timeout_seconds=float(
                    os.getenv("TASKWATCH_SUBMIT_TIMEOUT_SECONDS", "10.0"),
                ),
                status_timeout_seconds=float(
                    os.getenv("TASKWATCH_STATUS_TIMEOUT_SECONDS", "8.0"),
                ),
            ),
            realtime=RealtimeSettings(
                base_url=os.getenv("TASKWATCH_WS_URL", "ws://localhost:8001").strip(),
                reconnect_attempts=int(os.getenv("TASKWATCH_WS_RECONNECT_ATTEMPTS", "5")),
                reconnect_delay_seconds=float(
                    os.getenv("TASKWATCH_WS_RECONNECT_DELAY_SECONDS", "3.0"),
                ),
                reconnect_backoff=os.getenv("TASKWATCH_WS_RECONNECT_BACKOFF", "fixed")
                .strip()
                .lower(),
                reconnect_max_delay_seconds=float(
                    os.getenv("TASKWATCH_WS_RECONNECT_MAX_DELAY_SECONDS", "30.0"),
                ),
                open_timeout_seconds=float(
                    os.getenv("TASKWATCH_WS_OPEN_TIMEOUT_SECONDS", "10.0"),
                ),
                terminal_grace_seconds=float(
                    os.getenv("TASKWATCH_TERMINAL_GRACE_SECONDS", "1.0"),
                ),
            ),
            polling=PollingSettings(
                interval_seconds=float(os.getenv("TASKWATCH_POLLING_INTERVAL_SECONDS", "2.0")),
                max_attempts=int(os.getenv("TASKWATCH_MAX_POLLING_ATTEMPTS", "30")),
            ),
            debug=_env_bool("TASKWATCH_DEBUG", default=False),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        _validate_url(self.api.base_url, schemes={"http", "https"}, name="TASKWATCH_API_URL")
        _validate_url(self.realtime.base_url, schemes={"ws", "wss"}, name="TASKWATCH_WS_URL")
        if self.api.submit_timeout_seconds <= 0:
            raise ValueError("TASKWATCH_SUBMIT_TIMEOUT_SECONDS must be > 0.")
        if self.api.status_timeout_seconds <= 0:
            raise ValueError("TASKWATCH_STATUS_TIMEOUT_SECONDS must be > 0.")
        if self.realtime.reconnect_attempts < 0:
            raise ValueError("TASKWATCH_WS_RECONNECT_ATTEMPTS must be >= 0.")
        if self.realtime.reconnect_delay_seconds < 0:
            raise ValueError("TASKWATCH_WS_RECONNECT_DELAY_SECONDS must be >= 0.")
        if self.realtime.reconnect_backoff not in RECONNECT_BACKOFF_MODES:
            raise ValueError(
                "Invalid TASKWATCH_WS_RECONNECT_BACKOFF: "
                f"{self.realtime.reconnect_backoff!r}. Expected one of {RECONNECT_BACKOFF_MODES}.",
            )
        if self.realtime.reconnect_max_delay_seconds < self.realtime.reconnect_delay_seconds:
            raise ValueError(
                "TASKWATCH_WS_RECONNECT_MAX_DELAY_SECONDS must be >= "
                "TASKWATCH_WS_RECONNECT_DELAY_SECONDS.",
            )
        if self.realtime.open_timeout_seconds <= 0:
            raise ValueError("TASKWATCH_WS_OPEN_TIMEOUT_SECONDS must be > 0.")
        if self.realtime.terminal_grace_seconds < 0:
            raise ValueError("TASKWATCH_TERMINAL_GRACE_SECONDS must be >= 0.")
        if self.polling.interval_seconds <= 0:
            raise ValueError("TASKWATCH_POLLING_INTERVAL_SECONDS must be > 0.")
        if self.polling.max_attempts < 0:
            raise ValueError("TASKWATCH_MAX_POLLING_ATTEMPTS must be >= 0.")


def _validate_url(value: str, *, schemes: set[str], name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in schemes or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. "
            f"Expected an absolute URL with one of schemes {sorted(schemes)}.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
