"""Canonical job state and connection diagnostics."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from taskwatch.errors import ExhaustedRetries, RemoteFailure, SyncError


class TaskStatus(str, Enum):
    """Canonical job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED}


class SyncState(str, Enum):
    """Controller connection lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    RECONNECTING = "reconnecting"
    GIVEN_UP = "given_up"
    TERMINAL = "terminal"
    DISPOSED = "disposed"


@dataclass(frozen=True, slots=True)
class TaskSnapshot:
    """Authoritative job state as known to the client."""

    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    result_url: str | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True, slots=True)
class SnapshotDelta:
    """Normalized change carried by one progress message.

    ``None`` fields were absent from the message and must not overwrite the
    snapshot.
    """

    status: TaskStatus
    progress: object | None = None
    result_url: str | None = None
    error_message: str | None = None


@dataclass(slots=True)
class ConnectionDiagnostics:
    """Live connection bookkeeping for the current job."""

    is_connected: bool = False
    attempt_count: int = 0
    error: SyncError | None = None


@dataclass(frozen=True, slots=True)
class SyncView:
    """Read-only view handed to consumers after every change."""

    job_id: str
    state: SyncState
    status: TaskStatus
    progress: int
    result_url: str | None
    error_message: str | None
    is_connected: bool
    attempt_count: int
    connection_error: str | None = None
    fetch_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def surfaced_error(self) -> SyncError | None:
        """Return the user-visible error condition, if any."""

        if self.status is TaskStatus.FAILED:
            return RemoteFailure(message=self.error_message or RemoteFailure().message)
        if self.state is SyncState.GIVEN_UP:
            return ExhaustedRetries(attempts=self.attempt_count)
        return None
