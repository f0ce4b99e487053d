"""Error taxonomy shared by the sync client and the job API client."""

from __future__ import annotations

from dataclasses import dataclass

EXHAUSTED_RETRIES_MESSAGE = (
    "Unable to establish WebSocket connection. Using manual status checks instead."
)
DEFAULT_FAILURE_MESSAGE = "Task failed"


@dataclass(slots=True)
class SyncError(Exception):
    """Base progress-sync error."""

    message: str
    code: str = "sync_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TransportError(SyncError):
    """Abnormal close or connect failure; recoverable through reconnect."""

    code: str = "transport"
    close_code: int | None = None


@dataclass(slots=True)
class ParseError(SyncError):
    """Inbound frame is not a JSON object."""

    code: str = "parse"
    frame: str = ""


@dataclass(slots=True)
class NormalizationError(SyncError):
    """Inbound message carries a missing or unknown discriminator."""

    code: str = "unknown_state"
    discriminator: str | None = None


@dataclass(slots=True)
class ExhaustedRetries(SyncError):
    """Reconnect attempts are used up; callers should fall back to status checks."""

    message: str = EXHAUSTED_RETRIES_MESSAGE
    code: str = "exhausted_retries"
    attempts: int = 0


@dataclass(slots=True)
class RemoteFailure(SyncError):
    """The job itself reported failure."""

    message: str = DEFAULT_FAILURE_MESSAGE
    code: str = "remote_failure"


@dataclass(slots=True)
class ApiError(SyncError):
    """Job API request failed; ``message`` is safe to show to users."""

    code: str = "api"
    status_code: int | None = None


@dataclass(slots=True)
class JobSubmissionError(ApiError):
    """Job submission failed."""

    code: str = "submit"


@dataclass(slots=True)
class StatusFetchError(ApiError):
    """One-shot status fetch failed."""

    code: str = "status"
