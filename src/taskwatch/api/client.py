"""Async HTTP client for job submission and one-shot status checks."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from taskwatch.api.models import BookRequest
from taskwatch.config import ApiSettings
from taskwatch.errors import JobSubmissionError, StatusFetchError

logger = logging.getLogger(__name__)

DEFAULT_SUBMIT_TIMEOUT_SECONDS = 10.0
DEFAULT_STATUS_TIMEOUT_SECONDS = 8.0
SUBMIT_PATH = "/generate-book-async-task"
HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_UNPROCESSABLE = 422
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
SERVICE_UNAVAILABLE_CODES = (500, 502, 503)


def progress_endpoint(ws_base_url: str, job_id: str) -> str:
    """Real-time progress endpoint for ``job_id``."""

    return f"{ws_base_url.rstrip('/')}/ws/progress/{job_id}"


def status_path(job_id: str) -> str:
    return f"/tasks/{job_id}/status"


class JobApiClient:
    """HTTP wrapper with per-operation timeouts and user-facing error mapping."""

    def __init__(
        self,
        *,
        base_url: str,
        submit_timeout_seconds: float = DEFAULT_SUBMIT_TIMEOUT_SECONDS,
        status_timeout_seconds: float = DEFAULT_STATUS_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._submit_timeout = httpx.Timeout(submit_timeout_seconds)
        self._status_timeout = httpx.Timeout(status_timeout_seconds)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: ApiSettings) -> JobApiClient:
        return cls(
            base_url=settings.base_url,
            submit_timeout_seconds=settings.submit_timeout_seconds,
            status_timeout_seconds=settings.status_timeout_seconds,
        )

    async def submit_job(self, request: BookRequest) -> str:
        """Submit a generation job and return its id.

        A 422 answer means the backend rejected the payload shape, so the
        next shape is tried; any other failure stops immediately.
        """

        shapes = request.payload_shapes()
        for index, payload in enumerate(shapes, start=1):
            logger.debug("Submitting job payload (shape %d/%d): %s", index, len(shapes), payload)
            try:
                response = await self._client.post(
                    SUBMIT_PATH,
                    json=payload,
                    timeout=self._submit_timeout,
                )
            except httpx.TimeoutException as exc:
                logger.warning("Timeout submitting job to %s", self.base_url)
                raise JobSubmissionError(
                    message="Story creation is taking longer than expected. Please try again!",
                    code="timeout",
                ) from exc
            except (httpx.InvalidURL, httpx.HTTPError) as exc:
                logger.warning("HTTP error submitting job to %s: %s", self.base_url, exc)
                raise JobSubmissionError(
                    message=(
                        "Unable to connect to Story Magic. "
                        "Please check your internet connection and try again."
                    ),
                    code="network",
                ) from exc

            if response.status_code == HTTP_UNPROCESSABLE and index < len(shapes):
                logger.info("Backend rejected payload shape %d, trying next shape", index)
                continue
            if not response.is_success:
                raise _submission_error(response)
            return _job_id(response)

        raise JobSubmissionError(message="Job submission failed", code="unknown")

    async def fetch_status(self, job_id: str) -> dict[str, Any]:
        """Return the raw status payload for ``job_id``."""

        try:
            response = await self._client.get(status_path(job_id), timeout=self._status_timeout)
        except httpx.InvalidURL as exc:
            logger.warning("Cannot build status URL for job %r: %s", job_id, exc)
            raise StatusFetchError(
                message=f"Unable to check story progress: invalid job id {job_id!r}.",
                code="invalid_job_id",
            ) from exc
        except httpx.TimeoutException as exc:
            logger.warning("Timeout fetching status for job %s", job_id)
            raise StatusFetchError(
                message=(
                    "Story progress check is taking too long. "
                    "Your story is still being created in the background!"
                ),
                code="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching status for job %s: %s", job_id, exc)
            raise StatusFetchError(
                message="Unable to check story progress. Please check your internet connection.",
                code="network",
            ) from exc

        if not response.is_success:
            raise _status_error(response)
        payload = _json_object(response)
        if payload is None:
            raise StatusFetchError(
                message="Story progress check returned an unreadable answer.",
                code="invalid_payload",
                status_code=response.status_code,
            )
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JobApiClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def _job_id(response: httpx.Response) -> str:
    payload = _json_object(response) or {}
    job_id = payload.get("task_id") or payload.get("job_id")
    if not isinstance(job_id, str) or not job_id.strip():
        raise JobSubmissionError(
            message="Story workshop accepted the request but returned no job id.",
            code="invalid_payload",
            status_code=response.status_code,
        )
    return job_id.strip()


def _submission_error(response: httpx.Response) -> JobSubmissionError:
    status = response.status_code
    detail = (_json_object(response) or {}).get("detail")
    logger.warning("Job submission rejected with HTTP %s: %s", status, detail)
    if status == HTTP_BAD_REQUEST:
        message = (
            "Some story details need to be checked. "
            "Please review your story information and try again."
        )
    elif status == HTTP_TOO_MANY_REQUESTS:
        message = "Too many stories being created right now. Please wait a moment and try again."
    elif status in SERVICE_UNAVAILABLE_CODES:
        message = (
            "Our story workshop is temporarily unavailable. Please try again in a few minutes."
        )
    elif isinstance(detail, str) and detail:
        message = detail
    else:
        message = f"Connection problem (Error {status}). Please try again."
    return JobSubmissionError(message=message, code=str(status), status_code=status)


def _status_error(response: httpx.Response) -> StatusFetchError:
    status = response.status_code
    if status == HTTP_NOT_FOUND:
        message = (
            "Story not found. "
            "It might have been completed or there was an issue creating it."
        )
    elif status >= HTTP_SERVER_ERROR:
        message = (
            "Story progress check is temporarily unavailable. "
            "Your story is still being created!"
        )
    else:
        message = f"Unable to check story progress (Error {status}). Please try refreshing."
    return StatusFetchError(message=message, code=str(status), status_code=status)


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    try:
        value = response.json()
    except ValueError:
        return None
    return value if isinstance(value, dict) else None
