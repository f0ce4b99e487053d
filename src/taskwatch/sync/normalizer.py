"""Map raw progress messages onto canonical snapshot deltas.

The backend speaks several dialects for the same four states: the progress
channel sends ``{"state": "SUCCESS", "info": {...}}`` while the status
endpoint answers ``{"status": "completed", "progress": 100, "result": {...}}``.
Both are folded into one ``SnapshotDelta`` here.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from taskwatch.errors import DEFAULT_FAILURE_MESSAGE, NormalizationError, ParseError
from taskwatch.sync.models import SnapshotDelta, TaskStatus

DISCRIMINATOR_FIELDS: tuple[str, ...] = ("state", "status")

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "PENDING": TaskStatus.PENDING,
    "PROCESSING": TaskStatus.PROCESSING,
    "IN_PROGRESS": TaskStatus.PROCESSING,
    "PROGRESS": TaskStatus.PROCESSING,
    "SUCCESS": TaskStatus.COMPLETED,
    "COMPLETED": TaskStatus.COMPLETED,
    "FAILED": TaskStatus.FAILED,
    "ERROR": TaskStatus.FAILED,
}
_RESULT_REFERENCE_FIELDS: tuple[str, ...] = ("pdf_url", "result_url")
_FRAME_PREVIEW_CHARS = 240


class MessageNormalizer:
    """Normalizer bound to the base URL used to qualify result references."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def normalize(self, raw: Mapping[str, Any]) -> SnapshotDelta:
        return normalize_message(raw, base_url=self.base_url)


def normalize_message(raw: Mapping[str, Any], *, base_url: str) -> SnapshotDelta:
    """Convert one raw message into a delta, or raise ``NormalizationError``."""

    discriminator = _discriminator(raw)
    status = _STATUS_ALIASES.get(discriminator.strip().upper()) if discriminator else None
    if status is None:
        raise NormalizationError(
            message=f"Unknown progress state: {discriminator!r}",
            discriminator=discriminator,
        )

    info = _mapping(raw.get("info"))
    progress = info.get("progress", raw.get("progress"))

    if status is TaskStatus.COMPLETED:
        reference = _result_reference(raw, info)
        return SnapshotDelta(
            status=status,
            progress=progress,
            result_url=resolve_result_url(reference, base_url) if reference else None,
        )
    if status is TaskStatus.FAILED:
        return SnapshotDelta(
            status=status,
            progress=progress,
            error_message=_error_text(info.get("error"))
            or _error_text(raw.get("error"))
            or DEFAULT_FAILURE_MESSAGE,
        )
    return SnapshotDelta(status=status, progress=progress)


def resolve_result_url(reference: str, base_url: str) -> str:
    """Qualify a root-relative result reference against ``base_url``."""

    if reference.startswith("/"):
        return base_url.rstrip("/") + reference
    return reference


def parse_frame(data: str | bytes) -> Mapping[str, Any]:
    """Decode one inbound frame as a JSON object, or raise ``ParseError``."""

    preview = data if isinstance(data, str) else data.decode("utf-8", errors="replace")
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise ParseError(
            message=f"Malformed progress frame: {exc}",
            frame=preview[:_FRAME_PREVIEW_CHARS],
        ) from exc
    if not isinstance(value, dict):
        raise ParseError(
            message=f"Progress frame is not a JSON object: {type(value).__name__}",
            frame=preview[:_FRAME_PREVIEW_CHARS],
        )
    return value


def _discriminator(raw: Mapping[str, Any]) -> str | None:
    for name in DISCRIMINATOR_FIELDS:
        value = raw.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _result_reference(raw: Mapping[str, Any], info: Mapping[str, Any]) -> str | None:
    result = _mapping(raw.get("result"))
    for source in (info, result, raw):
        for name in _RESULT_REFERENCE_FIELDS:
            value = source.get(name)
            if isinstance(value, str) and value:
                return value
    return None


def _error_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}
