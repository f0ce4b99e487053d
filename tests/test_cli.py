from __future__ import annotations

import json
from collections.abc import Callable

import allure
import httpx
import pytest
from click.testing import CliRunner

from taskwatch.api.client import JobApiClient
from taskwatch.config import ApiSettings
from taskwatch.main import taskwatch

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Submit, Status, Watch"),
]


def _use_backend(
    monkeypatch: pytest.MonkeyPatch,
    handler: Callable[[httpx.Request], httpx.Response],
) -> None:
    def from_settings(cls: type[JobApiClient], settings: ApiSettings) -> JobApiClient:
        return cls(base_url=settings.base_url, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(JobApiClient, "from_settings", classmethod(from_settings))
    monkeypatch.setenv("TASKWATCH_API_URL", "http://api.test")
    monkeypatch.setenv("TASKWATCH_WS_URL", "ws://ws.test")
    monkeypatch.setenv("TASKWATCH_WS_RECONNECT_ATTEMPTS", "0")
    monkeypatch.setenv("TASKWATCH_POLLING_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("TASKWATCH_MAX_POLLING_ATTEMPTS", "3")
    monkeypatch.delenv("TASKWATCH_DEBUG", raising=False)


def test_submit_prints_job_id(monkeypatch: pytest.MonkeyPatch) -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"task_id": "job-11"})

    _use_backend(monkeypatch, handler)

    result = CliRunner().invoke(
        taskwatch,
        ["submit", "--title", "Moon Trip", "--hero", "Ivo", "--language", "en", "--chapters", "2"],
    )

    assert result.exit_code == 0, result.output
    assert "Job submitted: job-11" in result.output
    assert bodies[0]["language"] == "en"
    assert bodies[0]["chapters"] == 2


def test_submit_reports_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_backend(monkeypatch, lambda request: httpx.Response(429))

    result = CliRunner().invoke(taskwatch, ["submit", "--title", "Moon Trip", "--hero", "Ivo"])

    assert result.exit_code == 1
    assert "Too many stories" in result.output


def test_status_prints_progress_and_resolved_result(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"status": "completed", "progress": 100, "result": {"pdf_url": "/books/3.pdf"}},
        )

    _use_backend(monkeypatch, handler)

    result = CliRunner().invoke(taskwatch, ["status", "job-3"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "Job: job-3",
        "Status: completed",
        "Progress: 100%",
        "Result: http://api.test/books/3.pdf",
    ]


def test_status_not_found_is_a_cli_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_backend(monkeypatch, lambda request: httpx.Response(404))

    result = CliRunner().invoke(taskwatch, ["status", "missing"])

    assert result.exit_code == 1
    assert "Story not found" in result.output


def test_watch_falls_back_to_status_checks(monkeypatch: pytest.MonkeyPatch, transport) -> None:
    transport.fail_next_connect = True
    monkeypatch.setattr("taskwatch.sync.watch.WebsocketTransport", lambda **_: transport)
    _use_backend(
        monkeypatch,
        lambda request: httpx.Response(
            200,
            json={"status": "completed", "result": {"pdf_url": "/books/4.pdf"}},
        ),
    )

    result = CliRunner().invoke(taskwatch, ["watch", "job-4"])

    assert result.exit_code == 0, result.output
    assert "[given_up]" in result.output
    assert "Result: http://api.test/books/4.pdf" in result.output


def test_watch_failed_job_exits_with_error(monkeypatch: pytest.MonkeyPatch, transport) -> None:
    transport.fail_next_connect = True
    monkeypatch.setattr("taskwatch.sync.watch.WebsocketTransport", lambda **_: transport)
    _use_backend(
        monkeypatch,
        lambda request: httpx.Response(200, json={"status": "failed", "error": "render crashed"}),
    )

    result = CliRunner().invoke(taskwatch, ["watch", "job-5"])

    assert result.exit_code == 1
    assert "render crashed" in result.output


def test_invalid_configuration_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_backend(monkeypatch, lambda request: httpx.Response(200, json={}))
    monkeypatch.setenv("TASKWATCH_WS_URL", "http://not-a-websocket")

    result = CliRunner().invoke(taskwatch, ["status", "job-1"])

    assert result.exit_code != 0
    assert isinstance(result.exception, ValueError)
