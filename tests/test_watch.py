from __future__ import annotations

import asyncio
from typing import Any

import allure

from taskwatch.config import ApiSettings, PollingSettings, RealtimeSettings, Settings
from taskwatch.errors import StatusFetchError
from taskwatch.sync.models import SyncState, SyncView, TaskStatus
from taskwatch.sync.watch import build_controller, watch_job

pytestmark = [
    allure.epic("Progress Sync"),
    allure.feature("Job Watching"),
]


def _settings(*, reconnect_attempts: int = 3, polling_attempts: int = 5) -> Settings:
    return Settings(
        api=ApiSettings(base_url="http://api.test"),
        realtime=RealtimeSettings(
            base_url="ws://ws.test",
            reconnect_attempts=reconnect_attempts,
            reconnect_delay_seconds=0.0,
            terminal_grace_seconds=0.0,
        ),
        polling=PollingSettings(interval_seconds=0.01, max_attempts=polling_attempts),
    )


class _FakeClient:
    def __init__(self, answers: list[dict[str, Any] | Exception]) -> None:
        self._answers = answers
        self.calls: list[str] = []

    async def fetch_status(self, job_id: str) -> dict[str, Any]:
        self.calls.append(job_id)
        answer = self._answers[min(len(self.calls), len(self._answers)) - 1]
        if isinstance(answer, Exception):
            raise answer
        return answer


def test_build_controller_uses_progress_endpoint(transport, clock) -> None:
    controller = build_controller(
        "job-9",
        settings=_settings(),
        scheduler=clock,
        transport=transport,
    )

    assert controller.endpoint == "ws://ws.test/ws/progress/job-9"
    assert transport.latest.endpoint == "ws://ws.test/ws/progress/job-9"
    assert controller.state is SyncState.CONNECTING


def test_watch_job_finishes_from_live_updates(transport) -> None:
    client = _FakeClient([{"status": "processing"}])
    views: list[SyncView] = []

    async def scenario() -> SyncView:
        task = asyncio.create_task(
            watch_job(
                "job-1",
                settings=_settings(),
                client=client,
                on_update=views.append,
                transport=transport,
            ),
        )
        await asyncio.sleep(0)
        transport.latest.open()
        transport.latest.send({"state": "PROGRESS", "info": {"progress": 60}})
        transport.latest.send({"state": "SUCCESS", "info": {"pdf_url": "/books/1.pdf"}})
        return await task

    view = asyncio.run(scenario())

    assert view.status is TaskStatus.COMPLETED
    assert view.progress == 100
    assert view.result_url == "http://api.test/books/1.pdf"
    assert client.calls == []
    assert [v.progress for v in views if v.status is TaskStatus.PROCESSING] == [60]


def test_watch_job_falls_back_to_status_checks_after_giving_up(transport) -> None:
    transport.fail_next_connect = True
    client = _FakeClient(
        [
            {"status": "processing", "progress": 50},
            StatusFetchError(message="Story progress check is temporarily unavailable."),
            {"status": "completed", "result": {"pdf_url": "/books/2.pdf"}},
        ],
    )

    view = asyncio.run(
        watch_job(
            "job-2",
            settings=_settings(reconnect_attempts=0),
            client=client,
            transport=transport,
        ),
    )

    assert view.status is TaskStatus.COMPLETED
    assert view.result_url == "http://api.test/books/2.pdf"
    assert view.fetch_error is None
    assert client.calls == ["job-2", "job-2", "job-2"]


def test_watch_job_falls_back_after_clean_close(transport) -> None:
    client = _FakeClient([{"status": "failed", "error": "render crashed"}])

    async def scenario() -> SyncView:
        task = asyncio.create_task(
            watch_job("job-3", settings=_settings(), client=client, transport=transport),
        )
        await asyncio.sleep(0)
        transport.latest.open()
        transport.latest.send({"state": "PROCESSING", "info": {"progress": 30}})
        transport.latest.close()
        return await task

    view = asyncio.run(scenario())

    assert view.status is TaskStatus.FAILED
    assert view.error_message == "render crashed"
    assert view.progress == 30
    assert client.calls == ["job-3"]


def test_watch_job_stops_after_polling_attempts(transport) -> None:
    transport.fail_next_connect = True
    client = _FakeClient([{"status": "processing", "progress": 10}])

    view = asyncio.run(
        watch_job(
            "job-4",
            settings=_settings(reconnect_attempts=0, polling_attempts=2),
            client=client,
            transport=transport,
        ),
    )

    assert view.status is TaskStatus.PROCESSING
    assert view.progress == 10
    assert len(client.calls) == 2
    assert view.state is SyncState.GIVEN_UP


def test_watch_job_disposes_controller_on_exit(transport) -> None:
    client = _FakeClient([{"status": "processing"}])

    async def scenario() -> SyncView:
        task = asyncio.create_task(
            watch_job("job-5", settings=_settings(), client=client, transport=transport),
        )
        await asyncio.sleep(0)
        transport.latest.open()
        transport.latest.send({"state": "FAILED", "error": "boom"})
        return await task

    view = asyncio.run(scenario())

    assert view.status is TaskStatus.FAILED
    assert transport.live_connections() == []
