"""Drive one job to a terminal state: live updates first, polling as fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from taskwatch.api.client import JobApiClient, progress_endpoint
from taskwatch.config import Settings
from taskwatch.sync.controller import ChangeListener, StatusFetcher, SyncController
from taskwatch.sync.models import SyncState, SyncView
from taskwatch.sync.normalizer import MessageNormalizer
from taskwatch.sync.policy import build_reconnect_policy
from taskwatch.sync.transport import Scheduler, Transport, WebsocketTransport

logger = logging.getLogger(__name__)

_FALLBACK_STATES = frozenset({SyncState.GIVEN_UP, SyncState.IDLE})


def build_controller(  # noqa: PLR0913
    job_id: str,
    *,
    settings: Settings,
    scheduler: Scheduler,
    transport: Transport | None = None,
    status_fetcher: StatusFetcher | None = None,
    on_change: ChangeListener | None = None,
) -> SyncController:
    """Wire a controller from settings; opens the first session immediately."""

    realtime = settings.realtime
    return SyncController(
        job_id,
        endpoint=progress_endpoint(realtime.base_url, job_id),
        transport=transport
        or WebsocketTransport(open_timeout_seconds=realtime.open_timeout_seconds),
        scheduler=scheduler,
        normalizer=MessageNormalizer(settings.api.base_url),
        policy=build_reconnect_policy(realtime),
        status_fetcher=status_fetcher,
        on_change=on_change,
        terminal_grace_seconds=realtime.terminal_grace_seconds,
    )


async def watch_job(
    job_id: str,
    *,
    settings: Settings,
    client: JobApiClient,
    on_update: Callable[[SyncView], None] | None = None,
    transport: Transport | None = None,
) -> SyncView:
    """Follow ``job_id`` until it is terminal or polling attempts run out."""

    stop_live = asyncio.Event()

    def _on_change(view: SyncView) -> None:
        if on_update is not None:
            on_update(view)
        if view.is_terminal or view.state in _FALLBACK_STATES:
            stop_live.set()

    controller = build_controller(
        job_id,
        settings=settings,
        scheduler=asyncio.get_running_loop(),
        transport=transport,
        status_fetcher=client.fetch_status,
        on_change=_on_change,
    )
    try:
        await stop_live.wait()
        view = controller.view
        polling = settings.polling
        for attempt in range(1, polling.max_attempts + 1):
            if view.is_terminal:
                break
            logger.info(
                "Checking status of job %s manually (%d/%d)",
                job_id,
                attempt,
                polling.max_attempts,
            )
            view = await controller.check_now()
            if view.is_terminal:
                break
            await asyncio.sleep(polling.interval_seconds)
        return controller.view
    finally:
        controller.dispose()
