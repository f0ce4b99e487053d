"""CLI entrypoint for taskwatch."""

from __future__ import annotations

import asyncio
import logging

import rich_click as click

from taskwatch import __version__
from taskwatch.api.client import JobApiClient
from taskwatch.api.models import SUPPORTED_LANGUAGES, SUPPORTED_STYLES, BookRequest
from taskwatch.config import Settings
from taskwatch.errors import ApiError
from taskwatch.sync.models import SyncState, SyncView, TaskStatus
from taskwatch.sync.normalizer import resolve_result_url
from taskwatch.sync.watch import watch_job

click.rich_click.USE_MARKDOWN = True


@click.group()
@click.version_option(version=__version__, prog_name="taskwatch")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def taskwatch(ctx: click.Context, verbose: bool) -> None:
    """Submit generation jobs and follow their progress."""

    settings = Settings.from_env()
    settings.validate()
    if verbose or settings.debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    ctx.obj = settings


@taskwatch.command("submit")
@click.option("--title", required=True, help="Story title.")
@click.option("--hero", "hero_name", required=True, help="Main character name.")
@click.option(
    "--language",
    type=click.Choice(SUPPORTED_LANGUAGES, case_sensitive=False),
    default="BG",
    show_default=True,
)
@click.option(
    "--style",
    type=click.Choice(SUPPORTED_STYLES),
    default="kids",
    show_default=True,
)
@click.option("--chapters", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--images/--no-images", "include_images", default=True, show_default=True)
@click.option("--watch", "watch_after", is_flag=True, default=False, help="Follow progress.")
@click.pass_obj
def submit(  # noqa: PLR0913
    settings: Settings,
    title: str,
    hero_name: str,
    language: str,
    style: str,
    chapters: int,
    include_images: bool,
    watch_after: bool,
) -> None:
    """Submit one book generation job and print its id."""

    request = BookRequest(
        title=title,
        hero_name=hero_name,
        language=language.upper(),
        style=style,
        chapters=chapters,
        include_images=include_images,
    )
    job_id = asyncio.run(_submit(settings, request))
    click.echo(f"Job submitted: {job_id}")
    if watch_after:
        _finish(asyncio.run(_watch(settings, job_id)))


@taskwatch.command("status")
@click.argument("job_id")
@click.pass_obj
def status(settings: Settings, job_id: str) -> None:
    """Check job status once over HTTP."""

    payload = asyncio.run(_fetch_status(settings, job_id))
    _emit_lines(_status_lines(job_id, payload, base_url=settings.api.base_url))


@taskwatch.command("watch")
@click.argument("job_id")
@click.pass_obj
def watch(settings: Settings, job_id: str) -> None:
    """Follow job progress live, falling back to status checks."""

    _finish(asyncio.run(_watch(settings, job_id)))


async def _submit(settings: Settings, request: BookRequest) -> str:
    async with JobApiClient.from_settings(settings.api) as client:
        try:
            return await client.submit_job(request)
        except ApiError as exc:
            raise click.ClickException(exc.message) from exc


async def _fetch_status(settings: Settings, job_id: str) -> dict[str, object]:
    async with JobApiClient.from_settings(settings.api) as client:
        try:
            return await client.fetch_status(job_id)
        except ApiError as exc:
            raise click.ClickException(exc.message) from exc


async def _watch(settings: Settings, job_id: str) -> SyncView:
    printer = _ProgressPrinter()
    async with JobApiClient.from_settings(settings.api) as client:
        return await watch_job(job_id, settings=settings, client=client, on_update=printer)


class _ProgressPrinter:
    """Echo a line whenever the visible job state changes."""

    def __init__(self) -> None:
        self._last: tuple[object, ...] | None = None

    def __call__(self, view: SyncView) -> None:
        key = (view.state, view.status, view.progress, view.attempt_count)
        if key == self._last:
            return
        self._last = key
        click.echo(_view_line(view))


def _view_line(view: SyncView) -> str:
    line = f"[{view.state.value}] {view.status.value} {view.progress}%"
    if view.state is SyncState.RECONNECTING:
        line += f" (reconnect attempt {view.attempt_count})"
    if view.connection_error and not view.is_connected:
        line += f" - {view.connection_error}"
    return line


def _finish(view: SyncView) -> None:
    if view.status is TaskStatus.COMPLETED:
        click.echo(f"Result: {view.result_url or '(no result url)'}")
        return
    if view.status is TaskStatus.FAILED:
        raise click.ClickException(view.error_message or "Task failed")
    raise click.ClickException(
        view.fetch_error
        or f"Job {view.job_id} still {view.status.value} after all status checks.",
    )


def _status_lines(job_id: str, payload: dict[str, object], *, base_url: str) -> list[str]:
    lines = [
        f"Job: {job_id}",
        f"Status: {payload.get('status', 'unknown')}",
        f"Progress: {payload.get('progress', 0)}%",
    ]
    result = payload.get("result")
    if isinstance(result, dict) and result.get("pdf_url"):
        lines.append(f"Result: {resolve_result_url(str(result['pdf_url']), base_url)}")
    if payload.get("error"):
        lines.append(f"Error: {payload['error']}")
    return lines


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskwatch()
