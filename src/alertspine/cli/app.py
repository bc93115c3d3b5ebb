"""
Root Typer application for the alert-spine CLI.

Commands:
    validate   Check the job file and show each job's cron expression
    trigger    Run one job immediately
    run        Start the scheduler and the status API
"""

from __future__ import annotations

from datetime import datetime

import typer
from croniter import croniter
from rich.markup import escape

from alertspine import __version__
from alertspine.core.errors import ConfigurationError
from alertspine.core.logging import configure_logging
from alertspine.pipeline.dispatch import ConsoleSink, HttpIncidentSink
from alertspine.scheduling import AlertScheduler, ThreadCronBackend, create_scheduler
from alertspine.scheduling.cron import (
    describe_timezone,
    resolve_schedule,
    resolve_timezone,
    validate_cron_expression,
)

from .utils import console, err_console, load_config, render_table

app = typer.Typer(
    name="alertspine",
    help="alert-spine: scheduled Alertmanager polling into incidents.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Job file (default: ALERTSPINE_CONFIG_PATH)")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"alert-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """alert-spine CLI."""


@app.command("validate")
def validate(config_path: str | None = CONFIG_OPTION) -> None:
    """Validate the job file and print every job's schedule."""
    config, _ = load_config(config_path)
    tz = resolve_timezone(config.timezone)
    now = datetime.now(tz) if tz else datetime.now().astimezone()

    rows = []
    errors = 0
    for job in config.jobs:
        if not job.enable:
            rows.append([job.name, "no", job.schedule, "", ""])
            continue
        try:
            expression = validate_cron_expression(resolve_schedule(job.schedule))
        except ConfigurationError as e:
            errors += 1
            rows.append([job.name, "yes", job.schedule, f"[red]{escape(e.message)}[/red]", ""])
            continue
        next_run = croniter(expression, now).get_next(datetime)
        rows.append([job.name, "yes", job.schedule, expression, next_run.isoformat()])

    state = "enabled" if config.enable else "disabled"
    render_table(
        f"Scheduled alerts ({state}, timezone: {describe_timezone(tz)})",
        ["Job", "Enabled", "Schedule", "Cron", "Next run"],
        rows,
    )
    if errors:
        err_console.print(f"[red]{errors} job(s) have invalid schedules[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Configuration is valid[/green]")


@app.command("trigger")
def trigger(
    job_name: str = typer.Argument(..., help="Job to run"),
    config_path: str | None = CONFIG_OPTION,
    dispatch_url: str | None = typer.Option(
        None, "--dispatch-url", help="Incident endpoint (default: print the payload only)"
    ),
) -> None:
    """Run one firing of a job now."""
    config, settings = load_config(config_path)
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")

    job = next((j for j in config.jobs if j.name == job_name), None)
    if job is None:
        err_console.print(f"[red]Job not found:[/red] {job_name}")
        raise typer.Exit(code=1)

    if dispatch_url:
        sink = HttpIncidentSink(dispatch_url, timeout=settings.dispatch_timeout_seconds)
    else:
        sink = ConsoleSink()
    scheduler = AlertScheduler(
        config,
        sink,
        backend=ThreadCronBackend(),
        fetch_timeout=settings.fetch_timeout_seconds,
    )
    outcome = scheduler.execute(job)

    color = "red" if outcome.is_failure else "green"
    console.print(f"[{color}]{job_name}: {outcome.value}[/{color}]")
    if outcome.is_failure:
        raise typer.Exit(code=1)


@app.command("run")
def run(
    config_path: str | None = CONFIG_OPTION,
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log payloads instead of dispatching"),
) -> None:
    """Start the scheduler and serve the status API."""
    import uvicorn

    from alertspine.api import create_app

    config, settings = load_config(config_path)
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")

    scheduler = None
    if config.enable:
        scheduler = create_scheduler(config, settings, sink=ConsoleSink() if dry_run else None)
    else:
        console.print("[yellow]Scheduled alerts are disabled[/yellow]")

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    console.print(f"[bold green]Starting alert-spine[/bold green] on {bind_host}:{bind_port}")
    uvicorn.run(
        create_app(scheduler, manage_scheduler=True),
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
    )
