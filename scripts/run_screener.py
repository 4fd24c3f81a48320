#!/usr/bin/env python3
"""
Command-line interface for the resume screener.

Settings come from the environment (.env) and an optional YAML file passed
with --config (or SCREENER_CONFIG).

Commands:
    watch          - Watch the resume directory and screen new PDFs
    reconcile      - Sync the manifest with disk and screen unfinished files
    status         - Show manifest and rejection statistics
    list           - List manifest entries (optionally filter by label)
    review         - Record a manual review label for a resume
    clear-rejected - Delete rejected resumes and their manifest entries
    events         - Show recent pipeline events
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from sentra.config import load_settings
from sentra.contexts.tracking.events import EVENT_ADDED, EVENT_LABEL, EVENT_READY, format_sse
from sentra.contexts.tracking.manifest import ManifestStore
from sentra.contexts.tracking.rejected import RejectionTracker
from sentra.service import ScreeningService, clear_rejected, review_file
from sentra.utils.event_logging import PipelineEventLog
from sentra.utils.labels import TIER_DISPLAY
from sentra.utils.logger import setup_logger
from sentra.utils.timestamp import format_timestamp

app = typer.Typer(
    add_completion=False,
    help="Screen resume PDFs against a hiring condition",
    invoke_without_command=True,
)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="YAML settings file")


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _label_color(label: Optional[str]) -> str:
    if label in ("passed", "exceeds", "elite"):
        return typer.colors.GREEN
    if label in ("rejected", "failed"):
        return typer.colors.RED
    return typer.colors.YELLOW


@app.command("watch")
def watch_command(
    config: Optional[Path] = CONFIG_OPTION,
    condition: Optional[str] = typer.Option(
        None, "--condition", help="Screening condition (overrides ANALYSIS_CONDITION)"
    ),
    sse: bool = typer.Option(False, "--sse", help="Print events as a Server-Sent Events stream"),
):
    """
    Watch the resume directory and screen every PDF that lands in it.

    Runs until interrupted. Files left unfinished by a previous run are
    picked up again once the initial scan completes.

    Examples:\n

        $ run_screener.py watch

        $ run_screener.py watch --condition "3+ years of Python backend work"

        $ run_screener.py watch --sse
    """
    settings = load_settings(config)
    setup_logger(
        "screener",
        settings.logs_path,
        extra_provenance={
            "Resume dir": settings.resume_dir,
            "Manifest": settings.manifest_path,
            "LLM provider": settings.llm_provider,
        },
    )

    try:
        service = ScreeningService(settings)
        service.set_condition(condition)
    except ValueError as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    def show(event_name: str):
        def callback(payload) -> None:
            label = payload.get("label") if isinstance(payload, dict) else None
            name = payload.get("candidateName") or payload.get("filename", "")
            typer.secho(f"  {event_name:6} {label or '':12} {name}", fg=_label_color(label))

        return callback

    async def print_sse() -> None:
        async for message in service.stream([EVENT_ADDED, EVENT_LABEL, EVENT_READY]):
            typer.echo(format_sse(message), nl=False)

    async def run() -> None:
        if sse:
            streamer = asyncio.create_task(print_sse())
        else:
            service.bus.on(EVENT_ADDED, show(EVENT_ADDED))
            service.bus.on(EVENT_LABEL, show(EVENT_LABEL))
        async with service:
            await service.watcher.wait_ready()
            typer.secho(f"Watching {settings.resume_dir} (Ctrl-C to stop)", fg=typer.colors.BLUE, err=sse)
            if sse:
                await streamer
            else:
                await asyncio.Event().wait()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        typer.echo("\nStopped")


@app.command("reconcile")
def reconcile_command(
    config: Optional[Path] = CONFIG_OPTION,
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for admitted jobs to finish"),
):
    """
    Remove orphan entries, register unrecorded PDFs and screen unfinished files.

    Examples:\n

        $ run_screener.py reconcile

        $ run_screener.py reconcile --no-wait   # Report only, drop queued jobs
    """
    settings = load_settings(config)
    setup_logger("reconcile", settings.logs_path)

    async def run():
        service = ScreeningService(settings)
        report = await service.reconcile()
        if wait:
            await service.queue.join()
        await service.queue.shutdown()
        return report

    report = asyncio.run(run())

    typer.secho("\nReconciliation", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"  Orphans removed: {len(report.removed)}")
    typer.echo(f"  Registered:      {len(report.registered)}")
    typer.echo(f"  Enqueued:        {len(report.enqueued)}")


@app.command("status")
def status_command(config: Optional[Path] = CONFIG_OPTION):
    """
    Show manifest label counts and rejection statistics.

    Examples:\n

        $ run_screener.py status
    """
    settings = load_settings(config)
    store = ManifestStore(settings.manifest_path)
    tracker = RejectionTracker(settings.rejected_path)

    async def gather():
        return await store.count_by_label(), await tracker.stats()

    counts, rejected = asyncio.run(gather())

    typer.secho("\nManifest", fg=typer.colors.BLUE, bold=True)
    typer.echo("=" * 80)
    typer.echo(f"Total resumes: {sum(counts.values())}")
    for label, count in sorted(counts.items()):
        display = TIER_DISPLAY.get(label, label)
        typer.echo(f"  {display:20} {count}")

    typer.secho("\nRejected candidates", fg=typer.colors.BLUE, bold=True)
    for key, value in rejected.items():
        typer.echo(f"  {key:20} {value}")


@app.command("list")
def list_command(
    label: Optional[str] = typer.Option(None, "--label", "-l", help="Filter by label"),
    config: Optional[Path] = CONFIG_OPTION,
):
    """
    List manifest entries.

    Examples:\n

        $ run_screener.py list

        $ run_screener.py list --label elite
    """
    settings = load_settings(config)
    entries = asyncio.run(ManifestStore(settings.manifest_path).read_all())
    if label:
        entries = {name: value for name, value in entries.items() if value == label}
        typer.secho(f"\nResumes with label '{label}':", fg=typer.colors.BLUE, bold=True)
    else:
        typer.secho("\nAll resumes:", fg=typer.colors.BLUE, bold=True)

    if not entries:
        typer.echo("  (none)")
        return

    max_name_len = max(len(name) for name in entries)
    for name, value in sorted(entries.items()):
        padding = " " * (max_name_len - len(name))
        typer.echo(f"  {name}{padding}  ", nl=False)
        typer.secho(value, fg=_label_color(value))

    typer.echo(f"\nTotal: {len(entries)}")


@app.command("review")
def review_command(
    filename: str = typer.Argument(..., help="Resume filename as stored in the manifest"),
    comment: str = typer.Argument(..., help="Review text (max 255 chars)"),
    config: Optional[Path] = CONFIG_OPTION,
):
    """
    Record a manual review; the label becomes reviewed#<comment>.

    Examples:\n

        $ run_screener.py review "Jane_Doe__...pdf" "Strong referral, fast-track"
    """
    settings = load_settings(config)
    store = ManifestStore(settings.manifest_path, PipelineEventLog(settings.pipeline_events_file))

    try:
        label = asyncio.run(review_file(store, filename, comment))
    except KeyError:
        typer.secho(f"Resume '{filename}' not found in manifest", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except ValueError as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"✓ {filename} → {label}", fg=typer.colors.GREEN)


@app.command("clear-rejected")
def clear_rejected_command(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config: Optional[Path] = CONFIG_OPTION,
):
    """
    Delete rejected resume PDFs and drop their manifest entries.

    Examples:\n

        $ run_screener.py clear-rejected --yes
    """
    settings = load_settings(config)
    store = ManifestStore(settings.manifest_path, PipelineEventLog(settings.pipeline_events_file))

    if not yes:
        typer.confirm(f"Delete all rejected resumes in {settings.resume_dir}?", abort=True)

    cleared = asyncio.run(clear_rejected(store, settings.resume_dir))
    typer.secho(f"✓ Cleared {len(cleared)} rejected resume(s)", fg=typer.colors.GREEN)


@app.command("events")
def events_command(
    n: int = typer.Option(10, "--num", "-n", help="Number of recent events to show"),
    filename: Optional[str] = typer.Option(
        None, "--file", "-f", help="Filter to events for this resume"
    ),
    event_type: Optional[str] = typer.Option(
        None, "--event-type", "-e", help="Filter to events of this type"
    ),
    compact: bool = typer.Option(
        False, "--compact", help="Print one event per line (no pretty formatting)"
    ),
    config: Optional[Path] = CONFIG_OPTION,
):
    """
    Show the last n events from the pipeline event log.

    Examples:\n

        $ run_screener.py events                   # Last 10 events

        $ run_screener.py events -e status_change  # Last 10 status changes

        $ run_screener.py events -n 5 -f Jane_Doe__...pdf
    """
    settings = load_settings(config)
    events = PipelineEventLog(settings.pipeline_events_file).recent(
        n=n, filename=filename, event_type=event_type
    )

    if not events:
        typer.secho("No events found", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    for event in events:
        if compact:
            typer.echo(json.dumps(event))
            continue
        when = format_timestamp(event.get("timestamp", ""), relative=True)
        typer.secho(f"\n{event['event_type']}  ({when})", fg=typer.colors.BLUE, bold=True)
        for key, value in event.items():
            if key in ("event_type", "timestamp"):
                continue
            typer.echo(f"  {key:12} {value}")


if __name__ == "__main__":
    app()
