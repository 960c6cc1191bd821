"""Sync CLI commands: run a pass, ingest observations, show status."""

import sys
import uuid
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from errors import StoreUnavailableError
from records.models import OBSERVATIONS_TABLE, Observation
from shared_types import ObservationSource, Priority

console = Console()

_PRIORITY_STYLE = {Priority.HIGH: "red", Priority.MEDIUM: "yellow", Priority.LOW: "dim"}


@click.group()
def sync():
    """Reconcile incoming observations against tracked records."""
    pass


@sync.command("run")
@click.option("--max-items", type=int, default=None, help="Max observations per pass")
@click.option("--days", "lookback_days", type=int, default=None, help="Lookback window in days")
@click.option("--force-rescan", is_flag=True, help="Include already processed observations")
@click.option("--auto-apply", is_flag=True, help="Apply suggestions above the threshold")
@click.option("--threshold", type=float, default=None, help="Auto-apply confidence threshold")
@click.option("--offline", is_flag=True, help="Skip LLM extraction and embeddings")
def sync_run(max_items, lookback_days, force_rescan, auto_apply, threshold, offline):
    """Run one sync pass and print the ranked suggestions."""
    c = get_components(use_llm=not offline)

    overrides = {"force_rescan": force_rescan}
    if max_items is not None:
        overrides["max_items"] = max_items
    if lookback_days is not None:
        overrides["lookback_days"] = lookback_days
    if auto_apply:
        overrides["auto_apply"] = True
    if threshold is not None:
        overrides["auto_apply_threshold"] = threshold

    try:
        with console.status("Reconciling observations..."):
            report = c["orchestrator"].run(**overrides)
    except StoreUnavailableError as e:
        console.print(f"[red]Record store unavailable:[/] {e}")
        sys.exit(1)

    console.print(report.outcome_line)
    for failure in report.failures:
        console.print(f"  [red]✗[/] {failure.observation_id}: {failure.reason}")

    if not report.suggestions:
        console.print(f"[yellow]{report.summary}[/]")
        return

    applied = {s.id for s in report.applied}
    table = Table(title=report.summary, show_header=True)
    table.add_column("Priority")
    table.add_column("Kind", style="cyan")
    table.add_column("Title")
    table.add_column("Details", style="dim")
    table.add_column("Conf", justify="right")
    table.add_column("Applied", justify="center")

    for s in report.suggestions:
        style = _PRIORITY_STYLE[s.priority]
        table.add_row(
            f"[{style}]{s.priority.value}[/]",
            s.kind.value,
            s.title[:50],
            s.description[:60],
            f"{s.confidence:.2f}",
            "[green]✓[/]" if s.id in applied else "",
        )
    console.print(table)


@sync.command("ingest")
@click.argument("body")
@click.option("--subject", default="", help="Subject line")
@click.option("--sender", default="", help="Sender address")
@click.option(
    "--source",
    type=click.Choice([s.value for s in ObservationSource]),
    default=ObservationSource.EMAIL.value,
)
@click.option("--priority", type=click.Choice([p.value for p in Priority]), default=None)
def sync_ingest(body, subject, sender, source, priority):
    """Add an observation for the next sync pass."""
    c = get_components(use_llm=False)
    observation = Observation(
        id=uuid.uuid4().hex[:12],
        source=ObservationSource(source),
        body_text=body,
        received_at=datetime.now(),
        subject=subject,
        sender=sender,
        priority=Priority(priority) if priority else None,
    )
    c["records"].upsert(OBSERVATIONS_TABLE, observation.to_record())
    console.print(f"[green]Queued:[/] {observation.id}")


@sync.command("status")
def sync_status():
    """Show pending and recently processed observation counts."""
    c = get_components(use_llm=False)
    status = c["orchestrator"].status()

    console.print(f"Pending observations: {status['pending']}")
    console.print(f"Processed (last 7 days): {status['processed_recent']}")
    last = status["last_sync"]
    if last:
        console.print(
            f"Last sync: {last['finished_at'][:19]} ({last['run_id']}) - "
            f"{last['processed']} processed, {last['failed']} failed"
        )
        console.print(f"[dim]{last['summary']}[/]")
    else:
        console.print("[yellow]No sync pass recorded yet.[/]")
