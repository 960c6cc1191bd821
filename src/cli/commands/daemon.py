"""Daemon CLI commands."""

import time

import click
from rich.console import Console

from cli.config import DEFAULT_CONFIG_DIR
from cli.utils import get_components
from reconcile.scheduler import SyncScheduler

console = Console()

_daemon_scheduler = None


def _build_scheduler(c) -> SyncScheduler:
    config = c["config"]
    return SyncScheduler(
        c["orchestrator"],
        c["memory"],
        config.schedule,
        cleanup_importance=config.memory.cleanup_importance,
        cleanup_days=config.memory.cleanup_days,
        status_path=DEFAULT_CONFIG_DIR / "last_run_status.json",
    )


@click.group()
def daemon():
    """Manage background scheduler."""
    pass


@daemon.command("start")
def daemon_start():
    """Start scheduled sync passes and memory maintenance."""
    global _daemon_scheduler

    if _daemon_scheduler is not None:
        console.print("[yellow]Daemon already running[/]")
        return

    c = get_components()
    _daemon_scheduler = _build_scheduler(c)
    _daemon_scheduler.start()

    for job_id, (_, cron) in _daemon_scheduler.jobs().items():
        console.print(f"[green]Scheduled[/] {job_id}: {cron}")
    console.print("Press Ctrl+C to stop")

    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        _daemon_scheduler.stop()
        _daemon_scheduler = None
        console.print("\n[yellow]Stopped[/]")


@daemon.command("run-once")
def daemon_run_once():
    """Run every job once (for cron/launchd integration)."""
    c = get_components()
    scheduler = _build_scheduler(c)

    report = scheduler.run_sync()
    decayed = scheduler.run_decay()
    patterns = scheduler.run_consolidation()
    deleted = scheduler.run_cleanup()

    console.print(f"{report['processed']} observations processed, {report['failed']} failed")
    console.print(report["summary"])
    console.print(
        f"Memory: {decayed['hot'] + decayed['cold']} decayed, "
        f"{patterns} patterns, {deleted} deleted"
    )
