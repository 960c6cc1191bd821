"""Memory CLI commands: remember, search, recent, stats and maintenance."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from memory.models import MemoryCategory

console = Console()


def _memory_table(records, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", width=8)
    table.add_column("Type", width=10)
    table.add_column("Content")
    table.add_column("Imp", justify="right", width=5)
    table.add_column("Sim", justify="right", width=5)
    for r in records:
        table.add_row(
            r.id[:8],
            r.memory_type.value,
            r.content[:80],
            f"{r.importance:.2f}",
            f"{r.similarity:.2f}" if r.similarity is not None else "",
        )
    return table


@click.group()
def memory():
    """Tiered memory: hot working set over a cold archive."""
    pass


@memory.command("remember")
@click.argument("content")
@click.option(
    "--category",
    "-c",
    type=click.Choice([c.value for c in MemoryCategory]),
    default=MemoryCategory.GENERAL.value,
)
@click.option("--importance", "-i", type=float, default=None, help="0-1, computed when omitted")
@click.option("--entity", "entity_id", default=None, help="Related record id")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
def memory_remember(content, category, importance, entity_id, tags):
    """Store a memory."""
    c = get_components()
    result = c["memory"].remember(
        content,
        importance=importance,
        entity_id=entity_id,
        category=category,
        tags=set(tags),
        source="cli",
    )
    where = "hot + cold" if result.hot_id else "cold"
    verb = "Updated" if result.updated else "Stored"
    console.print(f"[green]{verb}:[/] {result.cold_id} ({where}, importance {result.importance:.2f})")


@memory.command("search")
@click.argument("query")
@click.option("--limit", "-n", default=10)
@click.option("--min-similarity", type=float, default=0.0)
def memory_search(query, limit, min_similarity):
    """Search both tiers by similarity x importance."""
    c = get_components()
    results = c["memory"].search(query, limit=limit, min_similarity=min_similarity)
    if not results:
        console.print("No matching memories.")
        return
    console.print(_memory_table(results, f"Memories matching '{query}'"))


@memory.command("recent")
@click.option("--days", "-d", default=7)
@click.option("--limit", "-n", default=20)
def memory_recent(days, limit):
    """Memories created in the last N days."""
    c = get_components(use_llm=False)
    results = c["memory"].get_recent(days=days, limit=limit)
    if not results:
        console.print("No recent memories.")
        return
    console.print(_memory_table(results, f"Last {days} days"))


@memory.command("stats")
def memory_stats():
    """Tier sizes and importance summary."""
    c = get_components(use_llm=False)
    stats = c["memory"].stats()
    console.print(f"Hot: {stats['hot_count']}/{stats['hot_capacity']} (threshold {stats['hot_threshold']})")
    console.print(f"Cold: {stats['cold_count']}")
    console.print(f"Average importance: {stats['avg_importance']}")
    if stats["by_type"]:
        console.print("\nBy type:")
        for memory_type, count in sorted(stats["by_type"].items()):
            console.print(f"  {memory_type}: {count}")


@memory.command("decay")
def memory_decay():
    """Apply one decay step."""
    c = get_components(use_llm=False)
    counts = c["memory"].apply_decay()
    console.print(f"Decayed {counts['hot']} hot and {counts['cold']} cold memories")


@memory.command("consolidate")
def memory_consolidate():
    """Merge related recent episodic memories into semantic patterns."""
    c = get_components()
    created = c["memory"].consolidate()
    if not created:
        console.print("Nothing to consolidate.")
        return
    for record in created:
        console.print(f"[green]Pattern:[/] {record.content} ({len(record.associations)} members)")


@memory.command("cleanup")
@click.option("--threshold", type=float, default=None, help="Delete below this importance")
@click.option("--days", type=int, default=None, help="...and older than this many days")
def memory_cleanup(threshold, days):
    """Delete old, unimportant memories. Procedural memories are kept."""
    c = get_components(use_llm=False)
    cfg = c["config"].memory
    deleted = c["memory"].cleanup(
        importance_threshold=threshold if threshold is not None else cfg.cleanup_importance,
        days_old=days if days is not None else cfg.cleanup_days,
    )
    console.print(f"Deleted {deleted} memories")
