"""Pattern CLI commands."""

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from shared_types import PatternType

console = Console()


def _learner():
    learner = get_components(use_llm=False)["learner"]
    if learner is None:
        console.print("[yellow]Pattern learning is disabled in config.[/]")
    return learner


def _pattern_table(patterns, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Pattern", style="cyan")
    table.add_column("Type")
    table.add_column("Uses", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Conf", justify="right")
    table.add_column("Triggers", style="dim")
    for p in patterns:
        table.add_row(
            p.pattern_name[:40],
            p.pattern_type.value,
            str(p.usage_count),
            f"{p.success_rate:.0%}",
            f"{p.confidence_score:.2f}",
            ", ".join(p.trigger_conditions[:4]),
        )
    return table


@click.group()
def patterns():
    """Learned suggestion patterns."""
    pass


@patterns.command("list")
@click.option("--type", "pattern_type", type=click.Choice([t.value for t in PatternType]))
@click.option("--limit", "-n", default=20)
def patterns_list(pattern_type, limit):
    """Patterns ordered by confidence."""
    learner = _learner()
    if learner is None:
        return
    found = learner.get_patterns(pattern_type, limit=limit)
    if not found:
        console.print("No patterns learned yet.")
        return
    console.print(_pattern_table(found, "Learned patterns"))


@patterns.command("relevant")
@click.argument("context")
@click.option("--limit", "-n", default=5)
def patterns_relevant(context, limit):
    """Patterns whose triggers appear in CONTEXT."""
    learner = _learner()
    if learner is None:
        return
    found = learner.get_relevant_patterns(context, limit=limit)
    if not found:
        console.print("No relevant patterns.")
        return
    console.print(_pattern_table(found, "Relevant patterns"))
