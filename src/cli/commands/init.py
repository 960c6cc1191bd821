"""Init CLI command."""

import click
from rich.console import Console

from cli.config import DEFAULT_CONFIG_DIR, load_config_model, write_default_config

console = Console()


@click.command()
def init():
    """Create taskweave directories and a default config."""
    config = load_config_model()
    paths = config.paths

    for name in ("records_db", "memory_db", "patterns_db", "log_file"):
        path = getattr(paths, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        console.print(f"[green]✓[/] {name}: {path}")
    paths.chroma_dir.mkdir(parents=True, exist_ok=True)
    console.print(f"[green]✓[/] chroma_dir: {paths.chroma_dir}")

    config_path = DEFAULT_CONFIG_DIR / "config.yaml"
    if write_default_config(config_path):
        console.print(f"[green]✓[/] Created config: {config_path}")
    else:
        console.print(f"[dim]Config exists: {config_path}[/]")

    console.print(
        "\n[bold]Ready![/] Set ANTHROPIC_API_KEY or OPENAI_API_KEY for LLM extraction; "
        "OPENAI_API_KEY also enables embeddings."
    )
