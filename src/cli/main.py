"""taskweave command line entry point."""

import sys

import click

from cli.commands import daemon, init, memory, patterns, sync
from cli.config import load_config_model
from cli.logging_config import setup_logging
from cli.utils import console


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
def cli(verbose: bool, json_logs: bool):
    """taskweave - reconcile incoming mail and documents with your records."""
    try:
        config = load_config_model()
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    setup_logging(
        json_mode=json_logs or config.logging.json_mode,
        level="DEBUG" if verbose else config.logging.level,
        log_file=config.paths.log_file,
    )


cli.add_command(sync)
cli.add_command(memory)
cli.add_command(patterns)
cli.add_command(daemon)
cli.add_command(init)


if __name__ == "__main__":
    cli()
