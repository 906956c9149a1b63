"""
threadsync CLI entry point.

Usage:
    threadsync threads --agent "Support Agent"
    threadsync topics THREAD_ID
    threadsync watch THREAD_ID --scope billing
    threadsync send THREAD_ID "Hello"
    threadsync simulate
"""

import sys

import click
from loguru import logger

from .. import __version__
from ..settings import settings


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="threadsync")
def cli(verbose: bool):
    """threadsync - conversation sync tools for the agent messaging API."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log.level)


# Register commands
from .commands.threads import register_commands as register_thread_commands
from .commands.watch import register_command as register_watch_command
from .commands.send import register_command as register_send_command
from .commands.simulate import register_command as register_simulate_command

register_thread_commands(cli)
register_watch_command(cli)
register_send_command(cli)
register_simulate_command(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
