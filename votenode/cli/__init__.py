"""
Votenode CLI: Package init.

Re-exports the main CLI group and shared utilities.
"""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console

from votenode import __version__, config

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def run_async(coro):
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)


def parse_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError as e:
        raise click.BadParameter(f"not a hex string: {value}") from e


# ─── Main Group ──────────────────────────────────────────────────


@click.group()
@click.version_option(__version__, prog_name="votenode")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """votenode: chain sync, verifiable census and vote packages."""
    setup_logging(verbose)


# ─── Register all sub-modules ───────────────────────────────────
from votenode.cli.census_cmds import census  # noqa: E402
from votenode.cli.process_cmds import process, votes  # noqa: E402
from votenode.cli.sync_cmds import sync  # noqa: E402

cli.add_command(census)
cli.add_command(process)
cli.add_command(votes)
cli.add_command(sync)


if __name__ == "__main__":
    cli()
