"""CLI commands: census add, info, proof, close."""

from __future__ import annotations

import sys

import click
from rich.panel import Panel

from votenode import config
from votenode.census import Census
from votenode.exceptions import CensusError
from votenode.cli import console, parse_hex


def _census_db_option(f):
    return click.option(
        "--census-db",
        default=None,
        help="Census store path (default: $VOTENODE_CENSUS_DB)",
    )(f)


def _open(census_db: str | None) -> Census:
    return Census(census_db or config.CENSUS_DB_PATH)


@click.group()
def census():
    """Manage the verifiable census."""
    pass


@census.command("add")
@click.argument("entries", nargs=-1, required=True)
@_census_db_option
def census_add(entries, census_db):
    """Enroll identities given as PUBKEY_HEX[:WEIGHT]."""
    identities, weights = [], []
    for entry in entries:
        pk, _, weight = entry.partition(":")
        identities.append(parse_hex(pk))
        try:
            weights.append(int(weight) if weight else 0)
        except ValueError as e:
            raise click.BadParameter(f"weight is not an integer: {entry}") from e

    try:
        invalids = _open(census_db).add_identities(identities, weights)
    except (CensusError, ValueError) as e:
        console.print(f"[red]✗ {e}[/]")
        sys.exit(1)

    console.print(f"[green]✓[/] Added {len(identities) - len(invalids)} identities.")
    for pk in invalids:
        console.print(f"  [yellow]⚠ already enrolled:[/] {pk.hex()}")


@census.command("info")
@_census_db_option
def census_info(census_db):
    """Show census size, status and root."""
    ci = _open(census_db).info()
    console.print(
        Panel(
            f"[bold cyan]Size:[/] {ci.size}\n"
            f"[bold cyan]Closed:[/] {ci.closed}\n"
            f"[bold cyan]Root:[/] {ci.root.hex()}"
            + (f"\n[bold red]Last error:[/] {ci.err_msg}" if ci.err_msg else ""),
            title="Census",
            border_style="cyan",
        )
    )


@census.command("proof")
@click.argument("pubkey")
@_census_db_option
def census_proof(pubkey, census_db):
    """Print the inclusion proof of an enrolled identity."""
    try:
        cp = _open(census_db).get_proof(parse_hex(pubkey))
    except (CensusError, ValueError) as e:
        console.print(f"[red]✗ {e}[/]")
        sys.exit(1)
    console.print(f"index:  {cp.index}")
    console.print(f"weight: {cp.weight}")
    console.print(f"proof:  {cp.merkle_proof.hex()}")


@census.command("close")
@_census_db_option
def census_close(census_db):
    """Close the census; no identities can be added afterwards."""
    root = _open(census_db).close()
    console.print(f"[green]✓ Census closed.[/] Root: [bold]{root.hex()}[/]")
