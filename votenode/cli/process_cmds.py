"""CLI commands: process list, votes list."""

from __future__ import annotations

import click
from rich.table import Table

from votenode.cli import console, run_async
from votenode.db import SQLiteStore


def _db_option(f):
    return click.option("--db", default=None, help="Database path (default: $VOTENODE_DB)")(f)


@click.group()
def process():
    """Inspect synchronized voting processes."""
    pass


@process.command("list")
@_db_option
def process_list(db):
    """List processes and their status."""

    async def _list():
        async with SQLiteStore(db) as store:
            return await store.read_processes()

    processes = run_async(_list())
    if not processes:
        console.print("[dim]No processes synchronized yet.[/]")
        return

    table = Table(title="Processes")
    table.add_column("ID", justify="right")
    table.add_column("Status")
    table.add_column("Census size", justify="right")
    table.add_column("Created at block", justify="right")
    table.add_column("Results from block", justify="right")
    for p in processes:
        table.add_row(
            str(p.id),
            p.status.name,
            str(p.census_size),
            str(p.eth_block_num),
            str(p.res_pub_start_block),
        )
    console.print(table)


@click.group()
def votes():
    """Inspect stored vote packages."""
    pass


@votes.command("list")
@click.argument("process_id", type=int)
@_db_option
def votes_list(process_id, db):
    """List the vote packages of a process, by census index."""

    async def _list():
        async with SQLiteStore(db) as store:
            return await store.read_vote_packages_by_process_id(process_id)

    packages = run_async(_list())
    table = Table(title=f"Votes of process {process_id}")
    table.add_column("Index", justify="right")
    table.add_column("Public key")
    table.add_column("Weight", justify="right")
    table.add_column("Inserted")
    for vp in packages:
        table.add_row(
            str(vp.census_proof.index),
            vp.census_proof.identity.hex(),
            str(vp.census_proof.weight),
            vp.inserted_at or "",
        )
    console.print(table)
    console.print(f"[dim]{len(packages)} vote packages[/]")
