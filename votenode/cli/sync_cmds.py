"""CLI command: sync."""

from __future__ import annotations

import sys

import click

from votenode import config
from votenode.cli import console, run_async
from votenode.db import SQLiteStore
from votenode.eth import EventSynchronizer, Web3ChainClient
from votenode.exceptions import VoteNodeError


@click.command()
@click.option("--eth-url", default=None, help="Websocket endpoint of the chain node")
@click.option("--contract", default=None, help="Voting contract address")
@click.option("--db", default=None, help="Database path (default: $VOTENODE_DB)")
@click.option(
    "--from-block",
    type=int,
    default=None,
    help="Block to start from (default: last synchronized block)",
)
def sync(eth_url, contract, db, from_block):
    """Backfill contract events and keep following the chain."""
    eth_url = eth_url or config.ETH_URL
    contract = contract or config.CONTRACT_ADDR
    if not contract:
        raise click.UsageError("--contract or VOTENODE_CONTRACT_ADDR is required")

    async def _sync():
        chain = Web3ChainClient(eth_url)
        try:
            async with SQLiteStore(db) as store:
                synchronizer = EventSynchronizer(chain, store, contract)
                chain_id = await synchronizer.connect()
                console.print(f"[bold blue]Syncing chain {chain_id}[/] contract {contract}")
                await synchronizer.sync(from_block)
        finally:
            await chain.close()

    try:
        run_async(_sync())
    except VoteNodeError as e:
        console.print(f"[red]✗ {e}[/]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/]")
