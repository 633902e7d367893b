"""
Event Synchronization Engine.

Follows the voting contract from the last checkpoint onwards:

1. Live header stream: every new block advances the sync checkpoint and
   freezes the processes whose results publishing start block is reached.
2. Live log stream: every contract event is decoded and applied.
3. Historical backfill: one ranged log query from the checkpoint to the
   chain height at startup, applied in chain order, then a freeze sweep.

The three run concurrently with no ordering between them. Applying an
event twice is harmless: status updates are idempotent and a repeated
NewProcess is rejected by the store as a duplicate.

Chain reorganizations are not handled: once seen, an event is final.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from votenode import config
from votenode.eth.client import ChainClient, Subscription
from votenode.eth.events import (
    EventLog,
    NewProcessEvent,
    ProcessClosedEvent,
    ResultPublishedEvent,
    decode_event,
)
from votenode.exceptions import (
    ChainConnectionError,
    EventDecodeError,
    SubscriptionError,
    UnrecognizedEvent,
    VoteNodeError,
)
from votenode.types import ProcessStatus

logger = logging.getLogger("votenode.eth.sync")


class EventSynchronizer:
    """Keeps the process registry in step with the voting contract."""

    def __init__(
        self,
        chain: ChainClient,
        store,
        contract_addr: str,
        retry_delay: Optional[float] = None,
    ):
        self.chain = chain
        self.store = store
        self.contract_addr = contract_addr
        self.chain_id: Optional[int] = None
        self.retry_delay = (
            config.SUBSCRIPTION_RETRY_DELAY if retry_delay is None else retry_delay
        )
        self._tasks: List[asyncio.Task] = []

    async def connect(self) -> int:
        """Fetch the chain id, checking the node is reachable."""
        try:
            self.chain_id = await self.chain.chain_id()
        except ChainConnectionError:
            raise
        except Exception as e:
            raise ChainConnectionError(f"cannot fetch chain id: {e}") from e
        logger.info("Connected to chain %d", self.chain_id)
        return self.chain_id

    async def sync(self, from_block: Optional[int] = None) -> None:
        """Backfill from from_block (default: the stored checkpoint) and
        keep following the chain live.

        Returns once both live streams end. Raises ChainConnectionError or
        DatabaseTransactionError when setup or backfill cannot proceed;
        failures on single events and blocks are logged and skipped.
        """
        if self.chain_id is None:
            await self.connect()
        if from_block is None:
            from_block = await self.store.get_last_sync_block_num()

        # subscribe before backfilling so nothing falls between the two
        headers = await self._subscribe("new block headers", self.chain.subscribe_new_heads())
        try:
            logs = await self._subscribe(
                "contract logs", self.chain.subscribe_logs(self.contract_addr)
            )
        except ChainConnectionError:
            await headers.close()
            raise

        tasks = [
            asyncio.create_task(self._sync_blocks_live(headers), name="sync-blocks-live"),
            asyncio.create_task(self._sync_events_live(logs), name="sync-events-live"),
        ]
        self._tasks = tasks
        try:
            await self.sync_history(from_block)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result
        finally:
            await self.stop()
            await headers.close()
            await logs.close()

    async def stop(self) -> None:
        """Cancel the live loops."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _subscribe(self, what: str, pending) -> Subscription:
        try:
            return await pending
        except ChainConnectionError:
            logger.error("Cannot subscribe to %s", what)
            raise
        except Exception as e:
            logger.error("Cannot subscribe to %s: %s", what, e)
            raise ChainConnectionError(f"cannot subscribe to {what}: {e}") from e

    # ─── Live loops ───────────────────────────────────────────────

    async def _sync_blocks_live(self, headers: Subscription) -> None:
        while True:
            try:
                block_num = await anext(headers)
            except StopAsyncIteration:
                logger.info("Block header subscription ended")
                return
            except SubscriptionError as e:
                logger.error("Block header subscription: %s", e)
                await asyncio.sleep(self.retry_delay)
                continue

            logger.debug("New eth block received: %d", block_num)
            try:
                await self.store.update_last_sync_block_num(block_num)
                await self.store.froze_processes_by_current_block_num(block_num)
            except (VoteNodeError, ValueError) as e:
                logger.error("Block %d: %s", block_num, e)

    async def _sync_events_live(self, logs: Subscription) -> None:
        while True:
            try:
                event_log = await anext(logs)
            except StopAsyncIteration:
                logger.info("Contract log subscription ended")
                return
            except SubscriptionError as e:
                logger.error("Contract log subscription: %s", e)
                await asyncio.sleep(self.retry_delay)
                continue

            try:
                await self.process_event_log(event_log)
            except (VoteNodeError, ValueError) as e:
                logger.error("%s", e)

    # ─── History ──────────────────────────────────────────────────

    async def sync_history(self, start_block: int) -> int:
        """Apply every contract event from start_block to the current chain
        height, then freeze processes at that height.

        Returns the number of events applied.
        """
        curr_block_num = await self.chain.block_number()
        logger.debug("[SyncHistory] blocks from: %d, to: %d", start_block, curr_block_num)

        logs = await self.chain.get_logs(self.contract_addr, start_block, curr_block_num)
        applied = 0
        for event_log in logs:
            try:
                await self.process_event_log(event_log)
                applied += 1
            except (VoteNodeError, ValueError) as e:
                logger.error("%s", e)

        # TODO re-open processes with res_pub_start_block > curr_block_num
        # once reorgs are handled
        await self.store.froze_processes_by_current_block_num(curr_block_num)
        logger.info(
            "History synced up to block %d (%d/%d events applied)",
            curr_block_num,
            applied,
            len(logs),
        )
        return applied

    # ─── Events ───────────────────────────────────────────────────

    async def process_event_log(self, event_log: EventLog) -> None:
        """Decode one contract log and apply it to the store."""
        try:
            event = decode_event(event_log.data)
        except UnrecognizedEvent as e:
            raise UnrecognizedEvent(
                e.length,
                f"blocknum: {event_log.block_number}, unrecognized event log "
                f"with length {e.length}: {event_log.data.hex()}",
            ) from e
        except EventDecodeError as e:
            raise EventDecodeError(
                f"blocknum: {event_log.block_number}, error parsing event log: "
                f"{event_log.data.hex()}, err: {e}"
            ) from e

        logger.debug("Event: (blocknum: %d) %s", event_log.block_number, event)

        if isinstance(event, NewProcessEvent):
            try:
                await self.store.store_process(
                    event.process_id,
                    event.census_root,
                    event.census_size,
                    event_log.block_number,
                    event.res_pub_start_block,
                    event.res_pub_window,
                    event.min_participation,
                    event.type,
                )
            except (VoteNodeError, ValueError) as e:
                raise type(e)(
                    f"blocknum: {event_log.block_number}, error storing new process: "
                    f"{event_log.data.hex()}, err: {e}"
                ) from e
        elif isinstance(event, ProcessClosedEvent):
            try:
                await self.store.update_process_status(
                    event.process_id, ProcessStatus.CONTRACT_CLOSED
                )
            except (VoteNodeError, ValueError) as e:
                raise type(e)(
                    f"blocknum: {event_log.block_number}, error updating process "
                    f"status: {event_log.data.hex()}, err: {e}"
                ) from e
        elif isinstance(event, ResultPublishedEvent):
            # results are tallied elsewhere, nothing to store
            pass
