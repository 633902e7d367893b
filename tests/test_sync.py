"""
Tests for the event synchronizer against an in-memory chain node.
"""

import asyncio
import logging

import pytest

from votenode.eth.sync import EventSynchronizer
from votenode.exceptions import (
    ChainConnectionError,
    ProcessExists,
    ProcessNotFound,
    SubscriptionError,
    UnrecognizedEvent,
)
from votenode.types import ProcessStatus

from fakes import (
    FakeChain,
    log_at,
    new_process_data,
    process_closed_data,
    result_published_data,
)

CONTRACT = "0x" + "ee" * 20


def _sync(chain, store):
    return EventSynchronizer(chain, store, CONTRACT, retry_delay=0)


# ─── Single events ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_new_process_event_records_block_number(store):
    s = _sync(FakeChain(), store)
    await s.process_event_log(log_at(42, new_process_data(5, census_size=9)))

    p = await store.read_process(5)
    assert p.eth_block_num == 42
    assert p.census_size == 9
    assert p.status == ProcessStatus.ON


@pytest.mark.asyncio
async def test_repeated_new_process_is_rejected(store):
    s = _sync(FakeChain(), store)
    await s.process_event_log(log_at(1, new_process_data(5)))
    with pytest.raises(ProcessExists, match="blocknum: 2"):
        await s.process_event_log(log_at(2, new_process_data(5)))
    assert (await store.read_process(5)).eth_block_num == 1


@pytest.mark.asyncio
async def test_process_closed_event(store):
    s = _sync(FakeChain(), store)
    await s.process_event_log(log_at(1, new_process_data(5)))
    await s.process_event_log(log_at(2, process_closed_data(5)))
    assert (await store.read_process(5)).status == ProcessStatus.CONTRACT_CLOSED

    with pytest.raises(ProcessNotFound):
        await s.process_event_log(log_at(3, process_closed_data(6)))


@pytest.mark.asyncio
async def test_result_published_changes_nothing(store):
    s = _sync(FakeChain(), store)
    await s.process_event_log(log_at(1, new_process_data(5)))
    await s.process_event_log(log_at(2, result_published_data(5)))
    assert (await store.read_process(5)).status == ProcessStatus.ON


@pytest.mark.asyncio
async def test_unrecognized_event_reports_block_and_payload(store):
    s = _sync(FakeChain(), store)
    with pytest.raises(UnrecognizedEvent) as exc:
        await s.process_event_log(log_at(8, b"\xab" * 64))
    assert exc.value.length == 64
    assert "blocknum: 8" in str(exc.value)
    assert "ab" * 64 in str(exc.value)


# ─── History ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_sync_history_applies_events_and_freezes(store):
    chain = FakeChain(
        height=600,
        logs=[
            log_at(10, new_process_data(1, res_pub_start_block=500)),
            log_at(20, new_process_data(2, res_pub_start_block=900)),
            log_at(30, new_process_data(3, res_pub_start_block=100)),
            log_at(40, process_closed_data(3)),
        ],
    )
    s = _sync(chain, store)

    applied = await s.sync_history(0)

    assert applied == 4
    assert chain.get_logs_calls == [(CONTRACT, 0, 600)]
    assert (await store.read_process(1)).status == ProcessStatus.FROZEN
    assert (await store.read_process(2)).status == ProcessStatus.ON
    assert (await store.read_process(3)).status == ProcessStatus.CONTRACT_CLOSED


@pytest.mark.asyncio
async def test_sync_history_skips_bad_events(store, caplog):
    chain = FakeChain(
        height=50,
        logs=[
            log_at(10, new_process_data(1)),
            log_at(11, b"\x00" * 33),
            log_at(12, new_process_data(1)),
            log_at(13, new_process_data(2)),
        ],
    )
    s = _sync(chain, store)

    with caplog.at_level(logging.ERROR, logger="votenode.eth.sync"):
        applied = await s.sync_history(0)

    assert applied == 2
    assert [p.id for p in await store.read_processes()] == [1, 2]
    assert "unrecognized event log with length 33" in caplog.text


@pytest.mark.asyncio
async def test_sync_history_propagates_chain_errors(store):
    chain = FakeChain(height=10)
    chain.block_number_error = ChainConnectionError("node down")
    with pytest.raises(ChainConnectionError):
        await _sync(chain, store).sync_history(0)


# ─── Full sync ───────────────────────────────────────────────────────


async def _eventually(check, attempts=200):
    for _ in range(attempts):
        if await check():
            return
        await asyncio.sleep(0.01)
    pytest.fail("condition not reached")


async def _has_status(store, process_id, status):
    try:
        return (await store.read_process(process_id)).status == status
    except ProcessNotFound:
        return False


@pytest.mark.asyncio
async def test_full_sync_backfills_then_follows_chain(store):
    await store.update_last_sync_block_num(5)
    chain = FakeChain(
        height=20,
        logs=[
            log_at(3, new_process_data(99)),
            log_at(8, new_process_data(1, res_pub_start_block=15)),
        ],
    )
    s = _sync(chain, store)

    chain.log_stream.push(
        log_at(21, new_process_data(2, res_pub_start_block=30)),
        log_at(21, new_process_data(3, res_pub_start_block=40)),
        log_at(22, process_closed_data(3)),
    )
    chain.log_stream.end()
    running = asyncio.create_task(s.sync())

    await _eventually(lambda: _has_status(store, 1, ProcessStatus.FROZEN))
    await _eventually(lambda: _has_status(store, 3, ProcessStatus.CONTRACT_CLOSED))
    assert await _has_status(store, 2, ProcessStatus.ON)

    chain.heads.push(21, SubscriptionError("dropped"), 30, 35)
    chain.heads.end()
    await asyncio.wait_for(running, timeout=5)

    assert s.chain_id == 1337
    assert chain.get_logs_calls == [(CONTRACT, 5, 20)]
    with pytest.raises(ProcessNotFound):
        await store.read_process(99)
    assert (await store.read_process(2)).status == ProcessStatus.FROZEN
    assert (await store.read_process(3)).status == ProcessStatus.CONTRACT_CLOSED
    assert await store.get_last_sync_block_num() == 35
    assert chain.heads.closed and chain.log_stream.closed


@pytest.mark.asyncio
async def test_full_sync_from_explicit_block(store):
    await store.update_last_sync_block_num(100)
    chain = FakeChain(height=150, logs=[log_at(2, new_process_data(1))])
    chain.heads.end()
    chain.log_stream.end()

    await asyncio.wait_for(_sync(chain, store).sync(from_block=0), timeout=5)

    assert chain.get_logs_calls == [(CONTRACT, 0, 150)]
    assert (await store.read_process(1)).eth_block_num == 2


@pytest.mark.asyncio
async def test_subscribe_failure_aborts_sync(store):
    chain = FakeChain(height=10)
    chain.subscribe_error = RuntimeError("connection refused")

    with pytest.raises(ChainConnectionError, match="connection refused"):
        await _sync(chain, store).sync()
    assert chain.get_logs_calls == []


@pytest.mark.asyncio
async def test_backfill_failure_stops_live_loops(store):
    chain = FakeChain(height=10)
    chain.block_number_error = ChainConnectionError("node down")

    with pytest.raises(ChainConnectionError):
        await asyncio.wait_for(_sync(chain, store).sync(), timeout=5)
    assert chain.heads.closed and chain.log_stream.closed


@pytest.mark.asyncio
async def test_stop_ends_a_running_sync(store):
    chain = FakeChain(height=0)
    s = _sync(chain, store)

    running = asyncio.create_task(s.sync())
    chain.heads.push(1)
    for _ in range(100):
        if await store.get_last_sync_block_num() == 1:
            break
        await asyncio.sleep(0.01)
    assert await store.get_last_sync_block_num() == 1

    await s.stop()
    await asyncio.wait_for(running, timeout=5)
    assert chain.heads.closed and chain.log_stream.closed


# ─── Out-of-range process ids ────────────────────────────────────────


@pytest.mark.asyncio
async def test_history_skips_closing_an_unstorable_process_id(store):
    chain = FakeChain(
        height=50,
        logs=[
            log_at(10, process_closed_data(2**63)),
            log_at(11, new_process_data(1)),
        ],
    )

    assert await _sync(chain, store).sync_history(0) == 1
    assert (await store.read_process(1)).eth_block_num == 11


@pytest.mark.asyncio
async def test_live_stream_survives_an_unstorable_process_id(store):
    chain = FakeChain(height=0)
    chain.log_stream.push(
        log_at(1, process_closed_data(2**64 - 1)),
        log_at(2, new_process_data(2**64 - 1)),
        log_at(3, new_process_data(7)),
    )
    chain.log_stream.end()
    chain.heads.end()

    await asyncio.wait_for(_sync(chain, store).sync(), timeout=5)

    assert [p.id for p in await store.read_processes()] == [7]
