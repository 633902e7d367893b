"""
Tests for the web3 chain client: raw response conversion, subscription
reads and request error translation, against stub web3 objects.
"""

from types import SimpleNamespace

import pytest
from hexbytes import HexBytes

from votenode.eth.client import (
    Web3ChainClient,
    Web3Subscription,
    _header_number,
    _to_event_log,
)
from votenode.eth.events import EventLog
from votenode.exceptions import ChainConnectionError, SubscriptionError

from fakes import process_closed_data

CONTRACT = "0x" + "ee" * 20


class StubSocket:
    """Each process_subscriptions() call replays the next batch; an
    Exception in a batch fails the read."""

    def __init__(self, *batches):
        self.batches = list(batches)
        self.readers = 0

    def process_subscriptions(self):
        self.readers += 1
        batch = self.batches.pop(0)

        async def reader():
            for item in batch:
                if isinstance(item, Exception):
                    raise item
                yield item

        return reader()


class StubEth:
    def __init__(self, chain_id=1337, logs=None, error=None):
        self._chain_id = chain_id
        self.logs = logs or []
        self.error = error
        self.log_queries = []
        self.unsubscribed = []

    async def _value(self, value):
        if self.error:
            raise self.error
        return value

    @property
    def chain_id(self):
        return self._value(self._chain_id)

    @property
    def block_number(self):
        return self._value(123)

    def get_logs(self, params):
        self.log_queries.append(params)
        return self._value(self.logs)

    async def unsubscribe(self, sub_id):
        self.unsubscribed.append(sub_id)
        return True


class StubProvider:
    def __init__(self):
        self.disconnected = 0

    async def disconnect(self):
        self.disconnected += 1


def stub_w3(socket=None, eth=None):
    return SimpleNamespace(socket=socket, eth=eth or StubEth(), provider=StubProvider())


# ─── Raw response conversion ─────────────────────────────────────────


def test_event_log_from_hex_string():
    data = process_closed_data(3)
    log = _to_event_log({"blockNumber": "0x1f", "data": "0x" + data.hex()})
    assert log == EventLog(block_number=31, data=data)


def test_event_log_from_hexbytes():
    data = process_closed_data(3)
    log = _to_event_log({"blockNumber": 31, "data": HexBytes(data)})
    assert log.block_number == 31
    assert log.data == data
    assert type(log.data) is bytes


def test_header_number():
    assert _header_number({"number": "0x10"}) == 16
    assert _header_number({"number": 17}) == 17


# ─── Subscriptions ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_failed_read_restarts_the_reader():
    socket = StubSocket(
        [{"result": {"number": "0x10"}}, RuntimeError("socket closed")],
        [{"result": {"number": 17}}],
    )
    sub = Web3Subscription(stub_w3(socket), "0xsub", _header_number)

    assert await sub.__anext__() == 16
    with pytest.raises(SubscriptionError, match="socket closed"):
        await sub.__anext__()
    assert await sub.__anext__() == 17
    assert socket.readers == 2


@pytest.mark.asyncio
async def test_close_unsubscribes_and_ends_iteration():
    w3 = stub_w3(StubSocket([]))
    sub = Web3Subscription(w3, "0xsub", _header_number)

    await sub.close()
    await sub.close()

    assert w3.eth.unsubscribed == ["0xsub"]
    assert w3.provider.disconnected == 1
    with pytest.raises(StopAsyncIteration):
        await sub.__anext__()


# ─── Requests ────────────────────────────────────────────────────────


def _client(monkeypatch, eth):
    client = Web3ChainClient("ws://node.invalid:8546")
    w3 = stub_w3(eth=eth)

    async def fake_open():
        return w3

    monkeypatch.setattr(client, "_open", fake_open)
    return client, w3


@pytest.mark.asyncio
async def test_requests_go_through_one_connection(monkeypatch):
    data = process_closed_data(9)
    eth = StubEth(chain_id=5, logs=[{"blockNumber": 40, "data": HexBytes(data)}])
    client, w3 = _client(monkeypatch, eth)

    assert await client.chain_id() == 5
    assert await client.block_number() == 123
    assert await client.get_logs(CONTRACT, 10, 50) == [EventLog(40, data)]
    assert eth.log_queries[0]["fromBlock"] == 10
    assert eth.log_queries[0]["toBlock"] == 50
    assert eth.log_queries[0]["address"].lower() == CONTRACT

    await client.close()
    assert w3.provider.disconnected == 1


@pytest.mark.asyncio
async def test_request_failures_become_connection_errors(monkeypatch):
    client, _ = _client(monkeypatch, StubEth(error=TimeoutError("no answer")))

    with pytest.raises(ChainConnectionError, match="eth_chainId failed"):
        await client.chain_id()
    with pytest.raises(ChainConnectionError, match="eth_getLogs failed"):
        await client.get_logs(CONTRACT, 0, 1)
