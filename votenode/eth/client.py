"""
Chain node client.

``ChainClient`` is the narrow port the synchronizer consumes. The web3.py
implementation keeps one websocket connection for plain requests and opens
a dedicated one per subscription, so the header and log streams never
share a reader.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, Protocol, TypeVar

from web3 import AsyncWeb3, WebSocketProvider

from votenode.eth.events import EventLog
from votenode.exceptions import ChainConnectionError, SubscriptionError

logger = logging.getLogger("votenode.eth.client")

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Subscription(Protocol[T_co]):
    """Async iterator over a live stream.

    ``__anext__`` raises SubscriptionError for a failed read; the
    subscription stays usable afterwards. Iteration ends when the stream
    is exhausted or closed.
    """

    def __aiter__(self) -> "Subscription[T_co]":
        ...

    async def __anext__(self) -> T_co:
        ...

    async def close(self) -> None:
        ...


class ChainClient(Protocol):
    async def chain_id(self) -> int:
        ...

    async def block_number(self) -> int:
        ...

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[EventLog]:
        ...

    async def subscribe_new_heads(self) -> Subscription[int]:
        ...

    async def subscribe_logs(self, address: str) -> Subscription[EventLog]:
        ...

    async def close(self) -> None:
        ...


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16)
    return int(value)


def _to_event_log(raw: Any) -> EventLog:
    data = raw["data"]
    if isinstance(data, str):
        data = bytes.fromhex(data.removeprefix("0x"))
    return EventLog(block_number=_to_int(raw["blockNumber"]), data=bytes(data))


def _header_number(raw: Any) -> int:
    return _to_int(raw["number"])


class Web3Subscription(Generic[T]):
    """One eth_subscribe stream on its own websocket connection."""

    def __init__(self, w3: AsyncWeb3, subscription_id: Any, formatter: Callable[[Any], T]):
        self._w3 = w3
        self._id = subscription_id
        self._formatter = formatter
        self._stream = None
        self._closed = False

    def __aiter__(self) -> "Web3Subscription[T]":
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        if self._stream is None:
            self._stream = self._w3.socket.process_subscriptions()
        try:
            response = await self._stream.__anext__()
            return self._formatter(response["result"])
        except (StopAsyncIteration, asyncio.CancelledError):
            raise
        except Exception as e:
            # a failed async generator is finished, start a fresh reader next time
            self._stream = None
            raise SubscriptionError(f"subscription {self._id}: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._w3.eth.unsubscribe(self._id)
        except Exception as e:
            logger.warning("Unsubscribe %s failed: %s", self._id, e)
        finally:
            await self._w3.provider.disconnect()


class Web3ChainClient:
    """ChainClient over web3.py's AsyncWeb3 and a websocket endpoint."""

    def __init__(self, eth_url: str):
        self.eth_url = eth_url
        self._w3: Optional[AsyncWeb3] = None

    async def _open(self) -> AsyncWeb3:
        try:
            return await AsyncWeb3(WebSocketProvider(self.eth_url))
        except Exception as e:
            logger.error("Cannot connect to %s: %s", self.eth_url, e)
            raise ChainConnectionError(f"cannot connect to {self.eth_url}: {e}") from e

    async def connect(self) -> None:
        if self._w3 is None:
            self._w3 = await self._open()

    async def _request(self, what: str, call: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        await self.connect()
        try:
            return await call(self._w3)
        except Exception as e:
            raise ChainConnectionError(f"{what} failed: {e}") from e

    async def chain_id(self) -> int:
        return await self._request("eth_chainId", lambda w3: w3.eth.chain_id)

    async def block_number(self) -> int:
        return await self._request("eth_blockNumber", lambda w3: w3.eth.block_number)

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[EventLog]:
        logs = await self._request(
            "eth_getLogs",
            lambda w3: w3.eth.get_logs(
                {
                    "address": AsyncWeb3.to_checksum_address(address),
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            ),
        )
        return [_to_event_log(log) for log in logs]

    async def _subscribe(self, what: str, params: tuple, formatter: Callable[[Any], T]) -> Web3Subscription[T]:
        w3 = await self._open()
        try:
            sub_id = await w3.eth.subscribe(*params)
        except Exception as e:
            await w3.provider.disconnect()
            raise ChainConnectionError(f"cannot subscribe to {what}: {e}") from e
        logger.debug("Subscribed to %s (%s)", what, sub_id)
        return Web3Subscription(w3, sub_id, formatter)

    async def subscribe_new_heads(self) -> Web3Subscription[int]:
        return await self._subscribe("newHeads", ("newHeads",), _header_number)

    async def subscribe_logs(self, address: str) -> Web3Subscription[EventLog]:
        return await self._subscribe(
            "logs",
            ("logs", {"address": AsyncWeb3.to_checksum_address(address)}),
            _to_event_log,
        )

    async def close(self) -> None:
        if self._w3 is not None:
            await self._w3.provider.disconnect()
            self._w3 = None
