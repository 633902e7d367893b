"""Chain synchronization: event decoding, node client and the sync engine."""

from votenode.eth.client import ChainClient, Subscription, Web3ChainClient
from votenode.eth.events import EventLog, decode_event
from votenode.eth.sync import EventSynchronizer

__all__ = [
    "ChainClient",
    "Subscription",
    "Web3ChainClient",
    "EventLog",
    "decode_event",
    "EventSynchronizer",
]
