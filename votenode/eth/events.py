"""
Voting contract event logs.

The contract emits three events and their payload length alone tells them
apart. Payloads are sequences of big-endian 32-byte words.

    NewProcess       288 bytes (9 words)
    ResultPublished  160 bytes (5 words)
    ProcessClosed     96 bytes (3 words)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Union

from votenode.exceptions import EventDecodeError, UnrecognizedEvent

WORD = 32

EVENT_NEW_PROCESS_LEN = 288  # = 32*9
EVENT_RESULT_PUBLISHED_LEN = 160  # = 32*5
EVENT_PROCESS_CLOSED_LEN = 96  # = 32*3


@dataclass(frozen=True)
class EventLog:
    """A raw contract log as delivered by the chain node."""

    block_number: int
    data: bytes


@dataclass(frozen=True)
class NewProcessEvent:
    process_id: int
    census_root: bytes
    census_size: int
    res_pub_start_block: int
    res_pub_window: int
    min_participation: int
    type: int

    def __str__(self) -> str:
        return (
            f"NewProcess(id={self.process_id}, censusRoot={self.census_root.hex()}, "
            f"censusSize={self.census_size}, resPubStartBlock={self.res_pub_start_block}, "
            f"resPubWindow={self.res_pub_window}, minParticipation={self.min_participation}, "
            f"type={self.type})"
        )


@dataclass(frozen=True)
class ResultPublishedEvent:
    process_id: int
    publisher: str
    receipts_root: bytes
    result: int
    n_votes: int

    def __str__(self) -> str:
        return (
            f"ResultPublished(id={self.process_id}, publisher={self.publisher}, "
            f"receiptsRoot={self.receipts_root.hex()}, result={self.result}, "
            f"nVotes={self.n_votes})"
        )


@dataclass(frozen=True)
class ProcessClosedEvent:
    process_id: int
    caller: str
    success: bool

    def __str__(self) -> str:
        return (
            f"ProcessClosed(id={self.process_id}, caller={self.caller}, "
            f"success={self.success})"
        )


Event = Union[NewProcessEvent, ResultPublishedEvent, ProcessClosedEvent]


# ─── Word decoders ────────────────────────────────────────────────────


def _words(data: bytes) -> List[bytes]:
    return [data[i:i + WORD] for i in range(0, len(data), WORD)]


def _uint(word: bytes, bits: int, name: str) -> int:
    value = int.from_bytes(word, "big")
    if value >> bits:
        raise EventDecodeError(f"{name} does not fit in uint{bits}: 0x{word.hex()}")
    return value


def _address(word: bytes, name: str) -> str:
    if any(word[:12]):
        raise EventDecodeError(f"{name} is not a left-padded address: 0x{word.hex()}")
    return "0x" + word[12:].hex()


def _bool(word: bytes, name: str) -> bool:
    value = int.from_bytes(word, "big")
    if value not in (0, 1):
        raise EventDecodeError(f"{name} is not a bool: 0x{word.hex()}")
    return value == 1


def parse_event_new_process(data: bytes) -> NewProcessEvent:
    w = _words(data)
    return NewProcessEvent(
        process_id=_uint(w[0], 64, "processID"),
        census_root=bytes(w[1]),
        census_size=_uint(w[2], 64, "censusSize"),
        res_pub_start_block=_uint(w[3], 64, "resPubStartBlock"),
        res_pub_window=_uint(w[4], 64, "resPubWindow"),
        min_participation=_uint(w[5], 8, "minParticipation"),
        type=_uint(w[6], 8, "type"),
    )


def parse_event_result_published(data: bytes) -> ResultPublishedEvent:
    w = _words(data)
    return ResultPublishedEvent(
        process_id=_uint(w[0], 64, "processID"),
        publisher=_address(w[1], "publisher"),
        receipts_root=bytes(w[2]),
        result=_uint(w[3], 256, "result"),
        n_votes=_uint(w[4], 64, "nVotes"),
    )


def parse_event_process_closed(data: bytes) -> ProcessClosedEvent:
    w = _words(data)
    return ProcessClosedEvent(
        process_id=_uint(w[0], 64, "processID"),
        caller=_address(w[1], "caller"),
        success=_bool(w[2], "success"),
    )


_PARSERS = {
    EVENT_NEW_PROCESS_LEN: parse_event_new_process,
    EVENT_RESULT_PUBLISHED_LEN: parse_event_result_published,
    EVENT_PROCESS_CLOSED_LEN: parse_event_process_closed,
}


def decode_event(data: bytes) -> Event:
    """Decode an event payload, picking its shape by length.

    Raises:
        UnrecognizedEvent: the length matches no known event.
        EventDecodeError: a field does not fit its declared type.
    """
    data = bytes(data)
    parser = _PARSERS.get(len(data))
    if parser is None:
        raise UnrecognizedEvent(len(data))
    return parser(data)
