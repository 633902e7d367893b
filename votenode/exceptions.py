"""
Votenode Custom Exceptions.

Typed error hierarchy so callers can tell "already voted" from "process
unknown" from "census closed", and so SQLite driver details never leak
through the store boundary.
"""


class VoteNodeError(Exception):
    """Base exception for all votenode errors."""


class DatabaseTransactionError(VoteNodeError):
    """Raised when a database transaction fails and has been rolled back."""


# ─── Process registry / vote store ────────────────────────────────────


class ProcessNotFound(VoteNodeError):
    """Raised when a process id is not known to the store."""


class ProcessExists(VoteNodeError):
    """Raised when storing a process whose id is already stored."""


class DuplicateVote(VoteNodeError):
    """Raised when (index, identity, process id) already has a vote package."""


# ─── Census ───────────────────────────────────────────────────────────


class CensusError(VoteNodeError):
    """Base exception for census errors."""


class CensusClosed(CensusError):
    """Raised when enrolling identities into a closed census."""


class IdentityNotFound(CensusError):
    """Raised when an identity was never enrolled in the census."""


# ─── Chain events ─────────────────────────────────────────────────────


class EventError(VoteNodeError):
    """Base exception for contract event log errors."""


class UnrecognizedEvent(EventError):
    """Raised when an event log payload has an unknown length."""

    def __init__(self, length: int, message: str | None = None):
        self.length = length
        super().__init__(message or f"unrecognized event log with length {length}")


class EventDecodeError(EventError):
    """Raised when a recognized event payload holds malformed fields."""


class ChainConnectionError(VoteNodeError):
    """Raised when the chain node cannot be reached or subscribed to."""


class SubscriptionError(VoteNodeError):
    """Raised by a live subscription when reading from it failed."""
