"""
Rollup Read Model Types

Core data structures for the rollup side of the bridge indexer.

Defines:
  - MessageDirection / MessageStatus / LifecycleStatus enums
  - BridgeMessage, LifecycleTransaction, Batch, Execution records
  - UnconfirmedRollupBlock rows returned by range scans
  - ConfirmationRange and ConfirmationGap for confirmation gap detection
  - Lookup, the tri-state result (found / not found / inconsistent)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar

from ..exceptions import InvalidArgumentError

T = TypeVar("T")


class MessageDirection(str, Enum):
    """Direction of a bridge message."""
    TO_L2   = "to_l2"
    FROM_L2 = "from_l2"

    @classmethod
    def parse(cls, value) -> "MessageDirection":
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Unknown message direction: {value!r}") from None


class MessageStatus(str, Enum):
    """Processing status of a bridge message."""
    INITIATED = "initiated"
    SENT      = "sent"
    CONFIRMED = "confirmed"
    RELAYED   = "relayed"

    @classmethod
    def parse(cls, value) -> "MessageStatus":
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Unknown message status: {value!r}") from None


class LifecycleStatus(str, Enum):
    """Finality of an L1 lifecycle transaction."""
    UNFINALIZED = "unfinalized"
    FINALIZED   = "finalized"


# ══════════════════════════════════════════════════════════════════════
#  RECORDS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BridgeMessage:
    """
    A cross-chain message.

    Attributes:
        direction: to_l2 or from_l2
        message_id: Discovery order within the direction
        originating_tx_blocknum: Block of the originating transaction (L1 for
            to_l2, rollup for from_l2), set once that event is indexed
        completion_tx_hash: Hash of the transaction completing the message
        status: Processing status
    """
    direction: MessageDirection
    message_id: int
    status: MessageStatus
    originating_tx_blocknum: Optional[int] = None
    originating_tx_hash: Optional[str] = None
    completion_tx_hash: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BridgeMessage":
        return cls(
            direction=MessageDirection(row["direction"]),
            message_id=row["message_id"],
            status=MessageStatus(row["status"]),
            originating_tx_blocknum=row["originating_tx_blocknum"],
            originating_tx_hash=row["originating_tx_hash"],
            completion_tx_hash=row["completion_tx_hash"],
        )


@dataclass(frozen=True)
class LifecycleTransaction:
    """An L1 transaction committing a batch, confirming blocks or executing a message."""
    id: int
    hash: str
    block: int
    timestamp: Optional[int]
    status: LifecycleStatus

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LifecycleTransaction":
        return cls(
            id=row["id"],
            hash=row["hash"],
            block=row["block"],
            timestamp=row["timestamp"],
            status=LifecycleStatus(row["status"]),
        )


@dataclass(frozen=True)
class Batch:
    """
    A committed range of rollup blocks.

    ``commit_transaction`` is attached by readers that resolve the commit;
    a batch only exists once its commitment reached L1.
    """
    number: int
    tx_count: int
    start_block: int
    end_block: int
    before_acc: str
    after_acc: str
    commit_id: int
    commit_transaction: Optional[LifecycleTransaction] = None

    def __post_init__(self):
        if self.end_block < self.start_block:
            raise ValueError("end_block must not precede start_block")

    def contains(self, block_number: int) -> bool:
        return self.start_block <= block_number <= self.end_block

    @classmethod
    def from_row(cls, row: Mapping[str, Any],
                 commit_transaction: Optional[LifecycleTransaction] = None) -> "Batch":
        return cls(
            number=row["number"],
            tx_count=row["tx_count"],
            start_block=row["start_block"],
            end_block=row["end_block"],
            before_acc=row["before_acc"],
            after_acc=row["after_acc"],
            commit_id=row["commit_id"],
            commit_transaction=commit_transaction,
        )


@dataclass(frozen=True)
class Execution:
    """Rollup message executed on L1 by a lifecycle transaction."""
    message_id: int
    execution_id: int
    execution_transaction: Optional[LifecycleTransaction] = None


@dataclass(frozen=True)
class UnconfirmedRollupBlock:
    batch_number: int
    block_number: int
    hash: str


# ══════════════════════════════════════════════════════════════════════
#  CONFIRMATION GAPS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ConfirmationRange:
    """Rollup blocks confirmed by one confirmation transaction."""
    confirm_id: int
    min_block: int
    max_block: int

    def __post_init__(self):
        if self.max_block < self.min_block:
            raise ValueError("max_block must not precede min_block")


@dataclass(frozen=True)
class ConfirmationGap:
    """
    The most recent break in confirmed rollup blocks.

    Attributes:
        previous_l1_block: L1 block of the confirmation preceding the gap, or
            None when the gap lies before the first known confirmation
        current_l1_block: L1 block of the confirmation following the gap
        first_missing_block: First rollup block without a known confirmation,
            None when the two confirmations overlap
        last_missing_block: Last rollup block without a known confirmation,
            None when the two confirmations overlap
    """
    previous_l1_block: Optional[int]
    current_l1_block: int
    first_missing_block: Optional[int] = None
    last_missing_block: Optional[int] = None

    @property
    def overlapping(self) -> bool:
        """True when the break is an overlap and no rollup block is missing."""
        return self.first_missing_block is None

    def as_tuple(self):
        return (self.previous_l1_block, self.current_l1_block)


# ══════════════════════════════════════════════════════════════════════
#  TRI-STATE RESULT
# ══════════════════════════════════════════════════════════════════════

class LookupOutcome(Enum):
    FOUND        = "found"
    NOT_FOUND    = "not_found"     # not indexed yet, or never happened
    INCONSISTENT = "inconsistent"  # a reference exists but does not resolve


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """
    Result of a read whose target may legitimately be missing.

    ``NOT_FOUND`` is the normal state of a chain that has not progressed that
    far yet. ``INCONSISTENT`` means a stored record points at something the
    store does not hold, which callers should alert on rather than wait out.
    """
    outcome: LookupOutcome
    value: Optional[T] = None
    detail: str = ""

    @classmethod
    def found(cls, value: T) -> "Lookup[T]":
        return cls(LookupOutcome.FOUND, value)

    @classmethod
    def not_found(cls) -> "Lookup[T]":
        return cls(LookupOutcome.NOT_FOUND)

    @classmethod
    def inconsistent(cls, detail: str) -> "Lookup[T]":
        return cls(LookupOutcome.INCONSISTENT, None, detail)

    @property
    def is_found(self) -> bool:
        return self.outcome is LookupOutcome.FOUND

    @property
    def is_not_found(self) -> bool:
        return self.outcome is LookupOutcome.NOT_FOUND

    @property
    def is_inconsistent(self) -> bool:
        return self.outcome is LookupOutcome.INCONSISTENT
