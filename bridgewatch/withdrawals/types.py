"""
Withdrawal Types

Records read from the store for L2-to-L1 withdrawals, the policy constants
that drive their timing, and the derived status values.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from ..constants import DEFAULT_CHALLENGE_PERIOD_SECONDS, GAME_STATUS_DEFENDER_WINS
from ..encoding import external_nonce, nonce_from_db, timestamp_from_db
from ..exceptions import ConfigurationError


class WithdrawalStatus(str, Enum):
    """Lifecycle of a withdrawal as shown to users."""
    WAITING_FOR_STATE_ROOT      = "Waiting for state root"
    READY_TO_PROVE              = "Ready to prove"
    WAITING_FOR_GAME_TO_RESOLVE = "Waiting a game to resolve"
    IN_CHALLENGE_PERIOD         = "In challenge period"
    READY_FOR_RELAY             = "Ready for relay"
    RELAYED                     = "Relayed"

    def __str__(self) -> str:
        return self.value


class WithdrawalEventType(str, Enum):
    PROVEN    = "WithdrawalProven"
    FINALIZED = "WithdrawalFinalized"


@dataclass(frozen=True)
class Withdrawal:
    """
    A withdrawal initiated on L2.

    ``msg_nonce`` is the raw on-chain value including the version bits;
    use ``nonce`` for the number users see.
    """
    msg_nonce: int
    hash: str
    l2_transaction_hash: str
    l2_block_number: int

    @property
    def nonce(self) -> int:
        return external_nonce(self.msg_nonce)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Withdrawal":
        return cls(
            msg_nonce=nonce_from_db(row["msg_nonce"]),
            hash=row["hash"],
            l2_transaction_hash=row["l2_transaction_hash"],
            l2_block_number=row["l2_block_number"],
        )


@dataclass(frozen=True)
class WithdrawalEvent:
    withdrawal_hash: str
    l1_event_type: WithdrawalEventType
    l1_timestamp: datetime
    l1_transaction_hash: str
    l1_block_number: int
    game_index: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WithdrawalEvent":
        return cls(
            withdrawal_hash=row["withdrawal_hash"],
            l1_event_type=WithdrawalEventType(row["l1_event_type"]),
            l1_timestamp=timestamp_from_db(row["l1_timestamp"]),
            l1_transaction_hash=row["l1_transaction_hash"],
            l1_block_number=row["l1_block_number"],
            game_index=row["game_index"],
        )


@dataclass(frozen=True)
class DisputeGame:
    """
    A fault-proof dispute game.

    ``extra_data`` is ABI encoded; its first word is the L2 block number the
    game's output root claims.
    """
    index: int
    game_type: int
    extra_data: bytes
    created_at: datetime
    resolved_at: Optional[datetime] = None
    status: int = 0
    address: str = ""

    @property
    def defender_won(self) -> bool:
        return self.status == GAME_STATUS_DEFENDER_WINS

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DisputeGame":
        return cls(
            index=row["game_index"],
            game_type=row["game_type"],
            extra_data=bytes(row["extra_data"] or b""),
            created_at=timestamp_from_db(row["created_at"]),
            resolved_at=timestamp_from_db(row["resolved_at"]),
            status=row["status"],
            address=row["address"],
        )


@dataclass(frozen=True)
class OutputRoot:
    l2_output_index: int
    l2_block_number: int


@dataclass(frozen=True)
class WithdrawalPolicy:
    """
    Timing constants for withdrawal status derivation.

    Attributes:
        challenge_period_seconds: Legacy challenge window; 604800 when unset
        dispute_game_finality_delay_seconds: Wait after a game resolves
        proof_maturity_delay_seconds: Wait after a withdrawal is proven
        respected_game_type: Game type whose games may carry state roots;
            None disables the dispute game readiness check
    """
    challenge_period_seconds: Optional[int] = None
    dispute_game_finality_delay_seconds: Optional[int] = None
    proof_maturity_delay_seconds: Optional[int] = None
    respected_game_type: Optional[int] = None

    @property
    def challenge_period(self) -> timedelta:
        if self.challenge_period_seconds is None:
            return timedelta(seconds=DEFAULT_CHALLENGE_PERIOD_SECONDS)
        return timedelta(seconds=self.challenge_period_seconds)

    @property
    def dispute_game_finality_delay(self) -> timedelta:
        if self.dispute_game_finality_delay_seconds is None:
            raise ConfigurationError("dispute game finality delay is not configured")
        return timedelta(seconds=self.dispute_game_finality_delay_seconds)

    @property
    def proof_maturity_delay(self) -> timedelta:
        if self.proof_maturity_delay_seconds is None:
            raise ConfigurationError("proof maturity delay is not configured")
        return timedelta(seconds=self.proof_maturity_delay_seconds)


@dataclass(frozen=True)
class StatusResult:
    """A derived status and, while in a challenge window, when it ends."""
    status: WithdrawalStatus
    ready_at: Optional[datetime] = None

    def as_tuple(self):
        return (self.status.value, self.ready_at)


@dataclass(frozen=True)
class WithdrawalTransactionStatus:
    """One withdrawal of an L2 transaction, as listed on that transaction."""
    nonce: int
    status: WithdrawalStatus
    relay_transaction_hash: Optional[str] = None


@dataclass(frozen=True)
class WithdrawalSummary:
    msg_nonce: int
    hash: str
    l2_block_number: int
    l2_transaction_hash: str
    l2_timestamp: Optional[datetime] = None
    relay_transaction_hash: Optional[str] = None
    from_address: Optional[str] = None

    @property
    def nonce(self) -> int:
        return external_nonce(self.msg_nonce)
