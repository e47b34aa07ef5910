"""
Bridgewatch Withdrawal Status Engine

Derives the user-facing status of L2-to-L1 withdrawals from indexed proofs,
relays, output roots and dispute games.
"""

from .reader import WithdrawalReader
from .status import derive_status
from .types import (
    DisputeGame,
    OutputRoot,
    StatusResult,
    Withdrawal,
    WithdrawalEvent,
    WithdrawalEventType,
    WithdrawalPolicy,
    WithdrawalStatus,
    WithdrawalSummary,
    WithdrawalTransactionStatus,
)

__all__ = [
    "WithdrawalReader",
    "derive_status",
    "DisputeGame",
    "OutputRoot",
    "StatusResult",
    "Withdrawal",
    "WithdrawalEvent",
    "WithdrawalEventType",
    "WithdrawalPolicy",
    "WithdrawalStatus",
    "WithdrawalSummary",
    "WithdrawalTransactionStatus",
]
