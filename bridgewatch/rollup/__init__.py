"""
Bridgewatch Rollup Read Model

Frontier and confirmation-gap queries over batches, confirmations,
bridge messages and executions.
"""

from .reader import RollupReader
from .types import (
    Batch,
    BridgeMessage,
    ConfirmationGap,
    ConfirmationRange,
    Execution,
    LifecycleStatus,
    LifecycleTransaction,
    Lookup,
    LookupOutcome,
    MessageDirection,
    MessageStatus,
    UnconfirmedRollupBlock,
)

__all__ = [
    "RollupReader",
    "Batch",
    "BridgeMessage",
    "ConfirmationGap",
    "ConfirmationRange",
    "Execution",
    "LifecycleStatus",
    "LifecycleTransaction",
    "Lookup",
    "LookupOutcome",
    "MessageDirection",
    "MessageStatus",
    "UnconfirmedRollupBlock",
]
