"""
Withdrawal Reader

Fetches the facts a withdrawal status depends on and hands them to the pure
functions in ``status``. Inputs are fetched lazily in the order the decision
needs them, so a relayed withdrawal costs one query.

The current time and the policy constants are always passed in by the
caller; nothing here reads the clock or the configuration.
"""

from datetime import datetime
from typing import List, Optional

from ..constants import DEFAULT_WITHDRAWALS_PAGE_SIZE, RESPECTED_GAMES_SCAN_LIMIT
from ..database_sqlite import DatabaseSQLite
from ..encoding import nonce_from_db, nonce_to_db, normalize_hash, timestamp_from_db
from ..exceptions import InvalidArgumentError
from ..logger import get_logger
from . import status as engine
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

logger = get_logger(__name__)


class WithdrawalReader:
    """Store-backed withdrawal status queries."""

    def __init__(self, db: DatabaseSQLite):
        self.db = db

    # ── Inputs ───────────────────────────────────────────────────────

    async def withdrawal_by_hash(self, withdrawal_hash) -> Optional[Withdrawal]:
        row = await self.db.fetch_one(
            "SELECT * FROM op_withdrawals WHERE hash = ? LIMIT 1",
            (normalize_hash(withdrawal_hash),),
        )
        return Withdrawal.from_row(row) if row is not None else None

    async def withdrawal_event(self, withdrawal_hash: str, event_type: WithdrawalEventType) -> Optional[WithdrawalEvent]:
        row = await self.db.fetch_one(
            "SELECT * FROM op_withdrawal_events WHERE withdrawal_hash = ? AND l1_event_type = ? LIMIT 1",
            (normalize_hash(withdrawal_hash), event_type.value),
        )
        return WithdrawalEvent.from_row(row) if row is not None else None

    async def dispute_game(self, index: int) -> Optional[DisputeGame]:
        row = await self.db.fetch_one(
            "SELECT * FROM op_dispute_games WHERE game_index = ? LIMIT 1",
            (index,),
        )
        return DisputeGame.from_row(row) if row is not None else None

    async def latest_output_root(self) -> Optional[OutputRoot]:
        row = await self.db.fetch_one(
            "SELECT l2_output_index, l2_block_number FROM op_output_roots "
            "ORDER BY l2_output_index DESC LIMIT 1"
        )
        if row is None:
            return None
        return OutputRoot(l2_output_index=row["l2_output_index"], l2_block_number=row["l2_block_number"])

    async def recent_games(self, game_type: int, limit: int = RESPECTED_GAMES_SCAN_LIMIT) -> List[DisputeGame]:
        """The ``limit`` most recent games of ``game_type``, newest first."""
        rows = await self.db.fetch_all(
            "SELECT * FROM op_dispute_games WHERE game_type = ? ORDER BY game_index DESC LIMIT ?",
            (game_type, limit),
        )
        return [DisputeGame.from_row(row) for row in rows]

    # ── Status ───────────────────────────────────────────────────────

    async def status(self, withdrawal: Withdrawal, policy: WithdrawalPolicy, now: datetime) -> StatusResult:
        """
        Current status of ``withdrawal``.

        Raises:
            ConfigurationError: if the withdrawal was proven against a won
                dispute game and a fault-proof delay is not configured
        """
        finalized = await self.withdrawal_event(withdrawal.hash, WithdrawalEventType.FINALIZED)
        if finalized is not None:
            return StatusResult(WithdrawalStatus.RELAYED)
        return await self._unrelayed_status(withdrawal, policy, now)

    async def status_by_hash(self, withdrawal_hash, policy: WithdrawalPolicy, now: datetime) -> Optional[StatusResult]:
        """Status of the withdrawal with ``withdrawal_hash``, or None if it is not indexed."""
        withdrawal = await self.withdrawal_by_hash(withdrawal_hash)
        if withdrawal is None:
            return None
        return await self.status(withdrawal, policy, now)

    async def _unrelayed_status(self, withdrawal: Withdrawal, policy: WithdrawalPolicy, now: datetime) -> StatusResult:
        proof = await self.withdrawal_event(withdrawal.hash, WithdrawalEventType.PROVEN)
        if proof is None:
            ready = await self._state_root_available(withdrawal, policy)
            return engine.unproven_status(ready)

        game = None
        if proof.game_index is not None:
            game = await self.dispute_game(proof.game_index)
            if game is None:
                logger.warning(
                    f"Withdrawal {withdrawal.hash} was proven against game {proof.game_index} "
                    "which is not indexed; using the challenge period"
                )
        return engine.proven_status(proof, game, policy, now)

    async def _state_root_available(self, withdrawal: Withdrawal, policy: WithdrawalPolicy) -> bool:
        latest_root = await self.latest_output_root()
        if engine.state_root_available(withdrawal.l2_block_number, latest_root, (), policy):
            return True
        if policy.respected_game_type is None:
            return False
        games = await self.recent_games(policy.respected_game_type)
        return engine.state_root_available(withdrawal.l2_block_number, latest_root, games, policy)

    async def transaction_statuses(self, l2_transaction_hash, policy: WithdrawalPolicy,
                                   now: datetime) -> List[WithdrawalTransactionStatus]:
        """
        Status of every withdrawal initiated by one L2 transaction.

        Relay events come from the same query as the withdrawals; the other
        inputs are fetched per withdrawal that is not relayed yet.
        """
        rows = await self.db.fetch_all(
            """
            SELECT w.msg_nonce, w.hash, w.l2_transaction_hash, w.l2_block_number,
                   we.l1_transaction_hash AS relay_transaction_hash
            FROM op_withdrawals w
            LEFT JOIN op_withdrawal_events we
                ON we.withdrawal_hash = w.hash AND we.l1_event_type = ?
            WHERE w.l2_transaction_hash = ?
            ORDER BY w.msg_nonce
            """,
            (WithdrawalEventType.FINALIZED.value, normalize_hash(l2_transaction_hash)),
        )

        statuses = []
        for row in rows:
            withdrawal = Withdrawal.from_row(row)
            relay_hash = row["relay_transaction_hash"]
            if relay_hash is not None:
                result = StatusResult(WithdrawalStatus.RELAYED)
            else:
                result = await self._unrelayed_status(withdrawal, policy, now)
            statuses.append(WithdrawalTransactionStatus(
                nonce=withdrawal.nonce,
                status=result.status,
                relay_transaction_hash=relay_hash,
            ))
        return statuses

    # ── Listing ──────────────────────────────────────────────────────

    async def list_withdrawals(self, page_size: int = DEFAULT_WITHDRAWALS_PAGE_SIZE,
                               before_nonce: Optional[int] = None) -> List[WithdrawalSummary]:
        """
        Withdrawals in descending raw nonce order.

        Args:
            page_size: Maximum number of withdrawals returned
            before_nonce: Raw nonce of the last withdrawal of the previous page
        """
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
            raise InvalidArgumentError(f"page_size must be a positive integer, got {page_size!r}")

        where = ""
        params = [WithdrawalEventType.FINALIZED.value]
        if before_nonce is not None:
            where = "WHERE w.msg_nonce < ?"
            params.append(nonce_to_db(before_nonce))
        params.append(page_size)

        rows = await self.db.fetch_all(
            f"""
            SELECT w.msg_nonce, w.hash, w.l2_block_number, w.l2_transaction_hash,
                   b.timestamp AS l2_timestamp,
                   we.l1_transaction_hash AS relay_transaction_hash,
                   tx.from_address
            FROM op_withdrawals w
            LEFT JOIN transactions tx ON tx.hash = w.l2_transaction_hash
            LEFT JOIN blocks b ON b.number = w.l2_block_number AND b.consensus = 1
            LEFT JOIN op_withdrawal_events we
                ON we.withdrawal_hash = w.hash AND we.l1_event_type = ?
            {where}
            ORDER BY w.msg_nonce DESC
            LIMIT ?
            """,
            params,
        )
        return [
            WithdrawalSummary(
                msg_nonce=nonce_from_db(row["msg_nonce"]),
                hash=row["hash"],
                l2_block_number=row["l2_block_number"],
                l2_transaction_hash=row["l2_transaction_hash"],
                l2_timestamp=timestamp_from_db(row["l2_timestamp"]),
                relay_transaction_hash=row["relay_transaction_hash"],
                from_address=row["from_address"],
            )
            for row in rows
        ]
