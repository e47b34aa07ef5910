"""
Rollup Reader

Read functions answering "how far has indexing progressed?" for the rollup
side of the bridge: discovered messages per direction, committed batches,
confirmed rollup blocks, executed messages, and the most recent hole in the
confirmation sequence.

Every function issues one bounded statement (ordering plus LIMIT, or an
aggregation). A handful resolve a foreign key in a second statement so that
"nothing there yet" and "reference does not resolve" stay distinguishable.

Usage:
    db = await DatabaseSQLite.create("data/bridgewatch.db")
    reader = RollupReader(db)
    lookup = await reader.l1_block_of_latest_committed_batch()
    if lookup.is_found:
        start_from = lookup.value
"""

from typing import Iterable, List, Optional, Tuple

from ..database_sqlite import DatabaseSQLite
from ..encoding import normalize_hash, require_block_number
from ..exceptions import InvalidRangeError
from ..logger import get_logger
from . import gaps
from .types import (
    Batch,
    BridgeMessage,
    ConfirmationGap,
    ConfirmationRange,
    Execution,
    LifecycleTransaction,
    Lookup,
    MessageDirection,
    MessageStatus,
    UnconfirmedRollupBlock,
)

logger = get_logger(__name__)


_SELECT_BATCH_WITH_COMMIT = """
SELECT b.number, b.tx_count, b.start_block, b.end_block, b.before_acc, b.after_acc, b.commit_id,
       lt.id AS lt_id, lt.hash AS lt_hash, lt.block AS lt_block,
       lt.timestamp AS lt_timestamp, lt.status AS lt_status
FROM rollup_batches b
LEFT JOIN rollup_lifecycle_transactions lt ON lt.id = b.commit_id
"""


def _joined_lifecycle_transaction(row) -> Optional[LifecycleTransaction]:
    """LifecycleTransaction from ``lt_``-prefixed columns of a LEFT JOIN, or None."""
    if row["lt_id"] is None:
        return None
    return LifecycleTransaction.from_row({
        "id": row["lt_id"],
        "hash": row["lt_hash"],
        "block": row["lt_block"],
        "timestamp": row["lt_timestamp"],
        "status": row["lt_status"],
    })


class RollupReader:
    """Frontier and gap queries over the rollup entities of a store."""

    def __init__(self, db: DatabaseSQLite):
        self.db = db

    # ── Discovered messages ──────────────────────────────────────────

    async def latest_discovered_l1_block_for_messages(self, direction) -> Optional[int]:
        """
        Originating block of the newest discovered message in ``direction``.

        Newest means the largest ``message_id`` among messages whose
        originating transaction has been indexed.
        """
        return await self._discovered_block_for_messages(direction, "DESC")

    async def earliest_discovered_l1_block_for_messages(self, direction) -> Optional[int]:
        """Originating block of the oldest discovered message in ``direction``."""
        return await self._discovered_block_for_messages(direction, "ASC")

    async def _discovered_block_for_messages(self, direction, order: str) -> Optional[int]:
        direction = MessageDirection.parse(direction)
        return await self.db.fetch_value(
            f"""
            SELECT originating_tx_blocknum FROM rollup_messages
            WHERE direction = ? AND originating_tx_blocknum IS NOT NULL
            ORDER BY message_id {order}
            LIMIT 1
            """,
            (direction.value,),
        )

    async def earliest_rollup_block_for_incoming_message(self) -> Optional[int]:
        """
        Lowest rollup block in which an L2-to-L1 message originated.

        Ordered by block number rather than message id: the question is about
        rollup chronology, not discovery order.
        """
        return await self.db.fetch_value(
            """
            SELECT originating_tx_blocknum FROM rollup_messages
            WHERE direction = ? AND originating_tx_blocknum IS NOT NULL
            ORDER BY originating_tx_blocknum ASC
            LIMIT 1
            """,
            (MessageDirection.FROM_L2.value,),
        )

    async def earliest_confirmed_rollup_block_for_completed_outgoing_message(self) -> Lookup[int]:
        """
        Rollup block of the transaction completing the oldest completed L1-to-L2 message.

        Returns:
            ``found(block_number)``; ``not_found()`` when no L1-to-L2 message
            is completed yet; ``inconsistent(...)`` when the completion
            transaction has not been recorded by the block pipeline.
        """
        completion_tx_hash = await self.db.fetch_value(
            """
            SELECT completion_tx_hash FROM rollup_messages
            WHERE direction = ? AND completion_tx_hash IS NOT NULL
            ORDER BY message_id ASC
            LIMIT 1
            """,
            (MessageDirection.TO_L2.value,),
        )
        if completion_tx_hash is None:
            return Lookup.not_found()

        row = await self.db.fetch_one(
            "SELECT block_number FROM transactions WHERE hash = ? LIMIT 1",
            (completion_tx_hash,),
        )
        if row is None or row["block_number"] is None:
            logger.warning(f"Completion transaction {completion_tx_hash} is not indexed")
            return Lookup.inconsistent(f"completion transaction {completion_tx_hash} not found")
        return Lookup.found(row["block_number"])

    async def outgoing_messages_up_to_block(self, status, block_number: int) -> List[BridgeMessage]:
        """
        L2-to-L1 messages with ``status`` originating at or below ``block_number``.

        Ordered newest discovered first.
        """
        status = MessageStatus.parse(status)
        require_block_number("block_number", block_number)
        rows = await self.db.fetch_all(
            """
            SELECT * FROM rollup_messages
            WHERE direction = ? AND originating_tx_blocknum <= ? AND status = ?
            ORDER BY message_id DESC
            """,
            (MessageDirection.FROM_L2.value, block_number, status.value),
        )
        return [BridgeMessage.from_row(row) for row in rows]

    # ── Batches ──────────────────────────────────────────────────────

    async def l1_block_of_latest_committed_batch(self) -> Lookup[int]:
        """
        L1 block holding the commitment of the highest-numbered batch.

        A batch does not exist until its commitment reaches L1, so a batch
        whose commit transaction does not resolve is reported as an
        inconsistency, never as "no batch".
        """
        return await self._l1_block_of_committed_batch("DESC")

    async def l1_block_of_earliest_committed_batch(self) -> Lookup[int]:
        """L1 block holding the commitment of the lowest-numbered batch."""
        return await self._l1_block_of_committed_batch("ASC")

    async def _l1_block_of_committed_batch(self, order: str) -> Lookup[int]:
        row = await self.db.fetch_one(
            f"{_SELECT_BATCH_WITH_COMMIT} ORDER BY b.number {order} LIMIT 1"
        )
        if row is None:
            return Lookup.not_found()
        commit = _joined_lifecycle_transaction(row)
        if commit is None:
            return self._missing_commit(row)
        return Lookup.found(commit.block)

    async def highest_committed_rollup_block(self) -> Optional[int]:
        """Last rollup block of the highest-numbered batch."""
        return await self.db.fetch_value(
            "SELECT end_block FROM rollup_batches ORDER BY number DESC LIMIT 1"
        )

    async def batch_numbers_present(self, candidate_numbers: Iterable[int]) -> List[int]:
        """
        The subset of ``candidate_numbers`` that are indexed batches.

        Duplicates collapse and the result is sorted ascending, so the output
        does not depend on input order.
        """
        candidates = sorted({require_block_number("batch number", n) for n in candidate_numbers})
        if not candidates:
            return []
        placeholders = ",".join("?" * len(candidates))
        rows = await self.db.fetch_all(
            f"SELECT number FROM rollup_batches WHERE number IN ({placeholders}) ORDER BY number",
            candidates,
        )
        return [row["number"] for row in rows]

    async def batch_containing_rollup_block(self, number: int) -> Lookup[Batch]:
        """
        The batch whose block range includes rollup block ``number``.

        The commit transaction is attached to the returned batch.
        """
        require_block_number("number", number)
        row = await self.db.fetch_one(
            f"{_SELECT_BATCH_WITH_COMMIT} WHERE b.start_block <= ? AND b.end_block >= ? "
            "ORDER BY b.number LIMIT 1",
            (number, number),
        )
        if row is None:
            return Lookup.not_found()
        commit = _joined_lifecycle_transaction(row)
        if commit is None:
            return self._missing_commit(row)
        return Lookup.found(Batch.from_row(row, commit_transaction=commit))

    @staticmethod
    def _missing_commit(row) -> Lookup:
        logger.warning(
            f"Batch {row['number']} references commit transaction {row['commit_id']} "
            "which is not indexed: store inconsistency"
        )
        return Lookup.inconsistent(
            f"batch {row['number']} commit transaction {row['commit_id']} not found"
        )

    # ── Rollup blocks ────────────────────────────────────────────────

    async def resolve_rollup_block_hash_to_number(self, block_hash) -> Lookup[int]:
        """
        Number of the rollup block with ``block_hash``.

        Only blocks already assigned to a batch are considered.

        Returns:
            ``found(number)``; ``not_found()`` when no batch holds the block
            yet; ``inconsistent(...)`` when the association exists but the
            block record itself is missing.
        """
        block_hash = normalize_hash(block_hash)
        row = await self.db.fetch_one(
            """
            SELECT bb.hash, fb.number
            FROM rollup_batch_blocks bb
            LEFT JOIN blocks fb ON fb.hash = bb.hash
            WHERE bb.hash = ?
            LIMIT 1
            """,
            (block_hash,),
        )
        if row is None:
            return Lookup.not_found()
        if row["number"] is None:
            logger.warning(f"Rollup block {block_hash} is in a batch but has no block record")
            return Lookup.inconsistent(f"block record for {block_hash} not found")
        return Lookup.found(row["number"])

    async def highest_confirmed_rollup_block(self) -> Optional[int]:
        """Number of the highest rollup block with a confirmation."""
        return await self.db.fetch_value(
            """
            SELECT fb.number
            FROM rollup_batch_blocks bb
            JOIN blocks fb ON fb.hash = bb.hash
            WHERE bb.confirm_id IS NOT NULL
            ORDER BY fb.number DESC
            LIMIT 1
            """
        )

    async def l1_block_of_latest_confirmed_rollup_block(self) -> Lookup[int]:
        """L1 block of the confirmation transaction covering the highest confirmed rollup block."""
        row = await self.db.fetch_one(
            """
            SELECT bb.confirm_id, fb.number, lt.block AS l1_block
            FROM rollup_batch_blocks bb
            JOIN blocks fb ON fb.hash = bb.hash
            LEFT JOIN rollup_lifecycle_transactions lt ON lt.id = bb.confirm_id
            WHERE bb.confirm_id IS NOT NULL
            ORDER BY fb.number DESC
            LIMIT 1
            """
        )
        if row is None:
            return Lookup.not_found()
        if row["l1_block"] is None:
            logger.warning(
                f"Rollup block {row['number']} is confirmed by transaction {row['confirm_id']} "
                "which is not indexed: store inconsistency"
            )
            return Lookup.inconsistent(f"confirmation transaction {row['confirm_id']} not found")
        return Lookup.found(row["l1_block"])

    async def unconfirmed_rollup_blocks_in_range(self, first_block: int, last_block: int) -> List[UnconfirmedRollupBlock]:
        """
        Unconfirmed rollup blocks numbered ``first_block..last_block`` inclusive.

        Blocks the block pipeline has not recorded yet are absent from the
        result even when their batch is known.

        Raises:
            InvalidRangeError: on negative bounds or ``first_block > last_block``
        """
        if (isinstance(first_block, bool) or not isinstance(first_block, int)
                or isinstance(last_block, bool) or not isinstance(last_block, int)):
            raise InvalidRangeError(f"Block range bounds must be integers: {first_block!r}..{last_block!r}")
        if first_block < 0 or last_block < 0:
            raise InvalidRangeError(f"Block range bounds must be non-negative: {first_block}..{last_block}")
        if first_block > last_block:
            raise InvalidRangeError(f"first_block {first_block} is greater than last_block {last_block}")

        rows = await self.db.fetch_all(
            """
            SELECT bb.batch_number, bb.hash, fb.number
            FROM rollup_batch_blocks bb
            JOIN blocks fb ON fb.hash = bb.hash
            WHERE fb.number >= ? AND fb.number <= ? AND bb.confirm_id IS NULL
            ORDER BY fb.number ASC
            """,
            (first_block, last_block),
        )
        return [
            UnconfirmedRollupBlock(batch_number=row["batch_number"], block_number=row["number"], hash=row["hash"])
            for row in rows
        ]

    async def count_confirmed_rollup_blocks_in_batch(self, batch_number: int) -> int:
        require_block_number("batch_number", batch_number)
        return await self.db.fetch_value(
            "SELECT COUNT(*) FROM rollup_batch_blocks WHERE batch_number = ? AND confirm_id IS NOT NULL",
            (batch_number,),
        )

    # ── Executions ───────────────────────────────────────────────────

    async def l1_block_of_latest_execution(self) -> Optional[int]:
        """Highest L1 block holding a transaction that executed an L2-to-L1 message."""
        return await self._l1_block_of_execution("DESC")

    async def l1_block_of_earliest_execution(self) -> Optional[int]:
        """Lowest L1 block holding a transaction that executed an L2-to-L1 message."""
        return await self._l1_block_of_execution("ASC")

    async def _l1_block_of_execution(self, order: str) -> Optional[int]:
        return await self.db.fetch_value(
            f"""
            SELECT lt.block
            FROM rollup_lifecycle_transactions lt
            JOIN rollup_executions ex ON ex.execution_id = lt.id
            ORDER BY lt.block {order}
            LIMIT 1
            """
        )

    async def executions(self, message_ids: Iterable[int]) -> List[Execution]:
        """
        Executions of the given messages. The output may be shorter than the
        input; each execution carries its transaction when it resolves.
        """
        message_ids = sorted(set(message_ids))
        if not message_ids:
            return []
        placeholders = ",".join("?" * len(message_ids))
        rows = await self.db.fetch_all(
            f"""
            SELECT ex.message_id, ex.execution_id,
                   lt.id AS lt_id, lt.hash AS lt_hash, lt.block AS lt_block,
                   lt.timestamp AS lt_timestamp, lt.status AS lt_status
            FROM rollup_executions ex
            LEFT JOIN rollup_lifecycle_transactions lt ON lt.id = ex.execution_id
            WHERE ex.message_id IN ({placeholders})
            ORDER BY ex.message_id
            """,
            message_ids,
        )
        return [
            Execution(
                message_id=row["message_id"],
                execution_id=row["execution_id"],
                execution_transaction=_joined_lifecycle_transaction(row),
            )
            for row in rows
        ]

    # ── Lifecycle transactions ───────────────────────────────────────

    async def lifecycle_transactions(self, hashes: Iterable[str]) -> List[Tuple[str, int]]:
        """(hash, id) of the known L1 lifecycle transactions among ``hashes``."""
        hashes = sorted({normalize_hash(h) for h in hashes})
        if not hashes:
            return []
        placeholders = ",".join("?" * len(hashes))
        rows = await self.db.fetch_all(
            f"SELECT hash, id FROM rollup_lifecycle_transactions WHERE hash IN ({placeholders})",
            hashes,
        )
        return [(row["hash"], row["id"]) for row in rows]

    async def unfinalized_lifecycle_transactions(self, finalized_block: int) -> List[LifecycleTransaction]:
        """Unfinalized lifecycle transactions included at or below ``finalized_block``."""
        require_block_number("finalized_block", finalized_block)
        rows = await self.db.fetch_all(
            """
            SELECT * FROM rollup_lifecycle_transactions
            WHERE block <= ? AND status = 'unfinalized'
            ORDER BY block, id
            """,
            (finalized_block,),
        )
        return [LifecycleTransaction.from_row(row) for row in rows]

    # ── Confirmation gaps ────────────────────────────────────────────

    async def confirmation_ranges(self) -> List[ConfirmationRange]:
        """
        Rollup block range covered by each confirmation transaction.

        Pairs confirmed blocks with their confirmation and groups them in one
        aggregation, so only one row per confirmation transaction is read.
        """
        rows = await self.db.fetch_all(
            """
            SELECT bb.confirm_id, MIN(fb.number) AS min_block, MAX(fb.number) AS max_block
            FROM rollup_batch_blocks bb
            JOIN blocks fb ON fb.hash = bb.hash
            WHERE bb.confirm_id IS NOT NULL
            GROUP BY bb.confirm_id
            """
        )
        return [
            ConfirmationRange(confirm_id=row["confirm_id"], min_block=row["min_block"], max_block=row["max_block"])
            for row in rows
        ]

    async def find_first_confirmation_gap(self, first_rollup_block: Optional[int] = None) -> Lookup[ConfirmationGap]:
        """
        L1 blocks of the confirmations bounding the most recent gap in confirmed rollup blocks.

        For example, if blocks 0-3 are confirmed by transaction X, 7-9 by Y
        and 12-15 by Z, blocks 4-6 and 10-11 are missing their confirmations;
        the later hole wins and the L1 blocks of Y and Z are returned.

        Args:
            first_rollup_block: Where confirmations must start (usually the
                rollup genesis). When given, a first confirmation starting
                above it is a gap with no preceding confirmation.

        Returns:
            ``found(ConfirmationGap)``; ``not_found()`` when confirmations are
            contiguous; ``inconsistent(...)`` when a bounding confirmation
            transaction is not indexed.
        """
        if first_rollup_block is not None:
            require_block_number("first_rollup_block", first_rollup_block)

        boundary = gaps.latest_discontinuity(await self.confirmation_ranges(), first_rollup_block)
        if boundary is None:
            return Lookup.not_found()

        wanted = [boundary.current.confirm_id]
        if boundary.previous is not None:
            wanted.append(boundary.previous.confirm_id)
        placeholders = ",".join("?" * len(wanted))
        rows = await self.db.fetch_all(
            f"SELECT id, block FROM rollup_lifecycle_transactions WHERE id IN ({placeholders})",
            wanted,
        )
        l1_blocks = {row["id"]: row["block"] for row in rows}

        missing = [confirm_id for confirm_id in wanted if confirm_id not in l1_blocks]
        if missing:
            logger.warning(f"Confirmation transactions {missing} bounding a gap are not indexed")
            return Lookup.inconsistent(f"confirmation transactions {missing} not found")

        bounds = gaps.missing_block_bounds(boundary, first_rollup_block)
        first_missing, last_missing = bounds if bounds is not None else (None, None)
        gap = ConfirmationGap(
            previous_l1_block=l1_blocks[boundary.previous.confirm_id] if boundary.previous else None,
            current_l1_block=l1_blocks[boundary.current.confirm_id],
            first_missing_block=first_missing,
            last_missing_block=last_missing,
        )
        if gap.overlapping:
            logger.warning(
                f"Overlapping confirmations between L1 block {gap.previous_l1_block} "
                f"and L1 block {gap.current_l1_block}"
            )
        else:
            logger.debug(
                f"Confirmation gap at rollup block {first_missing}..{last_missing} "
                f"between L1 block {gap.previous_l1_block} and L1 block {gap.current_l1_block}"
            )
        return Lookup.found(gap)
