"""
SQLite Store for Bridgewatch

Holds the entities written by the ingestion pipelines (messages, batches,
lifecycle transactions, rollup block associations, executions, blocks,
transactions, withdrawals and their events, dispute games, output roots) and
exposes the small surface the readers need: row fetch helpers, the lifecycle
transaction id allocator and the insert helpers ingestion uses.

Foreign keys are intentionally not enforced: ingestion pipelines run
independently, so a reference may be written before the record it points
to. Readers report such references as inconsistencies.
"""
import os
from typing import Any, Iterable, List, Optional, Sequence

import aiosqlite

from .constants import FIRST_LIFECYCLE_TRANSACTION_ID
from .encoding import normalize_hash, nonce_to_db, timestamp_to_db
from .exceptions import StoreNotOpenError
from .logger import get_logger

logger = get_logger(__name__)


class DatabaseSQLite:
    """aiosqlite-backed bridge indexer store"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.connection: Optional[aiosqlite.Connection] = None

    @staticmethod
    async def create(db_path: str, wal_mode: bool = True, **kwargs):
        """Open (creating if needed) the database and initialize the schema."""
        self = DatabaseSQLite(db_path)

        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.connection = await aiosqlite.connect(db_path)
        self.connection.row_factory = aiosqlite.Row

        if wal_mode and db_path != ":memory:":
            await self.connection.execute("PRAGMA journal_mode=WAL")
            await self.connection.execute("PRAGMA synchronous=NORMAL")

        await self._init_schema()

        logger.info(f"SQLite database initialized: {db_path}")
        return self

    async def _init_schema(self):
        """Initialize database schema"""
        schema = """
        CREATE TABLE IF NOT EXISTS blocks (
            hash TEXT PRIMARY KEY,
            number INTEGER NOT NULL,
            consensus BOOLEAN NOT NULL DEFAULT 1,
            timestamp INTEGER
        );

        CREATE TABLE IF NOT EXISTS transactions (
            hash TEXT PRIMARY KEY,
            block_number INTEGER,
            from_address TEXT
        );

        CREATE TABLE IF NOT EXISTS rollup_lifecycle_transactions (
            id INTEGER PRIMARY KEY,
            hash TEXT UNIQUE NOT NULL,
            block INTEGER NOT NULL,
            timestamp INTEGER,
            status TEXT NOT NULL DEFAULT 'unfinalized'
                CHECK (status IN ('unfinalized', 'finalized'))
        );

        CREATE TABLE IF NOT EXISTS rollup_batches (
            number INTEGER PRIMARY KEY,
            tx_count INTEGER NOT NULL DEFAULT 0,
            start_block INTEGER NOT NULL,
            end_block INTEGER NOT NULL,
            before_acc TEXT NOT NULL DEFAULT '',
            after_acc TEXT NOT NULL DEFAULT '',
            commit_id INTEGER NOT NULL,
            CHECK (end_block >= start_block)
        );

        CREATE TABLE IF NOT EXISTS rollup_batch_blocks (
            hash TEXT PRIMARY KEY,
            batch_number INTEGER NOT NULL,
            confirm_id INTEGER
        );

        CREATE TABLE IF NOT EXISTS rollup_messages (
            direction TEXT NOT NULL CHECK (direction IN ('to_l2', 'from_l2')),
            message_id INTEGER NOT NULL,
            originating_tx_hash TEXT,
            originating_tx_blocknum INTEGER,
            completion_tx_hash TEXT,
            status TEXT NOT NULL
                CHECK (status IN ('initiated', 'sent', 'confirmed', 'relayed')),
            PRIMARY KEY (direction, message_id)
        );

        CREATE TABLE IF NOT EXISTS rollup_executions (
            message_id INTEGER PRIMARY KEY,
            execution_id INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS op_withdrawals (
            msg_nonce TEXT PRIMARY KEY,
            hash TEXT NOT NULL,
            l2_transaction_hash TEXT NOT NULL,
            l2_block_number INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS op_withdrawal_events (
            withdrawal_hash TEXT NOT NULL,
            l1_event_type TEXT NOT NULL
                CHECK (l1_event_type IN ('WithdrawalProven', 'WithdrawalFinalized')),
            l1_timestamp INTEGER NOT NULL,
            l1_transaction_hash TEXT NOT NULL,
            l1_block_number INTEGER NOT NULL,
            game_index INTEGER,
            PRIMARY KEY (withdrawal_hash, l1_event_type)
        );

        CREATE TABLE IF NOT EXISTS op_dispute_games (
            game_index INTEGER PRIMARY KEY,
            game_type INTEGER NOT NULL,
            address TEXT NOT NULL DEFAULT '',
            extra_data BLOB,
            created_at INTEGER NOT NULL,
            resolved_at INTEGER,
            status INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS op_output_roots (
            l2_output_index INTEGER PRIMARY KEY,
            l2_block_number INTEGER NOT NULL,
            output_root TEXT NOT NULL DEFAULT '',
            l1_transaction_hash TEXT NOT NULL DEFAULT '',
            l1_timestamp INTEGER,
            l1_block_number INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_blocks_number ON blocks(number);
        CREATE INDEX IF NOT EXISTS idx_transactions_block ON transactions(block_number);
        CREATE INDEX IF NOT EXISTS idx_lifecycle_block ON rollup_lifecycle_transactions(block);
        CREATE INDEX IF NOT EXISTS idx_lifecycle_status ON rollup_lifecycle_transactions(status);
        CREATE INDEX IF NOT EXISTS idx_batches_range ON rollup_batches(start_block, end_block);
        CREATE INDEX IF NOT EXISTS idx_batch_blocks_batch ON rollup_batch_blocks(batch_number);
        CREATE INDEX IF NOT EXISTS idx_batch_blocks_confirm ON rollup_batch_blocks(confirm_id);
        CREATE INDEX IF NOT EXISTS idx_messages_origin ON rollup_messages(direction, originating_tx_blocknum);
        CREATE INDEX IF NOT EXISTS idx_executions_execution ON rollup_executions(execution_id);
        CREATE INDEX IF NOT EXISTS idx_withdrawals_l2_tx ON op_withdrawals(l2_transaction_hash);
        CREATE INDEX IF NOT EXISTS idx_withdrawals_hash ON op_withdrawals(hash);
        CREATE INDEX IF NOT EXISTS idx_games_type ON op_dispute_games(game_type, game_index);
        """

        await self.connection.executescript(schema)
        await self.connection.commit()

    async def close(self):
        """Close database connection"""
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info(f"SQLite database closed: {self.db_path}")

    def _require_connection(self) -> aiosqlite.Connection:
        if self.connection is None:
            raise StoreNotOpenError(f"Store {self.db_path} is not open")
        return self.connection

    # Row helpers used by the readers

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        cursor = await self._require_connection().execute(query, tuple(params))
        row = await cursor.fetchone()
        await cursor.close()
        return row

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        cursor = await self._require_connection().execute(query, tuple(params))
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    async def fetch_value(self, query: str, params: Sequence[Any] = ()) -> Any:
        """First column of the first row, or None when there is no row."""
        row = await self.fetch_one(query, params)
        return row[0] if row is not None else None

    async def execute(self, query: str, *args):
        """Execute raw SQL statement and commit"""
        connection = self._require_connection()
        await connection.execute(query, args)
        await connection.commit()

    # Lifecycle transaction id allocation

    async def next_lifecycle_transaction_id(self) -> int:
        """
        Next free lifecycle transaction id: current maximum plus one, or 1.

        Read-then-increment; concurrent writers must serialise allocation.
        """
        last_id = await self.fetch_value(
            "SELECT id FROM rollup_lifecycle_transactions ORDER BY id DESC LIMIT 1"
        )
        return (last_id or FIRST_LIFECYCLE_TRANSACTION_ID - 1) + 1

    async def mark_lifecycle_transactions_finalized(self, ids: Iterable[int]) -> int:
        """Promote lifecycle transactions to finalized. Returns the number updated."""
        ids = list(ids)
        if not ids:
            return 0
        connection = self._require_connection()
        placeholders = ",".join("?" * len(ids))
        cursor = await connection.execute(
            f"UPDATE rollup_lifecycle_transactions SET status = 'finalized' "
            f"WHERE status = 'unfinalized' AND id IN ({placeholders})",
            ids,
        )
        await connection.commit()
        updated = cursor.rowcount
        await cursor.close()
        logger.debug(f"Finalized {updated} lifecycle transactions")
        return updated

    # Insert helpers used by ingestion pipelines

    async def add_block(self, hash: str, number: int, consensus: bool = True, timestamp=None):
        await self.execute(
            "INSERT INTO blocks (hash, number, consensus, timestamp) VALUES (?, ?, ?, ?)",
            normalize_hash(hash), number, consensus, timestamp_to_db(timestamp),
        )

    async def add_transaction(self, hash: str, block_number: Optional[int], from_address: Optional[str] = None):
        await self.execute(
            "INSERT INTO transactions (hash, block_number, from_address) VALUES (?, ?, ?)",
            normalize_hash(hash), block_number, from_address,
        )

    async def add_lifecycle_transaction(self, hash: str, block: int, timestamp=None,
                                        status: str = "unfinalized", id: Optional[int] = None) -> int:
        """Insert an L1 lifecycle transaction, allocating its id when not given."""
        if id is None:
            id = await self.next_lifecycle_transaction_id()
        await self.execute(
            "INSERT INTO rollup_lifecycle_transactions (id, hash, block, timestamp, status) "
            "VALUES (?, ?, ?, ?, ?)",
            id, normalize_hash(hash), block, timestamp_to_db(timestamp), status,
        )
        return id

    async def add_batch(self, number: int, start_block: int, end_block: int, commit_id: int,
                        tx_count: int = 0, before_acc: str = "", after_acc: str = ""):
        await self.execute(
            "INSERT INTO rollup_batches "
            "(number, tx_count, start_block, end_block, before_acc, after_acc, commit_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            number, tx_count, start_block, end_block, before_acc, after_acc, commit_id,
        )

    async def add_batch_block(self, hash: str, batch_number: int, confirm_id: Optional[int] = None):
        await self.execute(
            "INSERT INTO rollup_batch_blocks (hash, batch_number, confirm_id) VALUES (?, ?, ?)",
            normalize_hash(hash), batch_number, confirm_id,
        )

    async def add_message(self, direction: str, message_id: int, status: str,
                          originating_tx_blocknum: Optional[int] = None,
                          originating_tx_hash: Optional[str] = None,
                          completion_tx_hash: Optional[str] = None):
        await self.execute(
            "INSERT INTO rollup_messages "
            "(direction, message_id, originating_tx_hash, originating_tx_blocknum, completion_tx_hash, status) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            direction, message_id,
            normalize_hash(originating_tx_hash) if originating_tx_hash else None,
            originating_tx_blocknum,
            normalize_hash(completion_tx_hash) if completion_tx_hash else None,
            status,
        )

    async def add_execution(self, message_id: int, execution_id: int):
        await self.execute(
            "INSERT INTO rollup_executions (message_id, execution_id) VALUES (?, ?)",
            message_id, execution_id,
        )

    async def add_withdrawal(self, msg_nonce: int, hash: str, l2_transaction_hash: str, l2_block_number: int):
        await self.execute(
            "INSERT INTO op_withdrawals (msg_nonce, hash, l2_transaction_hash, l2_block_number) "
            "VALUES (?, ?, ?, ?)",
            nonce_to_db(msg_nonce), normalize_hash(hash), normalize_hash(l2_transaction_hash), l2_block_number,
        )

    async def add_withdrawal_event(self, withdrawal_hash: str, l1_event_type: str, l1_timestamp,
                                   l1_transaction_hash: str, l1_block_number: int,
                                   game_index: Optional[int] = None):
        await self.execute(
            "INSERT INTO op_withdrawal_events "
            "(withdrawal_hash, l1_event_type, l1_timestamp, l1_transaction_hash, l1_block_number, game_index) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            normalize_hash(withdrawal_hash), l1_event_type, timestamp_to_db(l1_timestamp),
            normalize_hash(l1_transaction_hash), l1_block_number, game_index,
        )

    async def add_dispute_game(self, index: int, game_type: int, extra_data: bytes, created_at,
                               resolved_at=None, status: int = 0, address: str = ""):
        await self.execute(
            "INSERT INTO op_dispute_games "
            "(game_index, game_type, address, extra_data, created_at, resolved_at, status) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            index, game_type, address, extra_data,
            timestamp_to_db(created_at), timestamp_to_db(resolved_at), status,
        )

    async def add_output_root(self, l2_output_index: int, l2_block_number: int, output_root: str = "",
                              l1_transaction_hash: str = "", l1_timestamp=None,
                              l1_block_number: Optional[int] = None):
        await self.execute(
            "INSERT INTO op_output_roots "
            "(l2_output_index, l2_block_number, output_root, l1_transaction_hash, l1_timestamp, l1_block_number) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            l2_output_index, l2_block_number, output_root, l1_transaction_hash,
            timestamp_to_db(l1_timestamp), l1_block_number,
        )
