"""
SQLite Store and Encoding Tests

Covers:
  - Store lifecycle (create, schema, close)
  - Hash, nonce, timestamp and ABI word encoding
"""

from datetime import datetime, timezone

import pytest

from conftest import h

from bridgewatch.database_sqlite import DatabaseSQLite
from bridgewatch.encoding import (
    decode_uint256_word,
    external_nonce,
    nonce_from_db,
    nonce_to_db,
    normalize_hash,
    timestamp_from_db,
    timestamp_to_db,
)
from bridgewatch.exceptions import InvalidArgumentError, StoreNotOpenError


class TestStoreLifecycle:

    @pytest.mark.asyncio
    async def test_schema_tables(self, db):
        rows = await db.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row["name"] for row in rows}
        assert {
            "blocks", "transactions", "rollup_lifecycle_transactions", "rollup_batches",
            "rollup_batch_blocks", "rollup_messages", "rollup_executions", "op_withdrawals",
            "op_withdrawal_events", "op_dispute_games", "op_output_roots",
        } <= tables

    @pytest.mark.asyncio
    async def test_file_store_reopens(self, tmp_path):
        path = str(tmp_path / "nested" / "bw.db")
        store = await DatabaseSQLite.create(path)
        await store.add_block(h(1), 1)
        await store.close()

        store = await DatabaseSQLite.create(path)
        assert await store.fetch_value("SELECT number FROM blocks WHERE hash = ?", (h(1),)) == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_closed_store(self):
        store = await DatabaseSQLite.create(":memory:")
        await store.close()
        with pytest.raises(StoreNotOpenError):
            await store.fetch_one("SELECT 1")

    @pytest.mark.asyncio
    async def test_hashes_stored_lowercase(self, db):
        await db.add_transaction("0x" + "AB" * 32, 5)
        assert await db.fetch_value("SELECT hash FROM transactions") == "0x" + "ab" * 32

    @pytest.mark.asyncio
    async def test_finalize_nothing(self, db):
        assert await db.mark_lifecycle_transactions_finalized([]) == 0


class TestEncoding:

    def test_normalize_hash(self):
        assert normalize_hash("AB" * 32) == "0x" + "ab" * 32
        assert normalize_hash(bytes([1, 2])) == "0x0102"
        with pytest.raises(InvalidArgumentError):
            normalize_hash("0xzz")
        with pytest.raises(InvalidArgumentError):
            normalize_hash(None)

    def test_nonce_text_order_matches_numeric_order(self):
        nonces = [1 << 240, 2, (1 << 240) + 1, 10, 0]
        assert sorted(nonces) == [nonce_from_db(v) for v in sorted(nonce_to_db(n) for n in nonces)]

    def test_nonce_out_of_range(self):
        with pytest.raises(InvalidArgumentError):
            nonce_to_db(1 << 256)
        with pytest.raises(InvalidArgumentError):
            nonce_to_db(-1)

    def test_external_nonce(self):
        assert external_nonce((1 << 240) + 42) == 42
        assert external_nonce(42) == 42

    def test_timestamps(self):
        moment = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert timestamp_from_db(timestamp_to_db(moment)) == moment
        assert timestamp_to_db(None) is None
        assert timestamp_from_db(None) is None
        with pytest.raises(InvalidArgumentError):
            timestamp_to_db(datetime(2024, 3, 1))

    def test_decode_uint256_word(self):
        data = (7).to_bytes(32, "big") + (9).to_bytes(32, "big")
        assert decode_uint256_word(data) == 7
        assert decode_uint256_word(data, 1) == 9
        with pytest.raises(ValueError):
            decode_uint256_word(data, 2)
