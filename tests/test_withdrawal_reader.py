"""
Withdrawal Reader Tests

Covers:
  - Single withdrawal status from stored events, games and output roots
  - Status by hash, including unknown withdrawals
  - Per-transaction statuses
  - Keyset-paged withdrawal listing
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import h

from bridgewatch.exceptions import InvalidArgumentError
from bridgewatch.withdrawals import (
    WithdrawalPolicy,
    WithdrawalReader,
    WithdrawalStatus,
)

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
RESPECTED_TYPE = 1

POLICY = WithdrawalPolicy(
    challenge_period_seconds=100,
    dispute_game_finality_delay_seconds=50,
    proof_maturity_delay_seconds=70,
    respected_game_type=RESPECTED_TYPE,
)

PROVEN = "WithdrawalProven"
FINALIZED = "WithdrawalFinalized"


def seconds(n: int) -> timedelta:
    return timedelta(seconds=n)


@pytest.fixture
def reader(db):
    return WithdrawalReader(db)


async def add_withdrawal(db, nonce: int, l2_block: int = 1_000, l2_tx: int = 2):
    await db.add_withdrawal(nonce, h(100 + nonce), h(l2_tx), l2_block)
    return await WithdrawalReader(db).withdrawal_by_hash(h(100 + nonce))


# ═══════════════════════════════════════════════════════════════════════
#  SINGLE WITHDRAWAL
# ═══════════════════════════════════════════════════════════════════════

class TestStatus:

    @pytest.mark.asyncio
    async def test_waiting_for_state_root(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_output_root(0, 500)

        result = await reader.status(withdrawal, POLICY, T0)
        assert result.status is WithdrawalStatus.WAITING_FOR_STATE_ROOT

    @pytest.mark.asyncio
    async def test_ready_to_prove_from_output_root(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_output_root(0, 500)
        await db.add_output_root(1, 1_500)

        result = await reader.status(withdrawal, POLICY, T0)
        assert result.status is WithdrawalStatus.READY_TO_PROVE

    @pytest.mark.asyncio
    async def test_ready_to_prove_from_respected_game(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_dispute_game(0, 9, (5_000).to_bytes(32, "big"), T0)
        assert (await reader.status(withdrawal, POLICY, T0)).status is WithdrawalStatus.WAITING_FOR_STATE_ROOT

        await db.add_dispute_game(1, RESPECTED_TYPE, (1_000).to_bytes(32, "big"), T0)
        assert (await reader.status(withdrawal, POLICY, T0)).status is WithdrawalStatus.READY_TO_PROVE

    @pytest.mark.asyncio
    async def test_legacy_challenge_period(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_withdrawal_event(withdrawal.hash, PROVEN, T0, h(7), 500)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(10))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(100)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(101))
        assert result.status is WithdrawalStatus.READY_FOR_RELAY

    @pytest.mark.asyncio
    async def test_fault_proof_game(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_dispute_game(4, RESPECTED_TYPE, (1_000).to_bytes(32, "big"), T0 - seconds(10))
        await db.add_withdrawal_event(withdrawal.hash, PROVEN, T0, h(7), 500, game_index=4)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(500))
        assert result.status is WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE

    @pytest.mark.asyncio
    async def test_fault_proof_resolved(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_dispute_game(
            4, RESPECTED_TYPE, (1_000).to_bytes(32, "big"), T0 - seconds(10),
            resolved_at=T0 + seconds(40), status=2,
        )
        await db.add_withdrawal_event(withdrawal.hash, PROVEN, T0, h(7), 500, game_index=4)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(89))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(90)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(90))
        assert result.status is WithdrawalStatus.READY_FOR_RELAY

    @pytest.mark.asyncio
    async def test_unindexed_game_falls_back_to_challenge_period(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_withdrawal_event(withdrawal.hash, PROVEN, T0, h(7), 500, game_index=99)

        result = await reader.status(withdrawal, POLICY, T0 + seconds(10))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(100)

    @pytest.mark.asyncio
    async def test_relayed(self, db, reader):
        withdrawal = await add_withdrawal(db, 1)
        await db.add_withdrawal_event(withdrawal.hash, PROVEN, T0, h(7), 500, game_index=4)
        await db.add_withdrawal_event(withdrawal.hash, FINALIZED, T0 + seconds(5), h(8), 510)

        result = await reader.status(withdrawal, WithdrawalPolicy(), T0)
        assert result.status is WithdrawalStatus.RELAYED

    @pytest.mark.asyncio
    async def test_status_by_hash(self, db, reader):
        await add_withdrawal(db, 1)
        await db.add_output_root(0, 2_000)

        result = await reader.status_by_hash(h(101), POLICY, T0)
        assert result.status is WithdrawalStatus.READY_TO_PROVE
        assert await reader.status_by_hash(h(999), POLICY, T0) is None


# ═══════════════════════════════════════════════════════════════════════
#  PER TRANSACTION
# ═══════════════════════════════════════════════════════════════════════

class TestTransactionStatuses:

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, reader):
        assert await reader.transaction_statuses(h(2), POLICY, T0) == []

    @pytest.mark.asyncio
    async def test_statuses_per_withdrawal(self, db, reader):
        version_bit = 1 << 240
        relayed = await add_withdrawal(db, version_bit + 1)
        proven = await add_withdrawal(db, version_bit + 2)
        await add_withdrawal(db, version_bit + 3)
        await add_withdrawal(db, 4, l2_tx=3)

        await db.add_withdrawal_event(relayed.hash, FINALIZED, T0, h(8), 510)
        await db.add_withdrawal_event(proven.hash, PROVEN, T0, h(7), 500)

        statuses = await reader.transaction_statuses(h(2), POLICY, T0 + seconds(10))
        assert [s.nonce for s in statuses] == [1, 2, 3]
        assert [s.status for s in statuses] == [
            WithdrawalStatus.RELAYED,
            WithdrawalStatus.IN_CHALLENGE_PERIOD,
            WithdrawalStatus.WAITING_FOR_STATE_ROOT,
        ]
        assert statuses[0].relay_transaction_hash == h(8)
        assert statuses[1].relay_transaction_hash is None


# ═══════════════════════════════════════════════════════════════════════
#  LISTING
# ═══════════════════════════════════════════════════════════════════════

class TestListWithdrawals:

    @pytest.mark.asyncio
    async def test_descending_nonce_with_keyset_paging(self, db, reader):
        for nonce in (1, 2, 3, 1 << 240):
            await add_withdrawal(db, nonce)

        first_page = await reader.list_withdrawals(page_size=2)
        assert [w.msg_nonce for w in first_page] == [1 << 240, 3]
        assert first_page[0].nonce == 0

        second_page = await reader.list_withdrawals(page_size=2, before_nonce=first_page[-1].msg_nonce)
        assert [w.msg_nonce for w in second_page] == [2, 1]

        assert await reader.list_withdrawals(page_size=2, before_nonce=1) == []

    @pytest.mark.asyncio
    async def test_joined_details(self, db, reader):
        withdrawal = await add_withdrawal(db, 1, l2_block=1_000)
        await db.add_block(h(50), 1_000, timestamp=T0)
        await db.add_block(h(51), 1_000, consensus=False, timestamp=T0 + seconds(3))
        await db.add_transaction(h(2), 1_000, from_address="0x" + "ab" * 20)
        await db.add_withdrawal_event(withdrawal.hash, FINALIZED, T0, h(8), 510)

        [summary] = await reader.list_withdrawals()
        assert summary.hash == withdrawal.hash
        assert summary.l2_timestamp == T0
        assert summary.from_address == "0x" + "ab" * 20
        assert summary.relay_transaction_hash == h(8)

    @pytest.mark.asyncio
    async def test_missing_joins_are_none(self, db, reader):
        await add_withdrawal(db, 1)
        [summary] = await reader.list_withdrawals()
        assert summary.l2_timestamp is None
        assert summary.from_address is None
        assert summary.relay_transaction_hash is None

    @pytest.mark.asyncio
    async def test_invalid_page_size(self, reader):
        with pytest.raises(InvalidArgumentError):
            await reader.list_withdrawals(page_size=0)
