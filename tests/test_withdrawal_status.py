"""
Withdrawal Status Derivation Tests

Covers:
  - Relayed short-circuit
  - Readiness to prove from output roots and respected dispute games
  - Legacy challenge period rule
  - Fault-proof rule (game resolution, finality and maturity delays)
  - Policy defaults and configuration faults
  - Nonce masking
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import h

from bridgewatch.exceptions import ConfigurationError, InvalidArgumentError
from bridgewatch.withdrawals import (
    DisputeGame,
    OutputRoot,
    Withdrawal,
    WithdrawalEvent,
    WithdrawalEventType,
    WithdrawalPolicy,
    WithdrawalStatus,
    derive_status,
)
from bridgewatch.withdrawals.status import (
    games_cover_block,
    state_root_available,
    uses_legacy_rule,
)

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
RESPECTED_TYPE = 1

POLICY = WithdrawalPolicy(
    challenge_period_seconds=100,
    dispute_game_finality_delay_seconds=50,
    proof_maturity_delay_seconds=70,
    respected_game_type=RESPECTED_TYPE,
)

WITHDRAWAL = Withdrawal(msg_nonce=7, hash=h(1), l2_transaction_hash=h(2), l2_block_number=1_000)


def seconds(n: int) -> timedelta:
    return timedelta(seconds=n)


def proven(at: datetime, game_index=None) -> WithdrawalEvent:
    return WithdrawalEvent(
        withdrawal_hash=WITHDRAWAL.hash,
        l1_event_type=WithdrawalEventType.PROVEN,
        l1_timestamp=at,
        l1_transaction_hash=h(3),
        l1_block_number=500,
        game_index=game_index,
    )


def finalized(at: datetime = T0) -> WithdrawalEvent:
    return WithdrawalEvent(
        withdrawal_hash=WITHDRAWAL.hash,
        l1_event_type=WithdrawalEventType.FINALIZED,
        l1_timestamp=at,
        l1_transaction_hash=h(4),
        l1_block_number=600,
    )


def game(index=0, game_type=RESPECTED_TYPE, l2_block=1_000, created_at=T0 - seconds(10),
         resolved_at=None, status=0, extra_data=None) -> DisputeGame:
    if extra_data is None:
        extra_data = l2_block.to_bytes(32, "big")
    return DisputeGame(
        index=index,
        game_type=game_type,
        extra_data=extra_data,
        created_at=created_at,
        resolved_at=resolved_at,
        status=status,
    )


# ═══════════════════════════════════════════════════════════════════════
#  RELAYED
# ═══════════════════════════════════════════════════════════════════════

class TestRelayed:

    def test_finalized_event_wins(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0, finalized=finalized())
        assert result.status is WithdrawalStatus.RELAYED
        assert result.ready_at is None

    def test_finalized_ignores_everything_else(self):
        result = derive_status(
            WITHDRAWAL,
            policy=WithdrawalPolicy(),
            now=T0,
            finalized=finalized(),
            proof=proven(T0, game_index=0),
            game=game(status=1),
        )
        assert result.status is WithdrawalStatus.RELAYED

    def test_wrong_event_type_rejected(self):
        with pytest.raises(InvalidArgumentError):
            derive_status(WITHDRAWAL, policy=POLICY, now=T0, finalized=proven(T0))


# ═══════════════════════════════════════════════════════════════════════
#  BEFORE PROOF
# ═══════════════════════════════════════════════════════════════════════

class TestUnproven:

    def test_no_output_root(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0)
        assert result.status is WithdrawalStatus.WAITING_FOR_STATE_ROOT
        assert result.ready_at is None

    def test_output_root_covers_block(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0, latest_output_root=OutputRoot(5, 1_000))
        assert result.status is WithdrawalStatus.READY_TO_PROVE

    def test_output_root_below_block(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0, latest_output_root=OutputRoot(5, 999))
        assert result.status is WithdrawalStatus.WAITING_FOR_STATE_ROOT

    def test_respected_game_covers_block(self):
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0,
            latest_output_root=OutputRoot(5, 10),
            respected_games=[game(index=3, l2_block=900), game(index=4, l2_block=1_200)],
        )
        assert result.status is WithdrawalStatus.READY_TO_PROVE
        assert result.ready_at is None

    def test_games_ignored_without_respected_type(self):
        policy = WithdrawalPolicy(challenge_period_seconds=100)
        assert not state_root_available(1_000, None, [game(l2_block=2_000)], policy)

    def test_games_of_other_type_ignored(self):
        assert not state_root_available(1_000, None, [game(game_type=9, l2_block=2_000)], POLICY)

    def test_undecodable_extra_data_skipped(self):
        games = [game(index=1, extra_data=b"\x01"), game(index=2, l2_block=1_000)]
        assert games_cover_block(games, 1_000)
        assert not games_cover_block(games[:1], 1)


# ═══════════════════════════════════════════════════════════════════════
#  LEGACY CHALLENGE PERIOD
# ═══════════════════════════════════════════════════════════════════════

class TestLegacyRule:

    def test_in_challenge_period(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0 + seconds(30), proof=proven(T0))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(100)

    def test_boundary_is_still_in_challenge(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0 + seconds(100), proof=proven(T0))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD

    def test_ready_after_period(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0 + seconds(101), proof=proven(T0))
        assert result.status is WithdrawalStatus.READY_FOR_RELAY
        assert result.ready_at is None

    def test_default_challenge_period(self):
        policy = WithdrawalPolicy()
        result = derive_status(WITHDRAWAL, policy=policy, now=T0 + seconds(1), proof=proven(T0))
        assert result.ready_at == T0 + timedelta(days=7)

    def test_game_created_after_proof_uses_legacy_rule(self):
        late_game = game(created_at=T0 + seconds(5), resolved_at=T0 + seconds(6), status=2)
        proof = proven(T0, game_index=0)
        assert uses_legacy_rule(proof, late_game)
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0 + seconds(10), proof=proof, game=late_game)
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(100)

    def test_missing_game_uses_legacy_rule(self):
        result = derive_status(WITHDRAWAL, policy=POLICY, now=T0 + seconds(200), proof=proven(T0, game_index=3))
        assert result.status is WithdrawalStatus.READY_FOR_RELAY

    def test_legacy_rule_needs_no_fault_proof_delays(self):
        policy = WithdrawalPolicy(challenge_period_seconds=100)
        result = derive_status(WITHDRAWAL, policy=policy, now=T0, proof=proven(T0))
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD


# ═══════════════════════════════════════════════════════════════════════
#  FAULT PROOFS
# ═══════════════════════════════════════════════════════════════════════

class TestFaultProofRule:

    def test_game_in_progress(self):
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0 + seconds(1000),
            proof=proven(T0, game_index=0), game=game(status=0),
        )
        assert result.status is WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE
        assert result.ready_at is None

    def test_challenger_won(self):
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0 + seconds(1000),
            proof=proven(T0, game_index=0), game=game(status=1, resolved_at=T0 + seconds(40)),
        )
        assert result.status is WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE

    def test_one_second_before_ready(self):
        # max(T + F, P + M) = max(T0 + 40 + 50, T0 + 70) = T0 + 90
        won = game(status=2, resolved_at=T0 + seconds(40))
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0 + seconds(89),
            proof=proven(T0, game_index=0), game=won,
        )
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(90)

    def test_ready_exactly_at_boundary(self):
        won = game(status=2, resolved_at=T0 + seconds(40))
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0 + seconds(90),
            proof=proven(T0, game_index=0), game=won,
        )
        assert result.status is WithdrawalStatus.READY_FOR_RELAY

    def test_proof_maturity_dominates(self):
        # resolved early: T + F = T0 + 51, P + M = T0 + 70
        won = game(status=2, resolved_at=T0 + seconds(1))
        result = derive_status(
            WITHDRAWAL, policy=POLICY, now=T0 + seconds(60),
            proof=proven(T0, game_index=0), game=won,
        )
        assert result.status is WithdrawalStatus.IN_CHALLENGE_PERIOD
        assert result.ready_at == T0 + seconds(70)

    def test_missing_finality_delay_is_a_configuration_fault(self):
        policy = WithdrawalPolicy(proof_maturity_delay_seconds=70)
        with pytest.raises(ConfigurationError):
            derive_status(
                WITHDRAWAL, policy=policy, now=T0,
                proof=proven(T0, game_index=0), game=game(status=2, resolved_at=T0),
            )

    def test_missing_maturity_delay_is_a_configuration_fault(self):
        policy = WithdrawalPolicy(dispute_game_finality_delay_seconds=50)
        with pytest.raises(ConfigurationError):
            derive_status(
                WITHDRAWAL, policy=policy, now=T0,
                proof=proven(T0, game_index=0), game=game(status=2, resolved_at=T0),
            )

    def test_unresolved_game_needs_no_delays(self):
        result = derive_status(
            WITHDRAWAL, policy=WithdrawalPolicy(), now=T0,
            proof=proven(T0, game_index=0), game=game(status=0),
        )
        assert result.status is WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE


# ═══════════════════════════════════════════════════════════════════════
#  INPUTS
# ═══════════════════════════════════════════════════════════════════════

class TestInputs:

    def test_naive_now_rejected(self):
        with pytest.raises(InvalidArgumentError):
            derive_status(WITHDRAWAL, policy=POLICY, now=datetime(2024, 3, 1))

    def test_nonce_masking(self):
        withdrawal = Withdrawal(msg_nonce=(1 << 240) + 42, hash=h(1), l2_transaction_hash=h(2), l2_block_number=1)
        assert withdrawal.nonce == 42

    def test_status_labels(self):
        assert str(WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE) == "Waiting a game to resolve"
        assert [s.value for s in WithdrawalStatus] == [
            "Waiting for state root",
            "Ready to prove",
            "Waiting a game to resolve",
            "In challenge period",
            "Ready for relay",
            "Relayed",
        ]
