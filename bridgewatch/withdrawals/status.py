"""
Withdrawal status derivation.

Pure functions from a withdrawal's stored facts, the policy constants and
the current time to one of the six withdrawal states. Nothing here touches
the store or the clock; ``WithdrawalReader`` gathers the inputs.

Paths through the states:

  legacy:       Waiting for state root -> Ready to prove -> In challenge period
                -> Ready for relay -> Relayed
  fault proofs: Waiting for state root -> Ready to prove -> Waiting a game to
                resolve -> In challenge period -> Ready for relay -> Relayed
"""

from datetime import datetime
from typing import Iterable, Optional

from ..encoding import decode_uint256_word
from ..exceptions import InvalidArgumentError
from ..logger import get_logger
from .types import (
    DisputeGame,
    OutputRoot,
    StatusResult,
    Withdrawal,
    WithdrawalEvent,
    WithdrawalEventType,
    WithdrawalPolicy,
    WithdrawalStatus,
)

logger = get_logger(__name__)


def _require_aware(now: datetime) -> datetime:
    if now.tzinfo is None:
        raise InvalidArgumentError("now must be a timezone-aware datetime")
    return now


def game_l2_block_number(game: DisputeGame) -> int:
    """L2 block number claimed by a game, decoded from its extra data."""
    return decode_uint256_word(game.extra_data)


def games_cover_block(games: Iterable[DisputeGame], l2_block_number: int) -> bool:
    """True if any game claims an output at or beyond ``l2_block_number``."""
    for game in games:
        try:
            claimed = game_l2_block_number(game)
        except ValueError as e:
            logger.warning(f"Dispute game {game.index} has undecodable extra data: {e}")
            continue
        if l2_block_number <= claimed:
            return True
    return False


def state_root_available(
    l2_block_number: int,
    latest_output_root: Optional[OutputRoot],
    respected_games: Iterable[DisputeGame],
    policy: WithdrawalPolicy,
) -> bool:
    """
    Whether a state root covering ``l2_block_number`` has been published.

    Either the latest output root reaches the block, or (when a respected
    game type is configured) one of the recent games of that type does.
    """
    last_root_block = latest_output_root.l2_block_number if latest_output_root else 0
    if l2_block_number <= last_root_block:
        return True
    if policy.respected_game_type is None:
        return False
    games = [g for g in respected_games if g.game_type == policy.respected_game_type]
    return games_cover_block(games, l2_block_number)


def unproven_status(state_root_ready: bool) -> StatusResult:
    if state_root_ready:
        return StatusResult(WithdrawalStatus.READY_TO_PROVE)
    return StatusResult(WithdrawalStatus.WAITING_FOR_STATE_ROOT)


def uses_legacy_rule(proof: WithdrawalEvent, game: Optional[DisputeGame]) -> bool:
    """
    A proof is judged by the plain challenge period when it references no
    game, or its game was created after the proof (the proof predates game
    tracking for this withdrawal).
    """
    if proof.game_index is None or game is None:
        return True
    return proof.l1_timestamp < game.created_at


def legacy_status(proven_at: datetime, policy: WithdrawalPolicy, now: datetime) -> StatusResult:
    ready_at = proven_at + policy.challenge_period
    if now > ready_at:
        return StatusResult(WithdrawalStatus.READY_FOR_RELAY)
    return StatusResult(WithdrawalStatus.IN_CHALLENGE_PERIOD, ready_at)


def fault_proof_status(proven_at: datetime, game: DisputeGame, policy: WithdrawalPolicy,
                       now: datetime) -> StatusResult:
    """
    Status of a withdrawal proven against ``game``.

    Raises:
        ConfigurationError: when the finality or maturity delay is not configured
    """
    if not game.defender_won or game.resolved_at is None:
        return StatusResult(WithdrawalStatus.WAITING_FOR_GAME_TO_RESOLVE)

    finality_delayed = game.resolved_at + policy.dispute_game_finality_delay
    proof_delayed = proven_at + policy.proof_maturity_delay
    ready_at = max(finality_delayed, proof_delayed)

    if now < ready_at:
        return StatusResult(WithdrawalStatus.IN_CHALLENGE_PERIOD, ready_at)
    return StatusResult(WithdrawalStatus.READY_FOR_RELAY)


def proven_status(proof: WithdrawalEvent, game: Optional[DisputeGame], policy: WithdrawalPolicy,
                  now: datetime) -> StatusResult:
    _require_aware(now)
    if uses_legacy_rule(proof, game):
        return legacy_status(proof.l1_timestamp, policy, now)
    return fault_proof_status(proof.l1_timestamp, game, policy, now)


def derive_status(
    withdrawal: Withdrawal,
    *,
    policy: WithdrawalPolicy,
    now: datetime,
    finalized: Optional[WithdrawalEvent] = None,
    proof: Optional[WithdrawalEvent] = None,
    game: Optional[DisputeGame] = None,
    latest_output_root: Optional[OutputRoot] = None,
    respected_games: Iterable[DisputeGame] = (),
) -> StatusResult:
    """
    Status of ``withdrawal`` from all of its inputs.

    Args:
        withdrawal: The withdrawal record
        policy: Timing constants
        now: Current time (timezone-aware)
        finalized: Its WithdrawalFinalized event, if any
        proof: Its WithdrawalProven event, if any
        game: The dispute game referenced by ``proof``, if it is stored
        latest_output_root: The most recent output root, if any
        respected_games: Recent games of the respected type

    Returns:
        The status and, while in a challenge window, the time it ends.
    """
    _require_aware(now)
    if finalized is not None:
        if finalized.l1_event_type is not WithdrawalEventType.FINALIZED:
            raise InvalidArgumentError(f"Expected a finalized event, got {finalized.l1_event_type.value}")
        return StatusResult(WithdrawalStatus.RELAYED)

    if proof is None:
        return unproven_status(
            state_root_available(withdrawal.l2_block_number, latest_output_root, respected_games, policy)
        )

    if proof.l1_event_type is not WithdrawalEventType.PROVEN:
        raise InvalidArgumentError(f"Expected a proven event, got {proof.l1_event_type.value}")
    return proven_status(proof, game, policy, now)
