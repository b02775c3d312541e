"""Turn bookkeeping: shot budgets, bonus carry-over and turn rotation."""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from .battle import AttackOutcome, apply_attack
from .models import (
    MIN_PLAYERS,
    PHASE_BATTLE,
    STEP_COMPLETE,
    GameState,
    Player,
)
from .parser import is_on_board
from .placement import is_setup_complete

logger = logging.getLogger(__name__)


class TurnError(ValueError):
    """Raised when an action is not allowed at this point of the turn."""


def shots_total(player: Player) -> int:
    return max(0, player.available_shots + player.bonus_shots)


def shots_remaining(state: GameState) -> int:
    player = state.current_player
    if player is None:
        return 0
    return max(0, shots_total(player) - len(state.shots_this_turn))


def next_alive_index(
    players: Sequence[Player], index: int, winner: Optional[int] = None
) -> int:
    """Return the index of the next player allowed to move after ``index``.

    Eliminated players are skipped unless a winner is already recorded.  The
    walk visits each seat at most once, so it terminates even when at most one
    player is left alive without a recorded winner.
    """
    count = len(players)
    if count == 0:
        return index
    idx = index
    for _ in range(count):
        idx = (idx + 1) % count
        if winner is not None or players[idx].is_alive:
            return idx
    return index


def _require_battle(state: GameState) -> None:
    if state.phase != PHASE_BATTLE:
        raise TurnError("The battle has not started yet")
    if state.winner is not None:
        raise TurnError("The game is over")


def take_shot(
    state: GameState, target_id: int, position: str
) -> Tuple[GameState, AttackOutcome]:
    """Spend one shot of the current turn on ``position`` of ``target_id``."""
    _require_battle(state)
    attacker = state.current_player
    if attacker is None:
        raise TurnError("Nobody holds the turn")
    if shots_remaining(state) <= 0:
        raise TurnError("No shots left this turn")
    target = state.player_by_id(target_id)
    if target is None:
        raise TurnError(f"Unknown target player: {target_id}")
    if target.id == attacker.id:
        raise TurnError("You cannot fire at your own board")
    if not target.is_alive:
        raise TurnError(f"{target.name} is already out of the game")
    if not is_on_board(position):
        raise TurnError(f"Coordinate {position!r} is off the board")
    if (target_id, position) in state.shots_this_turn:
        raise TurnError("You already fired at this cell this turn")

    updated, outcome = apply_attack(state, attacker.id, target_id, position)
    updated.shots_this_turn.append((target_id, position))
    if outcome.bonus_shots:
        shooter = updated.players[updated.current_player_index]
        shooter.pending_bonus_shots += outcome.bonus_shots
    logger.debug(
        "Player %s fired at %s of player %s: %s",
        attacker.id,
        position,
        target_id,
        outcome.type,
    )
    return updated, outcome


def end_turn(state: GameState) -> GameState:
    """Close the current turn and hand it to the next live player.

    Bonus earned this turn becomes usable next turn and the regular budget is
    reset to the player's surviving cannons.
    """
    _require_battle(state)
    player = state.current_player
    if player is None:
        raise TurnError("Nobody holds the turn")
    if not state.shots_this_turn and shots_total(player) > 0:
        raise TurnError("Fire at least once before ending the turn")

    updated = state.clone()
    idx = updated.current_player_index
    ending = updated.players[idx]
    ending.bonus_shots = ending.pending_bonus_shots
    ending.pending_bonus_shots = 0
    ending.available_shots = len(ending.cannons)

    nxt = next_alive_index(updated.players, idx, updated.winner)
    if nxt <= idx:
        updated.round += 1
    updated.current_player_index = nxt
    updated.current_turn_user_id = updated.players[nxt].user_id
    updated.shots_this_turn = []
    logger.info("Turn passes from player %s to player %s", ending.id, updated.players[nxt].id)
    return updated


def start_battle(state: GameState) -> GameState:
    """Switch a fully set up match into the battle phase."""
    if state.phase == PHASE_BATTLE:
        raise TurnError("The battle has already started")
    if len(state.players) < MIN_PLAYERS:
        raise TurnError(f"At least {MIN_PLAYERS} players are required")
    pending = [player.name for player in state.players if not is_setup_complete(player)]
    if pending:
        raise TurnError(f"Still setting up: {', '.join(pending)}")

    updated = state.clone()
    for player in updated.players:
        player.available_shots = len(player.cannons)
        player.bonus_shots = 0
        player.pending_bonus_shots = 0
        player.is_alive = True
    updated.phase = PHASE_BATTLE
    updated.setup_step = STEP_COMPLETE
    updated.current_player_index = 0
    updated.current_turn_user_id = updated.players[0].user_id
    updated.winner = None
    updated.round = 1
    updated.shots_this_turn = []
    logger.info("Battle starts with %s players", len(updated.players))
    return updated


__all__ = [
    "TurnError",
    "end_turn",
    "next_alive_index",
    "shots_remaining",
    "shots_total",
    "start_battle",
    "take_shot",
]
