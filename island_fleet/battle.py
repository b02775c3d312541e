"""Attack resolution for the island battle mode."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from .models import (
    CANNON,
    HIT as HIT_MARK,
    LAND,
    SHIP,
    WATER,
    AttackLogEntry,
    GameState,
    Player,
)
from .victory import check_winner, is_player_alive

logger = logging.getLogger(__name__)

# outcome types stored in the attack log
MISS = "miss"
HIT = "hit"
SUNK = "sunk"
LAND_HIT = "land"

MSG_MISS = "miss"
MSG_LAND = "land"
MSG_CANNON = "hit (cannon)"
MSG_SHIP = "hit (ship)"
MSG_SUNK = "sunk"
MSG_REPEAT = "repeat"


class AttackError(ValueError):
    """Raised for attacks that cannot be resolved, e.g. unknown cells."""


@dataclass
class AttackOutcome:
    message: str
    type: str
    bonus_shots: int = 0
    already_hit: bool = False
    position: Optional[str] = None
    target_id: Optional[int] = None


def resolve_attack(target: Player, position: str) -> Tuple[Player, AttackOutcome]:
    """Fire at ``position`` on ``target``'s board.

    Returns the updated copy of the target together with the outcome.  Firing
    again at a spent land or cannon cell yields another land hit with a bonus
    shot; repeating a spent water or ship cell is a harmless miss.
    """
    if position not in target.board:
        raise AttackError(f"No cell at {position!r}")
    updated = target.clone()
    cell = updated.board[position]

    def outcome(message: str, kind: str, bonus: int = 0, repeat: bool = False) -> AttackOutcome:
        return AttackOutcome(
            message=message,
            type=kind,
            bonus_shots=bonus,
            already_hit=repeat,
            position=position,
            target_id=target.id,
        )

    if cell.hit == HIT_MARK:
        if cell.type in (LAND, CANNON):
            return updated, outcome(MSG_LAND, LAND_HIT, 1, True)
        return updated, outcome(MSG_REPEAT, MISS, 0, True)

    cell.hit = HIT_MARK

    if cell.type == WATER:
        return updated, outcome(MSG_MISS, MISS)

    if cell.type == LAND:
        return updated, outcome(MSG_LAND, LAND_HIT, 1)

    if cell.type == CANNON:
        if position in updated.cannons:
            updated.cannons.remove(position)
            # the shot budget shrinks when the owner's next turn starts
            return updated, outcome(MSG_CANNON, HIT)
        return updated, outcome(MSG_LAND, LAND_HIT, 1)

    if cell.type == SHIP:
        ship = updated.find_ship(cell.ship_id)
        if ship is not None:
            ship.register_hit()
            if ship.sunk:
                return updated, outcome(MSG_SUNK, SUNK)
            return updated, outcome(MSG_SHIP, HIT)

    return updated, outcome(MSG_MISS, MISS)


def apply_attack(
    state: GameState,
    attacker_id: int,
    target_id: int,
    position: str,
) -> Tuple[GameState, AttackOutcome]:
    """Resolve an attack inside ``state`` and record it in the attack log."""
    updated = state.clone()
    target = updated.player_by_id(target_id)
    if target is None:
        raise AttackError(f"Unknown target player: {target_id}")

    new_target, result = resolve_attack(target, position)
    new_target.is_alive = is_player_alive(new_target)
    updated.replace_player(new_target)

    updated.attack_history.append(
        AttackLogEntry(
            id=uuid.uuid4().hex,
            attacker_id=attacker_id,
            target_id=target_id,
            position=position,
            result=result.message,
            type=result.type,
        )
    )
    if not new_target.is_alive and target.is_alive:
        logger.info("Player %s lost the last ship", target_id)

    updated.winner = check_winner(updated.players)
    if updated.winner is not None and state.winner is None:
        logger.info("Player %s wins the match", updated.winner)
    return updated, result


__all__ = [
    "AttackError",
    "AttackOutcome",
    "HIT",
    "LAND_HIT",
    "MISS",
    "SUNK",
    "apply_attack",
    "resolve_attack",
]
