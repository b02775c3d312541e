"""Winner detection derived from player liveness."""
from __future__ import annotations

from typing import List, Optional, Sequence

from .models import GameState, Player


def is_player_alive(player: Player) -> bool:
    """A player without ships (still in setup) counts as alive."""
    if not player.ships:
        return True
    return not all(ship.sunk for ship in player.ships)


def alive_players(players: Sequence[Player]) -> List[Player]:
    return [player for player in players if is_player_alive(player)]


def check_winner(players: Sequence[Player]) -> Optional[int]:
    """Return the id of the last player standing, or ``None``."""
    alive = alive_players(players)
    if len(alive) == 1:
        return alive[0].id
    return None


def refresh_liveness(state: GameState) -> GameState:
    """Return a copy of ``state`` with ``is_alive`` flags and ``winner`` recomputed."""
    updated = state.clone()
    for player in updated.players:
        player.is_alive = is_player_alive(player)
    updated.winner = check_winner(updated.players)
    return updated


__all__ = ["alive_players", "check_winner", "is_player_alive", "refresh_liveness"]
