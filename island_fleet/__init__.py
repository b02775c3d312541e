"""Rules engine and state replication for the 8×8 island battle game."""

from . import battle, placement, session, storage, sync, turns, victory
from .models import AttackLogEntry, Cell, GameState, Player, Room, RoomPlayer, Ship
from .session import GameSession, IntentResult

__all__ = [
    "battle",
    "placement",
    "session",
    "storage",
    "sync",
    "turns",
    "victory",
    "AttackLogEntry",
    "Cell",
    "GameSession",
    "GameState",
    "IntentResult",
    "Player",
    "Room",
    "RoomPlayer",
    "Ship",
]
