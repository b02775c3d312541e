"""Data models for the 8×8 island battle mode (2–4 players)."""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field as dc_field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .parser import BOARD_SIZE, ROWS, all_keys

COLS = list(range(1, BOARD_SIZE + 1))

# (size, count) pairs: 5 ships occupying 11 cells.
SHIP_SIZES: List[Tuple[int, int]] = [(4, 1), (3, 1), (2, 1), (1, 2)]
LAND_COUNT = 12
CANNON_COUNT = 3
MAX_ISLANDS = 2
MIN_PLAYERS = 2
MAX_PLAYERS = 4

WATER = "water"
LAND = "land"
SHIP = "ship"
CANNON = "cannon"
CELL_TYPES = (WATER, LAND, SHIP, CANNON)

HIT_NONE = "none"
HIT = "hit"

PHASE_SETUP = "setup"
PHASE_BATTLE = "battle"

STEP_SHIPS = "ships"
STEP_LAND = "land"
STEP_CANNONS = "cannons"
STEP_COMPLETE = "complete"
SETUP_STEPS = [STEP_SHIPS, STEP_LAND, STEP_CANNONS, STEP_COMPLETE]

ROOM_WAITING = "waiting"
ROOM_PLAYING = "playing"
ROOM_FINISHED = "finished"


@dataclass
class Cell:
    """Occupancy of one board square.  ``hit`` only ever moves none → hit."""

    type: str = WATER
    hit: str = HIT_NONE
    ship_id: Optional[str] = None

    @property
    def is_hit(self) -> bool:
        return self.hit == HIT


def new_board() -> Dict[str, Cell]:
    """Return a fully populated board of 64 water cells keyed ``A1``..``H8``."""
    return {key: Cell() for key in all_keys()}


@dataclass
class Ship:
    id: str
    size: int
    positions: List[str]
    hits: int = 0
    sunk: bool = False

    def register_hit(self) -> None:
        self.hits += 1
        if self.hits >= self.size:
            self.sunk = True


@dataclass
class Player:
    """Participant of the match together with the board they defend."""

    id: int
    name: str
    user_id: Optional[str] = None
    board: Dict[str, Cell] = dc_field(default_factory=new_board)
    ships: List[Ship] = dc_field(default_factory=list)
    cannons: List[str] = dc_field(default_factory=list)
    land_cells: List[str] = dc_field(default_factory=list)
    available_shots: int = 0
    bonus_shots: int = 0
    # bonus earned during the ongoing turn, usable from the next one
    pending_bonus_shots: int = 0
    is_alive: bool = True
    setup_step: str = STEP_SHIPS

    def cell(self, key: str) -> Optional[Cell]:
        return self.board.get(key)

    def find_ship(self, ship_id: Optional[str]) -> Optional[Ship]:
        for ship in self.ships:
            if ship.id == ship_id:
                return ship
        return None

    def clone(self) -> "Player":
        return deepcopy(self)


@dataclass
class AttackLogEntry:
    id: str
    attacker_id: int
    target_id: int
    position: str
    result: str
    type: str


@dataclass
class GameState:
    """Shared match document replicated between all clients of a room."""

    players: List[Player] = dc_field(default_factory=list)
    current_player_index: int = 0
    current_turn_user_id: Optional[str] = None
    phase: str = PHASE_SETUP
    setup_step: str = STEP_SHIPS
    winner: Optional[int] = None
    round: int = 1
    attack_history: List[AttackLogEntry] = dc_field(default_factory=list)
    # (target id, position) pairs already attempted by the turn owner
    shots_this_turn: List[Tuple[int, str]] = dc_field(default_factory=list)
    version: int = 0

    @property
    def current_player(self) -> Optional[Player]:
        if 0 <= self.current_player_index < len(self.players):
            return self.players[self.current_player_index]
        return None

    @property
    def finished(self) -> bool:
        return self.winner is not None

    def player_by_id(self, player_id: int) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def player_by_user(self, user_id: Optional[str]) -> Optional[Player]:
        if user_id is None:
            return None
        for player in self.players:
            if player.user_id == user_id:
                return player
        return None

    def index_of(self, player_id: int) -> int:
        for idx, player in enumerate(self.players):
            if player.id == player_id:
                return idx
        raise ValueError(f"Unknown player id: {player_id}")

    def replace_player(self, player: Player) -> None:
        self.players[self.index_of(player.id)] = player

    def clone(self) -> "GameState":
        return deepcopy(self)


@dataclass
class RoomPlayer:
    id: str
    name: str
    is_ready: bool = False
    is_host: bool = False


@dataclass
class Room:
    """Lobby envelope around the shared game document."""

    id: str
    host_id: str
    players: List[RoomPlayer] = dc_field(default_factory=list)
    max_players: int = MAX_PLAYERS
    status: str = ROOM_WAITING
    current_player_index: int = 0
    created_at: str = dc_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    game_state: Optional[GameState] = None
    setup_ready: List[str] = dc_field(default_factory=list)

    def member_index(self, user_id: str) -> int:
        for idx, member in enumerate(self.players):
            if member.id == user_id:
                return idx
        return -1

    def clone(self) -> "Room":
        return deepcopy(self)


def create_player(player_id: int, name: str = "", user_id: Optional[str] = None) -> Player:
    return Player(
        id=player_id,
        name=name.strip() or f"Player {player_id}",
        user_id=user_id,
    )


def create_initial_state(room: Room) -> GameState:
    """Build an empty setup-phase state from the room membership.

    In-game ids are the 1-based membership positions; the member's stable id
    is kept as ``user_id`` so turn ownership survives reordering.
    """
    if not MIN_PLAYERS <= len(room.players) <= MAX_PLAYERS:
        raise ValueError(
            f"A match needs {MIN_PLAYERS}-{MAX_PLAYERS} players, got {len(room.players)}"
        )
    players = [
        create_player(idx + 1, member.name, member.id)
        for idx, member in enumerate(room.players)
    ]
    return GameState(
        players=players,
        current_player_index=0,
        current_turn_user_id=None,
        phase=PHASE_SETUP,
        setup_step=STEP_SHIPS,
    )


__all__ = [
    "AttackLogEntry",
    "CANNON",
    "CANNON_COUNT",
    "CELL_TYPES",
    "COLS",
    "Cell",
    "GameState",
    "HIT",
    "HIT_NONE",
    "LAND",
    "LAND_COUNT",
    "MAX_ISLANDS",
    "MAX_PLAYERS",
    "MIN_PLAYERS",
    "PHASE_BATTLE",
    "PHASE_SETUP",
    "Player",
    "ROOM_FINISHED",
    "ROOM_PLAYING",
    "ROOM_WAITING",
    "ROWS",
    "Room",
    "RoomPlayer",
    "SETUP_STEPS",
    "SHIP",
    "SHIP_SIZES",
    "STEP_CANNONS",
    "STEP_COMPLETE",
    "STEP_LAND",
    "STEP_SHIPS",
    "Ship",
    "WATER",
    "create_initial_state",
    "create_player",
    "new_board",
]
