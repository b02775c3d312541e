"""Conversion of game and room documents to and from their stored form.

The realtime store has no mapping type for boards and silently drops empty
arrays, so documents are flattened on the way out and migrated once on the
way in.  Everything past :func:`deserialize_state` works with the canonical
dataclasses only.
"""
from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional

from .models import (
    CELL_TYPES,
    HIT,
    HIT_NONE,
    PHASE_BATTLE,
    PHASE_SETUP,
    SETUP_STEPS,
    STEP_CANNONS,
    STEP_COMPLETE,
    STEP_LAND,
    STEP_SHIPS,
    WATER,
    AttackLogEntry,
    Cell,
    GameState,
    Player,
    Room,
    RoomPlayer,
    Ship,
)
from .parser import all_keys, is_on_board
from .victory import refresh_liveness

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _cell_to_payload(cell: Cell) -> dict:
    payload: Dict[str, Any] = {"type": cell.type, "hit": cell.hit}
    if cell.ship_id is not None:
        payload["shipId"] = cell.ship_id
    return payload


def _ship_to_payload(ship: Ship) -> dict:
    return {
        "id": ship.id,
        "size": ship.size,
        "positions": list(ship.positions),
        "hits": ship.hits,
        "sunk": ship.sunk,
    }


def _player_to_payload(player: Player) -> dict:
    return {
        "id": player.id,
        "userId": player.user_id,
        "name": player.name,
        # ordered (key, cell) pairs in row-major order
        "board": [[key, _cell_to_payload(player.board[key])] for key in all_keys() if key in player.board],
        "ships": [_ship_to_payload(ship) for ship in player.ships],
        "cannons": list(player.cannons),
        "landCells": list(player.land_cells),
        "availableShots": player.available_shots,
        "bonusShots": player.bonus_shots,
        "pendingBonusShots": player.pending_bonus_shots,
        "isAlive": player.is_alive,
        "setupStep": player.setup_step,
    }


def _entry_to_payload(entry: AttackLogEntry) -> dict:
    return {
        "id": entry.id,
        "attackerId": entry.attacker_id,
        "targetId": entry.target_id,
        "position": entry.position,
        "result": entry.result,
        "type": entry.type,
    }


def serialize_state(state: GameState) -> dict:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "version": state.version,
        "players": [_player_to_payload(player) for player in state.players],
        "currentPlayerIndex": state.current_player_index,
        "currentTurnUserId": state.current_turn_user_id,
        "phase": state.phase,
        "setupStep": state.setup_step,
        "winner": state.winner,
        "round": state.round,
        "attackHistory": [_entry_to_payload(entry) for entry in state.attack_history],
        "shotsThisTurn": [[target, position] for target, position in state.shots_this_turn],
    }


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> List[Any]:
    """Return ``value`` as a list; the store turns sparse arrays into dicts."""
    if value is None:
        return []
    if isinstance(value, dict):
        try:
            return [value[k] for k in sorted(value, key=lambda k: int(k))]
        except (TypeError, ValueError):
            return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _board_pairs(raw: Any) -> Dict[str, dict]:
    cells: Dict[str, dict] = {}
    if isinstance(raw, dict) and all(is_on_board(k) for k in raw):
        items = list(raw.items())
    else:
        items = []
        for pair in _as_list(raw):
            if isinstance(pair, (list, tuple)) and len(pair) >= 2:
                items.append((pair[0], pair[1]))
    for key, cell in items:
        if is_on_board(key) and isinstance(cell, dict):
            cells[key] = dict(cell)
    return cells


def _dicts(value: Any) -> List[dict]:
    """List entries that are objects; the store leaves ``null`` holes in arrays."""
    return [item for item in _as_list(value) if isinstance(item, dict)]


def _cells(value: Any) -> List[str]:
    return [pos for pos in _as_list(value) if is_on_board(pos)]


def _migrate_ship(raw: dict) -> dict:
    ship = dict(raw)
    ship["positions"] = _cells(ship.get("positions"))
    return ship


def _derive_setup_step(player: dict) -> str:
    ships = player.get("ships") or []
    land = player.get("landCells") or []
    cannons = player.get("cannons") or []
    if cannons:
        return STEP_COMPLETE
    if land:
        return STEP_CANNONS
    if ships:
        return STEP_LAND
    return STEP_SHIPS


def _migrate_player(raw: dict, index: int) -> dict:
    player = dict(raw)
    player.setdefault("id", index + 1)
    player.setdefault("name", f"Player {player['id']}")
    player.setdefault("userId", None)
    player["ships"] = [_migrate_ship(ship) for ship in _dicts(player.get("ships"))]
    for key in ("cannons", "landCells"):
        player[key] = _cells(player.get(key))
    player["bonusShots"] = int(player.get("bonusShots") or 0)
    player["pendingBonusShots"] = int(player.get("pendingBonusShots") or 0)
    player["availableShots"] = int(player.get("availableShots") or 0)
    player.setdefault("isAlive", True)
    if player.get("setupStep") not in SETUP_STEPS:
        player["setupStep"] = _derive_setup_step(player)

    cells = _board_pairs(player.get("board"))
    missing = [key for key in all_keys() if key not in cells]
    if missing and cells:
        logger.warning("Player %s board lacks %s cells; filling with water", player["id"], len(missing))
    for key in missing:
        cells[key] = {"type": WATER, "hit": HIT_NONE}
    player["board"] = [[key, cells[key]] for key in all_keys()]
    return player


def migrate_payload(data: dict) -> dict:
    """Bring a stored game document up to :data:`SCHEMA_VERSION`.

    Legacy documents (no ``schemaVersion``) predate the round counter, bonus
    bookkeeping, turn tracking and the version counter; those fields get
    their defaults here and nowhere else.
    """
    payload = deepcopy(data)
    schema = int(payload.get("schemaVersion") or 1)
    if schema > SCHEMA_VERSION:
        logger.warning("Game document schema %s is newer than %s", schema, SCHEMA_VERSION)

    payload["players"] = [
        _migrate_player(raw, idx) for idx, raw in enumerate(_dicts(payload.get("players")))
    ]
    payload["round"] = int(payload.get("round") or 1)
    payload["attackHistory"] = _dicts(payload.get("attackHistory"))
    payload["shotsThisTurn"] = _as_list(payload.get("shotsThisTurn"))
    payload["version"] = int(payload.get("version") or 0)
    payload.setdefault("currentPlayerIndex", 0)
    payload.setdefault("currentTurnUserId", None)
    payload.setdefault("phase", PHASE_SETUP)
    payload.setdefault("setupStep", STEP_SHIPS)
    payload.setdefault("winner", None)
    payload["schemaVersion"] = SCHEMA_VERSION
    return payload


# ---------------------------------------------------------------------------
# Deserialisation
# ---------------------------------------------------------------------------

def _cell_from_payload(data: dict) -> Cell:
    cell_type = data.get("type", WATER)
    if cell_type not in CELL_TYPES:
        cell_type = WATER
    return Cell(
        type=cell_type,
        hit=HIT if data.get("hit") == HIT else HIT_NONE,
        ship_id=data.get("shipId"),
    )


def _ship_from_payload(data: dict) -> Ship:
    size = int(data.get("size", 1))
    hits = int(data.get("hits", 0))
    return Ship(
        id=str(data.get("id", "")),
        size=size,
        positions=[str(pos) for pos in _as_list(data.get("positions"))],
        hits=hits,
        sunk=hits >= size,
    )


def _player_from_payload(data: dict) -> Player:
    return Player(
        id=int(data["id"]),
        name=str(data.get("name", "")),
        user_id=data.get("userId"),
        board={key: _cell_from_payload(cell) for key, cell in data["board"]},
        ships=[_ship_from_payload(ship) for ship in data["ships"]],
        cannons=[str(pos) for pos in data["cannons"]],
        land_cells=[str(pos) for pos in data["landCells"]],
        available_shots=data["availableShots"],
        bonus_shots=data["bonusShots"],
        pending_bonus_shots=data["pendingBonusShots"],
        is_alive=bool(data["isAlive"]),
        setup_step=data["setupStep"],
    )


def _entry_from_payload(data: dict) -> AttackLogEntry:
    return AttackLogEntry(
        id=str(data.get("id", "")),
        attacker_id=int(data.get("attackerId", 0)),
        target_id=int(data.get("targetId", 0)),
        position=str(data.get("position", "")),
        result=str(data.get("result", "")),
        type=str(data.get("type", "")),
    )


def deserialize_state(data: dict, room: Optional[Room] = None) -> GameState:
    payload = migrate_payload(data)
    shots = []
    for item in payload["shotsThisTurn"]:
        if isinstance(item, (list, tuple)) and len(item) >= 2:
            shots.append((int(item[0]), str(item[1])))
    winner = payload.get("winner")
    state = GameState(
        players=[_player_from_payload(player) for player in payload["players"]],
        current_player_index=int(payload["currentPlayerIndex"]),
        current_turn_user_id=payload.get("currentTurnUserId"),
        phase=payload["phase"],
        setup_step=payload["setupStep"],
        winner=int(winner) if winner is not None else None,
        round=payload["round"],
        attack_history=[
            _entry_from_payload(entry)
            for entry in payload["attackHistory"]
            if isinstance(entry, dict)
        ],
        shots_this_turn=shots,
        version=payload["version"],
    )
    return normalize_state(state, room)


# ---------------------------------------------------------------------------
# Turn ownership
# ---------------------------------------------------------------------------

def resolve_turn_owner(state: GameState, room: Optional[Room] = None) -> Optional[str]:
    """Return the stable id of the player holding the turn.

    Fallback order: the stored value, the current player's ``user_id``, the
    room member at the current index, ``None``.
    """
    if state.current_turn_user_id:
        return state.current_turn_user_id
    current = state.current_player
    if current is not None and current.user_id:
        return current.user_id
    if room is not None and 0 <= state.current_player_index < len(room.players):
        return room.players[state.current_player_index].id
    return None


def normalize_state(state: GameState, room: Optional[Room] = None) -> GameState:
    """Copy of ``state`` with the turn owner resolved and, in battle, liveness
    and winner re-derived from the ships."""
    updated = refresh_liveness(state) if state.phase == PHASE_BATTLE else state.clone()
    updated.current_turn_user_id = resolve_turn_owner(state, room)
    return updated


def resolve_player_id(
    state: GameState, room: Optional[Room], user_id: str
) -> Optional[int]:
    """Map a stable member id to the in-game player id."""
    player = state.player_by_user(user_id)
    if player is not None:
        return player.id
    if room is not None:
        idx = room.member_index(user_id)
        if 0 <= idx < len(state.players):
            return state.players[idx].id
    return None


def is_turn_owner(state: GameState, user_id: Optional[str]) -> bool:
    return user_id is not None and state.current_turn_user_id == user_id


# ---------------------------------------------------------------------------
# Room envelope
# ---------------------------------------------------------------------------

def serialize_room(room: Room) -> dict:
    payload: Dict[str, Any] = {
        "id": room.id,
        "hostId": room.host_id,
        "players": [
            {
                "id": member.id,
                "name": member.name,
                "isReady": member.is_ready,
                "isHost": member.is_host,
            }
            for member in room.players
        ],
        "maxPlayers": room.max_players,
        "status": room.status,
        "currentPlayerIndex": room.current_player_index,
        "createdAt": room.created_at,
        "setupReady": list(room.setup_ready),
    }
    if room.game_state is not None:
        payload["gameState"] = serialize_state(room.game_state)
    return payload


def deserialize_room(data: dict) -> Room:
    room = Room(
        id=str(data.get("id", "")),
        host_id=str(data.get("hostId", "")),
        players=[
            RoomPlayer(
                id=str(member.get("id", "")),
                name=str(member.get("name", "")),
                is_ready=bool(member.get("isReady", False)),
                is_host=bool(member.get("isHost", False)),
            )
            for member in _as_list(data.get("players"))
            if isinstance(member, dict)
        ],
        max_players=int(data.get("maxPlayers", 4)),
        status=str(data.get("status", "waiting")),
        current_player_index=int(data.get("currentPlayerIndex", 0)),
        setup_ready=[str(uid) for uid in _as_list(data.get("setupReady"))],
    )
    if data.get("createdAt") is not None:
        room.created_at = str(data["createdAt"])
    raw_state = data.get("gameState")
    if isinstance(raw_state, dict):
        room.game_state = deserialize_state(raw_state, room)
    return room


__all__ = [
    "SCHEMA_VERSION",
    "deserialize_room",
    "deserialize_state",
    "is_turn_owner",
    "migrate_payload",
    "normalize_state",
    "resolve_player_id",
    "resolve_turn_owner",
    "serialize_room",
    "serialize_state",
]
