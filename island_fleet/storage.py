"""Whole-document persistence of rooms with optimistic version checks.

Rooms live either in a local JSON file or in a Supabase table
(``id``, ``version``, ``payload`` columns).  Game state writes must name the
version they were based on; a mismatch raises :class:`VersionConflict`
instead of silently overwriting another client's move.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from . import config
from .models import GameState, Room
from .sync import deserialize_room, serialize_room, serialize_state

logger = logging.getLogger(__name__)

USE_SUPABASE = config.USE_SUPABASE
SUPABASE_URL = config.SUPABASE_URL
SUPABASE_KEY = config.SUPABASE_KEY
SUPABASE_TABLE = config.SUPABASE_ROOMS_TABLE
TIMEOUT = config.STORE_TIMEOUT

DATA_FILE = Path(config.DATA_FILE_PATH)

Listener = Callable[[Optional[Room]], None]

_lock = RLock()
_listeners: Dict[str, List[Listener]] = {}


class StorageError(RuntimeError):
    """The document store could not be read or written."""


class RoomNotFound(StorageError):
    pass


class VersionConflict(StorageError):
    """Raised when the stored game state moved on since it was read."""

    def __init__(self, room_id: str, expected: int, actual: Optional[int]) -> None:
        super().__init__(
            f"Room {room_id}: expected game version {expected}, store has {actual}"
        )
        self.room_id = room_id
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# Supabase backend: one row per room in the rooms table
# ---------------------------------------------------------------------------

def _rooms_request(
    method: str,
    query: str,
    *,
    prefer: Optional[str] = None,
    body: Optional[object] = None,
) -> List[dict]:
    """Send one PostgREST request against the rooms table and return its rows."""
    if not (SUPABASE_URL and SUPABASE_KEY):
        raise StorageError("Supabase credentials are not configured")
    headers = {
        "apikey": SUPABASE_KEY,
        "Authorization": f"Bearer {SUPABASE_KEY}",
        "Accept": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    url = f"{SUPABASE_URL}/rest/v1/{SUPABASE_TABLE}?{query}"
    with httpx.Client(timeout=TIMEOUT) as client:
        response = client.request(method, url, headers=headers, json=body)
        response.raise_for_status()
        if not response.content:
            return []
        rows = response.json()
    return rows if isinstance(rows, list) else []


def _sb_fetch(room_id: str) -> Optional[dict]:
    rows = _rooms_request("GET", f"id=eq.{room_id}&select=id,version,payload")
    return rows[0]["payload"] if rows else None


def _sb_store(room_id: str, payload: dict, version: int) -> None:
    _rooms_request(
        "POST",
        "on_conflict=id",
        prefer="resolution=merge-duplicates",
        body=[{"id": room_id, "version": version, "payload": payload}],
    )


def _sb_store_if_version(room_id: str, payload: dict, expected: int, version: int) -> bool:
    """Conditional update; ``False`` when no row carried ``expected``."""
    rows = _rooms_request(
        "PATCH",
        f"id=eq.{room_id}&version=eq.{expected}",
        prefer="return=representation",
        body={"version": version, "payload": payload},
    )
    return bool(rows)


# ---------------------------------------------------------------------------
# File backend: all rooms in one JSON object keyed by room id
# ---------------------------------------------------------------------------

def _file_rooms() -> Dict[str, dict]:
    if not DATA_FILE.exists():
        return {}
    try:
        return json.loads(DATA_FILE.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError:
        logger.warning("%s is corrupted or empty, starting with an empty store", DATA_FILE)
        return {}


def _file_fetch(room_id: str) -> Optional[dict]:
    with _lock:
        return _file_rooms().get(room_id)


def _file_store(room_id: str, payload: Optional[dict]) -> None:
    """Replace one room in the file, or drop it when ``payload`` is ``None``."""
    with _lock:
        rooms = _file_rooms()
        if payload is not None:
            rooms[room_id] = payload
        elif rooms.pop(room_id, None) is None:
            return
        DATA_FILE.parent.mkdir(parents=True, exist_ok=True)
        tmp = DATA_FILE.with_suffix(".tmp")
        tmp.write_text(json.dumps(rooms, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(DATA_FILE)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _stored_version(payload: dict) -> int:
    state = payload.get("gameState") or {}
    try:
        return int(state.get("version") or 0)
    except (TypeError, ValueError):
        return 0


def _read(room_id: str) -> Optional[dict]:
    try:
        if USE_SUPABASE:
            return _sb_fetch(room_id)
        return _file_fetch(room_id)
    except StorageError:
        raise
    except (httpx.HTTPError, OSError) as exc:
        logger.exception("Failed to read room %s", room_id)
        raise StorageError(f"Failed to read room {room_id}: {exc}") from exc


def _write(room_id: str, payload: dict) -> None:
    try:
        if USE_SUPABASE:
            _sb_store(room_id, payload, _stored_version(payload))
        else:
            _file_store(room_id, payload)
    except StorageError:
        raise
    except (httpx.HTTPError, OSError) as exc:
        logger.exception("Failed to persist room %s", room_id)
        raise StorageError(f"Failed to persist room {room_id}: {exc}") from exc


def _decode(room_id: str, payload: dict) -> Room:
    try:
        return deserialize_room(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.exception("Failed to deserialize room %s", room_id)
        raise StorageError(f"Room {room_id} holds an unreadable document") from exc


def _notify(room_id: str, room: Optional[Room]) -> None:
    with _lock:
        listeners = list(_listeners.get(room_id, []))
    for listener in listeners:
        try:
            listener(room.clone() if room is not None else None)
        except Exception:
            logger.exception("Room listener failed for %s", room_id)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_room(room_id: str) -> Optional[Room]:
    payload = _read(room_id)
    if not payload:
        return None
    return _decode(room_id, payload)


def save_room(room: Room) -> Room:
    """Store the whole room unconditionally (lobby-side writes)."""
    payload = serialize_room(room)
    with _lock:
        _write(room.id, payload)
    stored = _decode(room.id, payload)
    _notify(room.id, stored)
    return stored


def delete_room(room_id: str) -> None:
    try:
        if USE_SUPABASE:
            _rooms_request("DELETE", f"id=eq.{room_id}")
        else:
            _file_store(room_id, None)
    except StorageError:
        raise
    except (httpx.HTTPError, OSError) as exc:
        logger.exception("Failed to delete room %s", room_id)
        raise StorageError(f"Failed to delete room {room_id}: {exc}") from exc
    _notify(room_id, None)


def write_game_state(
    room_id: str,
    state: GameState,
    expected_version: int,
    *,
    setup_ready: Optional[Iterable[str]] = None,
) -> GameState:
    """Replace the room's game document if it is still at ``expected_version``.

    Returns the stored state carrying the bumped version.  ``setup_ready``
    optionally replaces the room's list of members done with setup in the
    same write.
    """
    with _lock:
        payload = _read(room_id)
        if not payload:
            raise RoomNotFound(f"Room {room_id} does not exist")
        current = _stored_version(payload)
        if current != expected_version:
            logger.warning(
                "Rejected stale write to room %s: based on %s, store has %s",
                room_id,
                expected_version,
                current,
            )
            raise VersionConflict(room_id, expected_version, current)

        stored = state.clone()
        stored.version = expected_version + 1
        payload["gameState"] = serialize_state(stored)
        if setup_ready is not None:
            payload["setupReady"] = list(setup_ready)

        if USE_SUPABASE:
            try:
                updated = _sb_store_if_version(room_id, payload, expected_version, stored.version)
            except httpx.HTTPError as exc:
                logger.exception("Failed to persist game state of room %s", room_id)
                raise StorageError(f"Failed to persist room {room_id}: {exc}") from exc
            if not updated:
                logger.warning("Conditional update of room %s matched no row", room_id)
                raise VersionConflict(room_id, expected_version, None)
        else:
            _write(room_id, payload)

    logger.info("Room %s game state stored at version %s", room_id, stored.version)
    _notify(room_id, _decode(room_id, payload))
    return stored


def subscribe(room_id: str, callback: Listener) -> Callable[[], None]:
    """Call ``callback`` with the new room after every write; returns an unsubscriber."""
    with _lock:
        _listeners.setdefault(room_id, []).append(callback)

    def unsubscribe() -> None:
        with _lock:
            listeners = _listeners.get(room_id, [])
            if callback in listeners:
                listeners.remove(callback)
            if not listeners:
                _listeners.pop(room_id, None)

    return unsubscribe


def refresh(room_id: str) -> Optional[Room]:
    """Re-read ``room_id`` and push it to subscribers (changes made elsewhere)."""
    room = get_room(room_id)
    _notify(room_id, room)
    return room


__all__ = [
    "RoomNotFound",
    "StorageError",
    "VersionConflict",
    "delete_room",
    "get_room",
    "refresh",
    "save_room",
    "subscribe",
    "write_game_state",
]
