"""Client-side match session: the intents a UI can send for one room member.

A session keeps the latest normalized room it has seen, validates every
intent locally against that view and publishes the resulting document with
the version it was based on.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from types import ModuleType
from typing import Callable, List, Optional, Sequence

from . import storage
from .battle import AttackError, AttackOutcome
from .models import PHASE_BATTLE, PHASE_SETUP, GameState, Player, Room, create_initial_state
from .parser import ParseError, parse_coord
from .placement import (
    HORIZONTAL,
    PlacementError,
    advance_step,
    apply_placement,
    is_setup_complete,
    place_ship_at,
    random_setup,
    reset_step,
    undo_last_ship,
)
from .storage import RoomNotFound, VersionConflict
from .sync import is_turn_owner, normalize_state, resolve_player_id
from .turns import TurnError, end_turn, start_battle, take_shot

logger = logging.getLogger(__name__)

VIEW_LOBBY = "lobby"
VIEW_SETUP = "setup"
VIEW_BATTLE = "battle"
VIEW_FINISHED = "finished"

# rejection codes
INVALID = "invalid"
WRONG_PHASE = "wrong_phase"
NOT_YOUR_TURN = "not_your_turn"
CONFLICT = "conflict"
NO_ROOM = "no_room"

MERGE_ATTEMPTS = 3


@dataclass
class IntentResult:
    """Updated state on success, or a rejection reason and code."""

    state: Optional[GameState]
    error: Optional[str] = None
    code: Optional[str] = None
    outcome: Optional[AttackOutcome] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GameSession:
    def __init__(self, room_id: str, user_id: str, store: ModuleType = storage) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self.store = store
        self.room: Optional[Room] = None
        self.state: Optional[GameState] = None
        # own board while setting up; published on complete_setup()
        self.draft: Optional[Player] = None
        self.view = VIEW_LOBBY
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Receiving state
    # ------------------------------------------------------------------

    def load(self) -> Optional[GameState]:
        self.on_room_update(self.store.get_room(self.room_id))
        return self.state

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.room_id, self.on_room_update)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_room_update(self, room: Optional[Room]) -> None:
        """Adopt a room pushed by the store (``None`` means it was deleted)."""
        if room is None or room.game_state is None:
            if room is None:
                logger.info("Room %s is gone, returning %s to the lobby", self.room_id, self.user_id)
            self.room = room
            self.state = None
            self.draft = None
            self.view = VIEW_LOBBY
            return

        self.room = room
        self.state = normalize_state(room.game_state, room)
        if self.state.phase == PHASE_BATTLE:
            self.draft = None
            self.view = VIEW_FINISHED if self.state.winner is not None else VIEW_BATTLE
            return
        self.view = VIEW_SETUP
        if self.draft is None:
            own = self._stored_player()
            self.draft = own.clone() if own is not None else None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def player_id(self) -> Optional[int]:
        if self.state is None:
            return None
        return resolve_player_id(self.state, self.room, self.user_id)

    def _stored_player(self) -> Optional[Player]:
        player_id = self.player_id
        if player_id is None or self.state is None:
            return None
        return self.state.player_by_id(player_id)

    @property
    def me(self) -> Optional[Player]:
        if self.view == VIEW_SETUP and self.draft is not None:
            return self.draft
        return self._stored_player()

    @property
    def is_my_turn(self) -> bool:
        state = self.state
        if state is None or state.phase != PHASE_BATTLE or state.winner is not None:
            return False
        current = state.current_player
        return (
            current is not None
            and current.id == self.player_id
            and is_turn_owner(state, self.user_id)
        )

    def targets(self) -> List[Player]:
        if self.state is None:
            return []
        return [p for p in self.state.players if p.id != self.player_id and p.is_alive]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reject(self, error: str, code: str) -> IntentResult:
        logger.debug("Rejected intent of %s in room %s: %s", self.user_id, self.room_id, error)
        return IntentResult(state=self.state, error=error, code=code)

    def _preview(self) -> Optional[GameState]:
        if self.state is None or self.draft is None:
            return self.state
        preview = self.state.clone()
        preview.replace_player(self.draft.clone())
        return preview

    def _setup_check(self) -> Optional[IntentResult]:
        if self.state is None:
            return self._reject("No game is running in this room", NO_ROOM)
        if self.state.phase != PHASE_SETUP:
            return self._reject("Setup is over", WRONG_PHASE)
        if self.draft is None:
            return self._reject("You are not a player of this match", INVALID)
        stored = self._stored_player()
        if stored is not None and is_setup_complete(stored):
            return self._reject("Your board is already submitted", WRONG_PHASE)
        return None

    def _edit_draft(self, change: Callable[[Player], Player]) -> IntentResult:
        rejection = self._setup_check()
        if rejection is not None:
            return rejection
        try:
            self.draft = change(self.draft)
        except PlacementError as exc:
            return self._reject(str(exc), INVALID)
        return IntentResult(state=self._preview())

    def _battle_check(self) -> Optional[IntentResult]:
        if self.state is None:
            return self._reject("No game is running in this room", NO_ROOM)
        if self.state.phase != PHASE_BATTLE:
            return self._reject("The battle has not started yet", WRONG_PHASE)
        if self.state.winner is not None:
            return self._reject("The game is over", WRONG_PHASE)
        if not self.is_my_turn:
            return self._reject("It is not your turn", NOT_YOUR_TURN)
        return None

    def _publish(
        self, new_state: GameState, outcome: Optional[AttackOutcome] = None
    ) -> IntentResult:
        if self.state is None:
            return self._reject("No game is running in this room", NO_ROOM)
        try:
            stored = self.store.write_game_state(self.room_id, new_state, self.state.version)
        except VersionConflict:
            logger.warning("Room %s changed under %s; reloading", self.room_id, self.user_id)
            self.load()
            return self._reject("The game moved on, your view was refreshed", CONFLICT)
        except RoomNotFound:
            self.on_room_update(None)
            return self._reject("The room no longer exists", NO_ROOM)
        self.state = normalize_state(stored, self.room)
        if self.state.phase == PHASE_BATTLE:
            self.view = VIEW_FINISHED if self.state.winner is not None else VIEW_BATTLE
        return IntentResult(state=self.state, outcome=outcome)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def start_game(self) -> IntentResult:
        """Create the empty setup-phase document from the room membership."""
        room = self.store.get_room(self.room_id)
        if room is None:
            self.on_room_update(None)
            return self._reject("The room no longer exists", NO_ROOM)
        if room.game_state is not None:
            self.on_room_update(room)
            return self._reject("The game has already started", WRONG_PHASE)
        try:
            state = create_initial_state(room)
        except ValueError as exc:
            return self._reject(str(exc), INVALID)
        try:
            stored = self.store.write_game_state(self.room_id, state, 0, setup_ready=[])
        except VersionConflict:
            self.load()
            return self._reject("The game has already started", CONFLICT)
        room.game_state = stored
        room.setup_ready = []
        self.on_room_update(room)
        return IntentResult(state=self.state)

    def submit_placement(self, step: str, positions: Sequence[str]) -> IntentResult:
        try:
            keys = [parse_coord(pos) for pos in positions]
        except ParseError as exc:
            return self._reject(str(exc), INVALID)
        return self._edit_draft(lambda player: apply_placement(player, step, keys))

    def place_ship_from(self, start: str, orientation: str = HORIZONTAL) -> IntentResult:
        try:
            key = parse_coord(start)
        except ParseError as exc:
            return self._reject(str(exc), INVALID)
        return self._edit_draft(lambda player: place_ship_at(player, key, orientation))

    def advance_setup(self) -> IntentResult:
        return self._edit_draft(advance_step)

    def undo_last_ship(self) -> IntentResult:
        return self._edit_draft(undo_last_ship)

    def reset_step(self, step: Optional[str] = None) -> IntentResult:
        return self._edit_draft(lambda player: reset_step(player, step))

    def auto_setup(self, rng: Optional[random.Random] = None) -> IntentResult:
        return self._edit_draft(lambda player: random_setup(player, rng))

    def complete_setup(self) -> IntentResult:
        """Publish the finished board, starting the battle once everyone is ready.

        Only this player's record is replaced in the freshest stored state, so
        boards submitted concurrently by other members are kept.
        """
        rejection = self._setup_check()
        if rejection is not None:
            return rejection
        draft = self.draft
        if draft is None or not is_setup_complete(draft):
            return self._reject("Finish placing ships, land and cannons first", INVALID)

        for _ in range(MERGE_ATTEMPTS):
            latest_room = self.store.get_room(self.room_id)
            if latest_room is None or latest_room.game_state is None:
                self.on_room_update(latest_room)
                return self._reject("The room no longer exists", NO_ROOM)
            latest = normalize_state(latest_room.game_state, latest_room)
            if latest.phase != PHASE_SETUP:
                self.on_room_update(latest_room)
                return self._reject("Setup is over", WRONG_PHASE)

            merged = latest.clone()
            merged.replace_player(draft.clone())
            ready = list(latest_room.setup_ready)
            if self.user_id not in ready:
                ready.append(self.user_id)
            if all(is_setup_complete(player) for player in merged.players):
                merged = start_battle(merged)
            try:
                stored = self.store.write_game_state(
                    self.room_id, merged, latest.version, setup_ready=ready
                )
            except VersionConflict:
                logger.warning("Setup of %s raced another write in room %s", self.user_id, self.room_id)
                continue
            latest_room.game_state = stored
            latest_room.setup_ready = ready
            self.on_room_update(latest_room)
            logger.info("Player %s finished setup in room %s", self.user_id, self.room_id)
            return IntentResult(state=self.state)

        self.load()
        return self._reject("The room kept changing, try again", CONFLICT)

    def submit_attack(self, target_id: int, position: str) -> IntentResult:
        rejection = self._battle_check()
        if rejection is not None:
            return rejection
        state = self.state
        if state is None:
            return self._reject("No game is running in this room", NO_ROOM)
        try:
            key = parse_coord(position)
            new_state, outcome = take_shot(state, target_id, key)
        except (ParseError, TurnError, AttackError) as exc:
            return self._reject(str(exc), INVALID)
        return self._publish(new_state, outcome)

    def end_turn(self) -> IntentResult:
        rejection = self._battle_check()
        if rejection is not None:
            return rejection
        state = self.state
        if state is None:
            return self._reject("No game is running in this room", NO_ROOM)
        try:
            new_state = end_turn(state)
        except TurnError as exc:
            return self._reject(str(exc), INVALID)
        return self._publish(new_state)


__all__ = [
    "CONFLICT",
    "GameSession",
    "INVALID",
    "IntentResult",
    "NOT_YOUR_TURN",
    "NO_ROOM",
    "VIEW_BATTLE",
    "VIEW_FINISHED",
    "VIEW_LOBBY",
    "VIEW_SETUP",
    "WRONG_PHASE",
]
