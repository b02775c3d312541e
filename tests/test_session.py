import random

import pytest

from island_fleet import battle, storage
from island_fleet.battle import apply_attack
from island_fleet.session import (
    CONFLICT,
    INVALID,
    NO_ROOM,
    NOT_YOUR_TURN,
    VIEW_BATTLE,
    VIEW_FINISHED,
    VIEW_LOBBY,
    VIEW_SETUP,
    WRONG_PHASE,
    GameSession,
)
from tests.utils import CANNONS, LAND, SHIPS, _battle_state, _room, _use_file_store


@pytest.fixture
def store(tmp_path, monkeypatch):
    _use_file_store(monkeypatch, tmp_path)
    return storage


def _manual_setup(session):
    for ship in SHIPS:
        assert session.submit_placement("ships", ship).ok
    assert session.advance_setup().ok
    assert session.submit_placement("land", [pos.lower() for pos in LAND]).ok
    assert session.advance_setup().ok
    assert session.submit_placement("cannons", CANNONS).ok
    assert session.advance_setup().ok


def _battle_room(store):
    store.save_room(_room(2, state=_battle_state(2)))
    first, second = GameSession("ROOM1", "u1"), GameSession("ROOM1", "u2")
    first.load()
    second.load()
    return first, second


def test_lobby_until_game_starts(store):
    store.save_room(_room(2))
    session = GameSession("ROOM1", "u1")
    session.load()
    assert session.view == VIEW_LOBBY
    assert session.submit_attack(2, "A1").code == NO_ROOM

    result = session.start_game()
    assert result.ok
    assert session.view == VIEW_SETUP
    assert session.player_id == 1
    assert len(result.state.players) == 2
    assert session.start_game().code == WRONG_PHASE


def test_full_setup_starts_the_battle(store):
    store.save_room(_room(2))
    first, second = GameSession("ROOM1", "u1"), GameSession("ROOM1", "u2")
    first.load()
    assert first.start_game().ok
    second.load()

    assert first.submit_placement("land", ["A6"]).code == INVALID
    assert first.complete_setup().code == INVALID
    _manual_setup(first)
    # nothing is published before the board is submitted
    assert store.get_room("ROOM1").game_state.players[0].ships == []
    assert first.complete_setup().ok
    assert first.view == VIEW_SETUP
    assert store.get_room("ROOM1").setup_ready == ["u1"]
    assert first.submit_placement("ships", ["H1"]).code == WRONG_PHASE

    # the second player's view predates the first submission
    assert second.auto_setup(random.Random(7)).ok
    result = second.complete_setup()
    assert result.ok
    assert second.view == VIEW_BATTLE
    assert result.state.phase == "battle"
    assert store.get_room("ROOM1").setup_ready == ["u1", "u2"]
    assert result.state.players[0].ships != []

    first.load()
    assert first.view == VIEW_BATTLE
    assert first.is_my_turn
    assert not second.is_my_turn
    assert [p.id for p in first.targets()] == [2]


def test_attacks_follow_the_turn(store):
    first, second = _battle_room(store)
    assert second.submit_attack(1, "A1").code == NOT_YOUR_TURN

    result = first.submit_attack(2, "a6")
    assert result.ok
    assert result.outcome.type == battle.LAND_HIT
    assert result.state.version == 1
    assert first.submit_attack(2, "A6").code == INVALID
    assert first.submit_attack(2, "Q1").code == INVALID

    assert first.end_turn().ok
    assert not first.is_my_turn
    second.load()
    assert second.is_my_turn
    assert second.me.bonus_shots == 0
    assert second.state.players[0].bonus_shots == 1


def test_stale_view_gets_conflict(store):
    first, _ = _battle_room(store)
    twin = GameSession("ROOM1", "u1")
    twin.load()

    assert first.submit_attack(2, "H8").ok
    result = twin.submit_attack(2, "H7")
    assert result.code == CONFLICT
    # the rejected session was refreshed to the stored document
    assert twin.state.version == first.state.version
    assert twin.submit_attack(2, "H7").ok


def test_attached_session_follows_the_room(store):
    first, second = _battle_room(store)
    second.attach()
    try:
        first.submit_attack(2, "H8")
        assert second.state.version == first.state.version
        first.end_turn()
        assert second.is_my_turn

        store.delete_room("ROOM1")
        assert second.view == VIEW_LOBBY
        assert second.state is None
    finally:
        second.detach()


def test_deleted_room_rejects_moves(store):
    first, _ = _battle_room(store)
    store.delete_room("ROOM1")
    result = first.submit_attack(2, "H8")
    assert result.code == NO_ROOM
    assert first.view == VIEW_LOBBY
    assert first.start_game().code == NO_ROOM


def test_last_ship_finishes_the_match(store):
    state = _battle_state(2)
    cells = [pos for ship in SHIPS for pos in ship]
    for pos in cells[:-1]:
        state, _ = apply_attack(state, 1, 2, pos)
    store.save_room(_room(2, state=state))

    session = GameSession("ROOM1", "u1")
    session.load()
    result = session.submit_attack(2, cells[-1])
    assert result.ok
    assert result.outcome.type == battle.SUNK
    assert result.state.winner == 1
    assert session.view == VIEW_FINISHED
    assert not session.is_my_turn
    assert session.submit_attack(2, "H8").code == WRONG_PHASE
    assert session.end_turn().code == WRONG_PHASE


def test_setup_draft_editing(store):
    store.save_room(_room(2))
    session = GameSession("ROOM1", "u1")
    session.load()
    session.start_game()

    assert session.place_ship_from("a1").ok
    assert session.me.ships[0].positions == ["A1", "A2", "A3", "A4"]
    # next ship is the 3-decker, which cannot grow down from the last row
    assert session.place_ship_from("H1", "vertical").code == INVALID
    assert session.place_ship_from("Z1").code == INVALID
    assert session.undo_last_ship().ok
    assert session.me.ships == []
    assert session.place_ship_from("C2", "vertical").ok
    assert session.reset_step().ok
    assert session.me.ships == []
    assert store.get_room("ROOM1").game_state.version == 1


def test_ships_are_locked_after_leaving_the_ships_step(store):
    store.save_room(_room(2))
    session = GameSession("ROOM1", "u1")
    session.load()
    session.start_game()
    for ship in SHIPS:
        assert session.submit_placement("ships", ship).ok
    assert session.advance_setup().ok

    assert session.undo_last_ship().code == INVALID
    assert len(session.me.ships) == 5

    assert session.submit_placement("land", LAND).ok
    assert session.advance_setup().ok
    # going back to the ships step keeps the land and requires the fleet again
    assert session.reset_step("ships").ok
    assert session.me.setup_step == "ships"
    assert session.advance_setup().code == INVALID
    for ship in SHIPS:
        assert session.submit_placement("ships", ship).ok
    assert session.advance_setup().ok
    assert session.advance_setup().ok
    assert session.submit_placement("cannons", CANNONS).ok
    assert session.advance_setup().ok
    assert session.complete_setup().ok
