import pytest

from island_fleet import battle
from island_fleet.battle import AttackError, apply_attack, resolve_attack
from island_fleet.models import CANNON, HIT
from tests.utils import SHIPS, _battle_state, _ready_player


def test_water_is_a_miss():
    target = _ready_player(2)
    updated, outcome = resolve_attack(target, "H8")
    assert outcome.type == battle.MISS
    assert outcome.message == "miss"
    assert outcome.bonus_shots == 0
    assert not outcome.already_hit
    assert updated.board["H8"].hit == HIT
    assert not target.board["H8"].is_hit


def test_land_grants_bonus_every_time():
    target = _ready_player(2)
    target, first = resolve_attack(target, "A6")
    assert first.type == battle.LAND_HIT
    assert first.bonus_shots == 1
    assert not first.already_hit
    target, again = resolve_attack(target, "A6")
    assert again.type == battle.LAND_HIT
    assert again.bonus_shots == 1
    assert again.already_hit


def test_cannon_hit_destroys_cannon():
    target = _ready_player(2)
    updated, outcome = resolve_attack(target, "A7")
    assert outcome.type == battle.HIT
    assert outcome.message == "hit (cannon)"
    assert outcome.bonus_shots == 0
    assert updated.cannons == ["B7", "G7"]
    assert updated.board["A7"].type == CANNON
    assert updated.board["A7"].is_hit

    # a spent cannon site behaves like land
    again_state, again = resolve_attack(updated, "A7")
    assert again.type == battle.LAND_HIT
    assert again.bonus_shots == 1
    assert again.already_hit
    assert again_state.cannons == ["B7", "G7"]


def test_cannon_cell_missing_from_list_counts_as_land():
    target = _ready_player(2)
    target.cannons.remove("G7")
    _, outcome = resolve_attack(target, "G7")
    assert outcome.type == battle.LAND_HIT
    assert outcome.bonus_shots == 1


def test_ship_hit_then_sunk():
    target = _ready_player(2)
    target, first = resolve_attack(target, "E1")
    assert first.type == battle.HIT
    assert first.message == "hit (ship)"
    target, second = resolve_attack(target, "E2")
    assert second.type == battle.SUNK
    ship = target.find_ship(target.board["E2"].ship_id)
    assert ship.sunk and ship.hits == 2
    # neighbouring ship untouched
    other = target.find_ship(target.board["G1"].ship_id)
    assert other.hits == 0
    assert not target.board["G1"].is_hit


def test_repeat_on_ship_is_harmless():
    target = _ready_player(2)
    target, _ = resolve_attack(target, "A1")
    target, outcome = resolve_attack(target, "A1")
    assert outcome.type == battle.MISS
    assert outcome.message == "repeat"
    assert outcome.already_hit
    assert target.find_ship(target.board["A1"].ship_id).hits == 1


def test_repeat_on_water():
    target, _ = resolve_attack(_ready_player(2), "D5")
    _, outcome = resolve_attack(target, "D5")
    assert outcome.message == "repeat"
    assert outcome.bonus_shots == 0


def test_unknown_cell_raises():
    with pytest.raises(AttackError):
        resolve_attack(_ready_player(2), "Z9")


def test_apply_attack_records_history():
    state = _battle_state(2)
    updated, outcome = apply_attack(state, 1, 2, "A6")
    assert outcome.type == battle.LAND_HIT
    assert len(updated.attack_history) == 1
    entry = updated.attack_history[0]
    assert (entry.attacker_id, entry.target_id, entry.position) == (1, 2, "A6")
    assert entry.result == "land"
    assert entry.type == battle.LAND_HIT
    assert state.attack_history == []
    with pytest.raises(AttackError):
        apply_attack(state, 1, 9, "A1")


def test_sinking_the_last_ship_ends_the_game():
    state = _battle_state(2)
    cells = [pos for ship in SHIPS for pos in ship]
    for pos in cells[:-1]:
        state, _ = apply_attack(state, 1, 2, pos)
        assert state.players[1].is_alive
        assert state.winner is None
    state, outcome = apply_attack(state, 1, 2, cells[-1])
    assert outcome.type == battle.SUNK
    assert not state.players[1].is_alive
    assert state.winner == 1
    ids = [entry.id for entry in state.attack_history]
    assert len(ids) == len(set(ids)) == 11
