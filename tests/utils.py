from island_fleet import placement, storage, turns
from island_fleet.models import GameState, Room, RoomPlayer, create_player

SHIPS = [["A1", "A2", "A3", "A4"], ["C1", "C2", "C3"], ["E1", "E2"], ["G1"], ["G3"]]
# two islands: rows A-B and rows F-G, columns 6-8
LAND = ["A6", "A7", "A8", "B6", "B7", "B8", "F6", "F7", "F8", "G6", "G7", "G8"]
CANNONS = ["A7", "B7", "G7"]


def _ready_player(player_id, user_id=None):
    player = create_player(player_id, f"P{player_id}", user_id)
    for ship in SHIPS:
        player = placement.place_ship(player, ship)
    player = placement.advance_step(player)
    for pos in LAND:
        player = placement.toggle_land(player, pos)
    player = placement.advance_step(player)
    for pos in CANNONS:
        player = placement.toggle_cannon(player, pos)
    return placement.advance_step(player)


def _battle_state(count=2):
    players = [_ready_player(i + 1, f"u{i + 1}") for i in range(count)]
    return turns.start_battle(GameState(players=players))


def _room(count=2, room_id="ROOM1", state=None):
    return Room(
        id=room_id,
        host_id="u1",
        players=[
            RoomPlayer(id=f"u{i + 1}", name=f"P{i + 1}", is_ready=True, is_host=i == 0)
            for i in range(count)
        ],
        status="playing",
        game_state=state,
    )


def _use_file_store(monkeypatch, tmp_path):
    monkeypatch.setattr(storage, "USE_SUPABASE", False)
    monkeypatch.setattr(storage, "DATA_FILE", tmp_path / "rooms.json")
