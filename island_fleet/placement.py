"""Setup-phase rules: ships, land and cannon placement on a player's board.

Every reducer takes a :class:`~island_fleet.models.Player` and returns a new
one.  On rejection a :class:`PlacementError` carrying the reason is raised and
the input player is left untouched.
"""
from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    CANNON,
    CANNON_COUNT,
    LAND,
    LAND_COUNT,
    MAX_ISLANDS,
    SETUP_STEPS,
    SHIP,
    SHIP_SIZES,
    STEP_CANNONS,
    STEP_COMPLETE,
    STEP_LAND,
    STEP_SHIPS,
    WATER,
    Cell,
    Player,
    Ship,
    new_board,
)
from .parser import BOARD_SIZE, ParseError, is_on_board, neighbors, to_index, to_key

logger = logging.getLogger(__name__)

HORIZONTAL = "horizontal"
VERTICAL = "vertical"
MAX_ATTEMPTS = 200


class PlacementError(ValueError):
    """Raised when a setup move breaks the placement rules."""


def validate_ship_placement(board: Mapping[str, Cell], positions: Sequence[str]) -> bool:
    """Return ``True`` when ``positions`` form a legal ship on ``board``.

    All cells must currently be water and, for ships longer than one cell,
    lie on a single row or column with consecutive indices.
    """
    if not positions:
        return False
    for pos in positions:
        cell = board.get(pos)
        if cell is None or cell.type != WATER:
            return False
    if len(positions) == 1:
        return True
    if len(set(positions)) != len(positions):
        return False

    indexes = sorted(to_index(pos) for pos in positions)
    rows = {r for r, _ in indexes}
    cols = {c for _, c in indexes}
    if len(rows) == 1:
        line = [c for _, c in indexes]
    elif len(cols) == 1:
        line = [r for r, _ in indexes]
    else:
        return False
    return all(b - a == 1 for a, b in zip(line, line[1:]))


def count_islands(land_cells: Iterable[str]) -> int:
    """Count 4-connected components among ``land_cells``."""
    cells = list(dict.fromkeys(land_cells))
    members = set(cells)
    seen: set[str] = set()
    islands = 0
    for start in cells:
        if start in seen:
            continue
        islands += 1
        seen.add(start)
        stack = [start]
        while stack:
            current = stack.pop()
            for neighbor in neighbors(current):
                if neighbor in members and neighbor not in seen:
                    seen.add(neighbor)
                    stack.append(neighbor)
    return islands


def ship_positions(start: str, size: int, orientation: str = HORIZONTAL) -> List[str]:
    """Return the run of ``size`` cells from ``start``, cut at the board edge.

    Horizontal ships grow to the right and vertical ships grow downward.  The
    result is shorter than ``size`` when the ship would leave the board.
    """
    if orientation not in (HORIZONTAL, VERTICAL):
        raise PlacementError(f"Unknown orientation: {orientation}")
    r, c = to_index(start)
    cells: List[str] = []
    for offset in range(size):
        nr = r + (offset if orientation == VERTICAL else 0)
        nc = c + (offset if orientation == HORIZONTAL else 0)
        if nr >= BOARD_SIZE or nc >= BOARD_SIZE:
            break
        cells.append(to_key(nr, nc))
    return cells


def remaining_ships(player: Player) -> Dict[int, int]:
    placed: Dict[int, int] = {}
    for ship in player.ships:
        placed[ship.size] = placed.get(ship.size, 0) + 1
    return {size: count - placed.get(size, 0) for size, count in SHIP_SIZES}


def next_ship_size(player: Player) -> Optional[int]:
    """Largest ship size that still has to be placed, or ``None``."""
    remaining = remaining_ships(player)
    for size, _ in SHIP_SIZES:
        if remaining[size] > 0:
            return size
    return None


def _next_ship_id(player: Player) -> str:
    taken = {ship.id for ship in player.ships}
    n = len(player.ships) + 1
    while f"ship-{n}" in taken:
        n += 1
    return f"ship-{n}"


def place_ship(player: Player, positions: Sequence[str]) -> Player:
    positions = list(positions)
    size = len(positions)
    if size == 0:
        raise PlacementError("Select at least one cell")
    remaining = remaining_ships(player)
    if size not in remaining:
        raise PlacementError(f"There is no ship of size {size}")
    if remaining[size] <= 0:
        raise PlacementError(f"All ships of size {size} are already placed")
    if not validate_ship_placement(player.board, positions):
        if any(
            player.board.get(pos) is None or player.board[pos].type != WATER
            for pos in positions
        ):
            raise PlacementError("Cells are occupied, choose another position")
        raise PlacementError("Ship cells must share a row or column and touch each other")

    updated = player.clone()
    ship_id = _next_ship_id(updated)
    updated.ships.append(Ship(id=ship_id, size=size, positions=positions))
    for pos in positions:
        updated.board[pos].type = SHIP
        updated.board[pos].ship_id = ship_id
    logger.debug("Player %s placed %s at %s", player.id, ship_id, positions)
    return updated


def place_ship_at(
    player: Player,
    start: str,
    orientation: str = HORIZONTAL,
    size: Optional[int] = None,
) -> Player:
    """Place a ship grown from ``start``; ``size`` defaults to the next one due."""
    if size is None:
        size = next_ship_size(player)
        if size is None:
            raise PlacementError("All ships are placed")
    positions = ship_positions(start, size, orientation)
    if len(positions) != size:
        raise PlacementError("The ship does not fit on the board")
    return place_ship(player, positions)


def toggle_land(player: Player, position: str) -> Player:
    cell = player.board.get(position)
    if cell is None:
        raise PlacementError("Coordinate is off the board")
    if cell.type == CANNON:
        raise PlacementError("Remove the cannon from this cell first")

    if cell.type == LAND:
        proposed = [pos for pos in player.land_cells if pos != position]
        if count_islands(proposed) > MAX_ISLANDS:
            raise PlacementError(f"Land may form at most {MAX_ISLANDS} islands")
        updated = player.clone()
        updated.land_cells = proposed
        updated.board[position].type = WATER
        return updated

    if cell.type != WATER:
        raise PlacementError("Land can only be placed on water")
    if len(player.land_cells) >= LAND_COUNT:
        raise PlacementError(f"At most {LAND_COUNT} land cells can be placed")
    proposed = player.land_cells + [position]
    if count_islands(proposed) > MAX_ISLANDS:
        raise PlacementError(f"Land may form at most {MAX_ISLANDS} islands")
    updated = player.clone()
    updated.land_cells = proposed
    updated.board[position].type = LAND
    return updated


def toggle_cannon(player: Player, position: str) -> Player:
    cell = player.board.get(position)
    if cell is None:
        raise PlacementError("Coordinate is off the board")

    if cell.type == CANNON:
        updated = player.clone()
        updated.cannons = [pos for pos in player.cannons if pos != position]
        updated.board[position].type = LAND
        return updated

    if cell.type != LAND:
        raise PlacementError("Cannons can only stand on land")
    if len(player.cannons) >= CANNON_COUNT:
        raise PlacementError(f"At most {CANNON_COUNT} cannons can be placed")
    updated = player.clone()
    updated.cannons = player.cannons + [position]
    updated.board[position].type = CANNON
    return updated


def undo_last_ship(player: Player) -> Player:
    if player.setup_step != STEP_SHIPS:
        raise PlacementError("Ships can only be undone while placing ships")
    if not player.ships:
        raise PlacementError("There is no ship to undo")
    updated = player.clone()
    ship = updated.ships.pop()
    for pos in ship.positions:
        updated.board[pos].type = WATER
        updated.board[pos].ship_id = None
    return updated


def reset_step(player: Player, step: Optional[str] = None) -> Player:
    """Clear everything placed during ``step`` (the player's current one by default).

    Clearing an earlier step sends the player back to it.
    """
    step = step or player.setup_step
    updated = player.clone()
    if (
        step in SETUP_STEPS
        and player.setup_step in SETUP_STEPS
        and SETUP_STEPS.index(step) < SETUP_STEPS.index(player.setup_step)
    ):
        updated.setup_step = step
    if step == STEP_SHIPS:
        for ship in updated.ships:
            for pos in ship.positions:
                updated.board[pos].type = WATER
                updated.board[pos].ship_id = None
        updated.ships = []
    elif step == STEP_LAND:
        if updated.cannons:
            raise PlacementError("Remove the cannons before clearing land")
        for pos in updated.land_cells:
            updated.board[pos].type = WATER
        updated.land_cells = []
    elif step == STEP_CANNONS:
        for pos in updated.cannons:
            updated.board[pos].type = LAND
        updated.cannons = []
    else:
        raise PlacementError(f"Nothing to reset during step {step!r}")
    return updated


def step_complete(player: Player, step: str) -> bool:
    if step == STEP_SHIPS:
        return all(count == 0 for count in remaining_ships(player).values())
    if step == STEP_LAND:
        return (
            len(player.land_cells) == LAND_COUNT
            and count_islands(player.land_cells) <= MAX_ISLANDS
        )
    if step == STEP_CANNONS:
        return len(player.cannons) == CANNON_COUNT
    return step == STEP_COMPLETE


def is_setup_complete(player: Player) -> bool:
    return player.setup_step == STEP_COMPLETE and all(
        step_complete(player, step) for step in (STEP_SHIPS, STEP_LAND, STEP_CANNONS)
    )


_INCOMPLETE_REASONS = {
    STEP_SHIPS: "Place all ships first",
    STEP_LAND: f"Place exactly {LAND_COUNT} land cells in at most {MAX_ISLANDS} islands",
    STEP_CANNONS: f"Place exactly {CANNON_COUNT} cannons",
}


def advance_step(player: Player) -> Player:
    """Move the player to the next setup step once the current quota is met."""
    step = player.setup_step
    if step == STEP_COMPLETE:
        raise PlacementError("Setup is already complete")
    if step not in SETUP_STEPS:
        raise PlacementError(f"Unknown setup step: {step}")
    for earlier in SETUP_STEPS[: SETUP_STEPS.index(step) + 1]:
        if not step_complete(player, earlier):
            raise PlacementError(_INCOMPLETE_REASONS[earlier])
    updated = player.clone()
    updated.setup_step = SETUP_STEPS[SETUP_STEPS.index(step) + 1]
    return updated


def apply_placement(player: Player, step: str, positions: Sequence[str]) -> Player:
    """Apply a placement intent for ``step``.

    Ships take the whole cell run at once; land and cannon cells are toggled
    one by one and the batch is applied all-or-nothing.
    """
    if step not in (STEP_SHIPS, STEP_LAND, STEP_CANNONS):
        raise PlacementError(f"Unknown setup step: {step}")
    if player.setup_step != step:
        raise PlacementError(f"Current setup step is {player.setup_step}, not {step}")
    positions = list(positions)
    if not positions:
        raise PlacementError("Select at least one cell")
    off_board = [pos for pos in positions if not is_on_board(pos)]
    if off_board:
        raise PlacementError(f"Coordinates off the board: {', '.join(map(str, off_board))}")

    if step == STEP_SHIPS:
        return place_ship(player, positions)
    toggle = toggle_land if step == STEP_LAND else toggle_cannon
    updated = player
    for pos in positions:
        updated = toggle(updated, pos)
    return updated


def _grow_land(player: Player, rng: random.Random) -> Player:
    updated = player
    for _ in range(MAX_ATTEMPTS * 3):
        if len(updated.land_cells) >= LAND_COUNT:
            break
        frontier = sorted(
            {
                n
                for pos in updated.land_cells
                for n in neighbors(pos)
                if updated.board[n].type == WATER
            }
        )
        if frontier and (
            count_islands(updated.land_cells) >= MAX_ISLANDS or rng.random() < 0.8
        ):
            candidate = rng.choice(frontier)
        else:
            water = [key for key, cell in updated.board.items() if cell.type == WATER]
            candidate = rng.choice(water)
        try:
            updated = toggle_land(updated, candidate)
        except PlacementError:
            continue
    return updated


def random_setup(player: Player, rng: Optional[random.Random] = None) -> Player:
    """Return ``player`` with a complete random layout of ships, land and cannons."""
    rng = rng or random.Random()
    for _ in range(MAX_ATTEMPTS):
        candidate = player.clone()
        candidate.board = new_board()
        candidate.ships = []
        candidate.land_cells = []
        candidate.cannons = []
        candidate.setup_step = STEP_SHIPS
        try:
            for size, count in SHIP_SIZES:
                for _ in range(count):
                    for _ in range(MAX_ATTEMPTS):
                        start = to_key(rng.randrange(BOARD_SIZE), rng.randrange(BOARD_SIZE))
                        orientation = rng.choice([HORIZONTAL, VERTICAL])
                        cells = ship_positions(start, size, orientation)
                        if len(cells) == size and validate_ship_placement(candidate.board, cells):
                            candidate = place_ship(candidate, cells)
                            break
                    else:
                        raise PlacementError("No room for the fleet")
            candidate = advance_step(candidate)
            candidate = _grow_land(candidate, rng)
            candidate = advance_step(candidate)
            for pos in rng.sample(candidate.land_cells, CANNON_COUNT):
                candidate = toggle_cannon(candidate, pos)
            return advance_step(candidate)
        except (PlacementError, ParseError):
            continue
    raise RuntimeError("Failed to generate a setup layout after many attempts")


__all__ = [
    "HORIZONTAL",
    "VERTICAL",
    "PlacementError",
    "advance_step",
    "apply_placement",
    "count_islands",
    "is_setup_complete",
    "next_ship_size",
    "place_ship",
    "place_ship_at",
    "random_setup",
    "remaining_ships",
    "reset_step",
    "ship_positions",
    "step_complete",
    "toggle_cannon",
    "toggle_land",
    "undo_last_ship",
    "validate_ship_placement",
]
