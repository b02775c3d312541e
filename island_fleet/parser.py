"""Coordinate parsing helpers for the 8×8 board."""
from __future__ import annotations

import re
from typing import Iterator, Tuple

Index = Tuple[int, int]

ROWS = "ABCDEFGH"
BOARD_SIZE = len(ROWS)
_COORD_RE = re.compile(r"^\s*([a-hA-H])\s*(\d{1,2})\s*$")


class ParseError(ValueError):
    pass


def parse_coord(text: str) -> str:
    """Parse user input like ``' b7 '`` into the board key ``'B7'``."""
    if not text:
        raise ParseError("Empty coordinate")
    match = _COORD_RE.match(text)
    if not match:
        raise ParseError("Enter a coordinate like A1")
    row_raw, col_raw = match.groups()
    col = int(col_raw)
    if not 1 <= col <= BOARD_SIZE:
        raise ParseError(f"Column must be between 1 and {BOARD_SIZE}")
    return f"{row_raw.upper()}{col}"


def is_on_board(key: object) -> bool:
    if not isinstance(key, str) or len(key) < 2:
        return False
    if key[0] not in ROWS:
        return False
    try:
        col = int(key[1:])
    except ValueError:
        return False
    return 1 <= col <= BOARD_SIZE and key[1:] == str(col)


def to_index(key: str) -> Index:
    """Convert ``'C4'`` into zero-based ``(row, col)`` = ``(2, 3)``."""
    if not is_on_board(key):
        raise ParseError(f"Coordinate {key!r} is off the board")
    return ROWS.index(key[0]), int(key[1:]) - 1


def to_key(row: int, col: int) -> str:
    if not (0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE):
        raise ParseError("Coordinate is off the board")
    return f"{ROWS[row]}{col + 1}"


def neighbors(key: str) -> Iterator[str]:
    """Yield the up/down/left/right neighbours of ``key`` inside the board."""
    r, c = to_index(key)
    for dr, dc in ((-1, 0), (1, 0), (0, -1), (0, 1)):
        nr, nc = r + dr, c + dc
        if 0 <= nr < BOARD_SIZE and 0 <= nc < BOARD_SIZE:
            yield to_key(nr, nc)


def all_keys() -> Iterator[str]:
    for r in range(BOARD_SIZE):
        for c in range(BOARD_SIZE):
            yield to_key(r, c)


__all__ = [
    "BOARD_SIZE",
    "ROWS",
    "ParseError",
    "all_keys",
    "is_on_board",
    "neighbors",
    "parse_coord",
    "to_index",
    "to_key",
]
