"""Square ↔ grid mapping and token placement.

This is the only place squares are turned into grid cells; the terminal
renderer and anything else that draws the board goes through here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from snakes_duel.config import BOARD_SIZE, CELL_COUNT

TOKEN_SPACING = 3.0


def to_grid(square: int) -> tuple[int, int]:
    """Map *square* (1–100) to ``(row, col)``, row 0 at the top.

    Rows are counted bottom-to-top along a boustrophedon path, so square 1
    is bottom-left and every other row runs right-to-left.
    """
    if not 1 <= square <= CELL_COUNT:
        raise ValueError(f"Square {square} is off the board.")
    row = BOARD_SIZE - 1 - (square - 1) // BOARD_SIZE
    col = (square - 1) % BOARD_SIZE
    if (BOARD_SIZE - 1 - row) % 2 == 1:
        col = BOARD_SIZE - 1 - col
    return row, col


def from_grid(row: int, col: int) -> int:
    """Inverse of :func:`to_grid`."""
    if not (0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE):
        raise ValueError(f"Cell ({row}, {col}) is off the board.")
    visual_row = BOARD_SIZE - 1 - row
    if visual_row % 2 == 1:
        col = BOARD_SIZE - 1 - col
    return visual_row * BOARD_SIZE + col + 1


def token_offset(index: int, count: int, spacing: float = TOKEN_SPACING) -> float:
    """Offset of the *index*-th of *count* tokens sharing a cell.

    Symmetric around the cell centre, so a lone token sits at 0.
    """
    if count < 1 or not 0 <= index < count:
        raise ValueError(f"Token index {index} out of range for {count} tokens.")
    return spacing * (index - (count - 1) / 2)


class _Placeable(Protocol):
    @property
    def id(self) -> int: ...

    @property
    def position(self) -> int: ...


@dataclass(frozen=True)
class TokenPlacement:
    player_id: int
    square: int
    row: int
    col: int
    offset: float


def place_tokens(
    players: Iterable[_Placeable],
    spacing: float = TOKEN_SPACING,
) -> list[TokenPlacement]:
    """Lay out every on-board player, stacking those that share a square.

    Stacking order follows the order of *players*.
    """
    by_square: dict[int, list[_Placeable]] = {}
    for p in players:
        if not p.position:
            continue
        by_square.setdefault(p.position, []).append(p)

    placements: list[TokenPlacement] = []
    for square, here in by_square.items():
        row, col = to_grid(square)
        for idx, p in enumerate(here):
            placements.append(TokenPlacement(
                player_id=p.id,
                square=square,
                row=row,
                col=col,
                offset=token_offset(idx, len(here), spacing),
            ))
    return placements
