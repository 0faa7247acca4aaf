"""Plain-text board for the terminal front end."""

from __future__ import annotations

from typing import Sequence

from snakes_duel.board import BoardTopology
from snakes_duel.chat import ChatMessage
from snakes_duel.config import BOARD_SIZE
from snakes_duel.game import GameSnapshot, PlayerView
from snakes_duel.layout import from_grid, place_tokens

DICE_FACES = ["", "⚀", "⚁", "⚂", "⚃", "⚄", "⚅"]

CELL_WIDTH = 7


def _marker(topology: BoardTopology, square: int) -> str:
    dest = topology.resolve(square)
    if dest < square:
        return f"v{dest}"
    if dest > square:
        return f"^{dest}"
    return ""


def render_board(topology: BoardTopology, players: Sequence[PlayerView] = ()) -> str:
    """Draw the 10×10 board, top row first.

    Each cell shows its square number, a snake (``v``) or ladder (``^``)
    destination, and the initials of any players standing there, in
    stacking order.
    """
    initials: dict[tuple[int, int], list[tuple[float, str]]] = {}
    by_id = {p.id: p for p in players}
    for t in place_tokens(players):
        initials.setdefault((t.row, t.col), []).append(
            (t.offset, by_id[t.player_id].name[:1].upper())
        )

    sep = "+" + ("-" * CELL_WIDTH + "+") * BOARD_SIZE
    lines = [sep]
    for row in range(BOARD_SIZE):
        top, bottom = [], []
        for col in range(BOARD_SIZE):
            square = from_grid(row, col)
            top.append(f"{square:>3}{_marker(topology, square):>4}"[:CELL_WIDTH])
            here = "".join(ch for _, ch in sorted(initials.get((row, col), [])))
            bottom.append(here.center(CELL_WIDTH))
        lines.append("|" + "|".join(top) + "|")
        lines.append("|" + "|".join(bottom) + "|")
        lines.append(sep)
    return "\n".join(lines)


def render_status(snapshot: GameSnapshot, status: str) -> str:
    roll = ""
    if snapshot.last_roll is not None:
        roll = f"  {DICE_FACES[snapshot.last_roll]} {snapshot.last_roll}"
    players = "   ".join(
        f"{p.name} ({p.position}){' ▲' if i == snapshot.active and not snapshot.game_over else ''}"
        for i, p in enumerate(snapshot.players)
    )
    return f"{status}{roll}\n{players}"


def render_chat(messages: Sequence[ChatMessage], error: str | None = None) -> str:
    lines = []
    for m in messages:
        who = "AI" if m.role == "assistant" else "You"
        lines.append(f"  {who}: {m.content}")
    if error:
        lines.append(f"  ! {error}")
    return "\n".join(lines)
