"""Board topology and movement rules for Snakes & Ladders."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from snakes_duel.config import CELL_COUNT, DIE_FACES


class TopologyError(ValueError):
    """A snake/ladder table that can't be played on."""


@dataclass(frozen=True)
class Snake:
    head: int
    tail: int


@dataclass(frozen=True)
class Ladder:
    base: int
    top: int


# fmt: off
SNAKES: tuple[Snake, ...] = (
    Snake(99, 7),  Snake(92, 35), Snake(89, 53), Snake(74, 17), Snake(64, 24),
    Snake(62, 19), Snake(49, 11), Snake(46, 5),  Snake(16, 6),
)

LADDERS: tuple[Ladder, ...] = (
    Ladder(2, 23),  Ladder(8, 34),  Ladder(20, 77), Ladder(32, 68),
    Ladder(41, 79), Ladder(71, 91), Ladder(80, 100), Ladder(84, 98),
)
# fmt: on


def _on_board(square: int) -> bool:
    return 1 <= square <= CELL_COUNT


@dataclass(frozen=True)
class BoardTopology:
    """Immutable snake/ladder table, validated on construction."""

    snakes: tuple[Snake, ...] = SNAKES
    ladders: tuple[Ladder, ...] = LADDERS
    _jumps: dict[int, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "snakes", tuple(self.snakes))
        object.__setattr__(self, "ladders", tuple(self.ladders))

        jumps: dict[int, int] = {}
        for s in self.snakes:
            if not (_on_board(s.head) and _on_board(s.tail)):
                raise TopologyError(f"Snake {s.head}→{s.tail} leaves the board.")
            if s.head <= s.tail:
                raise TopologyError(f"Snake {s.head}→{s.tail} must go down.")
            if s.head in jumps:
                raise TopologyError(f"Square {s.head} starts more than one transition.")
            jumps[s.head] = s.tail
        for lad in self.ladders:
            if not (_on_board(lad.base) and _on_board(lad.top)):
                raise TopologyError(f"Ladder {lad.base}→{lad.top} leaves the board.")
            if lad.top <= lad.base:
                raise TopologyError(f"Ladder {lad.base}→{lad.top} must go up.")
            if lad.base in jumps:
                raise TopologyError(f"Square {lad.base} starts more than one transition.")
            jumps[lad.base] = lad.top

        # No chained triggers: a landing square can't start another jump.
        for start, dest in jumps.items():
            if dest in jumps:
                raise TopologyError(
                    f"Transition {start}→{dest} lands on another transition at {dest}."
                )

        # Endpoints are pairwise distinct: no two transitions share a destination.
        ends: set[int] = set()
        for dest in jumps.values():
            if dest in ends:
                raise TopologyError(f"Square {dest} ends more than one transition.")
            ends.add(dest)

        object.__setattr__(self, "_jumps", jumps)

    @classmethod
    def standard(cls) -> BoardTopology:
        return cls(SNAKES, LADDERS)

    @classmethod
    def from_dict(cls, data: dict) -> BoardTopology:
        """Build from ``{"snakes": [[head, tail], ...], "ladders": [[base, top], ...]}``."""
        try:
            snakes = tuple(Snake(int(h), int(t)) for h, t in data.get("snakes", []))
            ladders = tuple(Ladder(int(b), int(t)) for b, t in data.get("ladders", []))
        except (AttributeError, TypeError, ValueError) as exc:
            raise TopologyError(f"Malformed board table: {exc}") from exc
        return cls(snakes, ladders)

    def to_dict(self) -> dict:
        return {
            "snakes": [[s.head, s.tail] for s in self.snakes],
            "ladders": [[lad.base, lad.top] for lad in self.ladders],
        }

    def resolve(self, square: int) -> int:
        """Where a player who lands on *square* ends up (one lookup, no chaining)."""
        return self._jumps.get(square, square)

    def is_snake(self, square: int) -> bool:
        return self._jumps.get(square, square) < square

    def is_ladder(self, square: int) -> bool:
        return self._jumps.get(square, square) > square

    def transitions(self) -> list[tuple[int, int]]:
        """All ``(start, end)`` pairs, sorted by start square."""
        return sorted(self._jumps.items())


@dataclass(frozen=True)
class MoveOutcome:
    """What happened after a roll."""

    from_square: int
    to_square: int
    rolled: int
    target: int
    crossed_snake: bool = False
    crossed_ladder: bool = False
    overshot: bool = False

    @property
    def won(self) -> bool:
        return self.to_square == CELL_COUNT


def roll_dice(rng: random.Random | None = None) -> int:
    return (rng or random).randint(1, DIE_FACES)


def resolve_move(topology: BoardTopology, position: int, roll: int) -> MoveOutcome:
    """Compute the result of rolling *roll* from *position*.

    Does NOT mutate any player — the caller decides whether to commit.
    """
    if not _on_board(position):
        raise ValueError(f"Position {position} is off the board.")
    if not 1 <= roll <= DIE_FACES:
        raise ValueError(f"Roll {roll} is not a die face.")

    target = position + roll

    # Overshoot → stay put
    if target > CELL_COUNT:
        return MoveOutcome(
            from_square=position, to_square=position, rolled=roll,
            target=target, overshot=True,
        )

    landed = topology.resolve(target)
    return MoveOutcome(
        from_square=position,
        to_square=landed,
        rolled=roll,
        target=target,
        crossed_snake=landed < target,
        crossed_ladder=landed > target,
    )
