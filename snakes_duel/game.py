"""Turn orchestrator — runs a human vs. automated Snakes & Ladders game."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Coroutine

from snakes_duel.board import BoardTopology, MoveOutcome, resolve_move, roll_dice
from snakes_duel.commentary import CommentaryEvent, CommentaryTrigger, ListTrigger
from snakes_duel.config import Settings

logger = logging.getLogger(__name__)


# ── Session state ───────────────────────────────────────────────────

@dataclass
class Player:
    id: int
    name: str
    color: str
    is_automated: bool = False
    avatar: str | None = None
    position: int = 1


@dataclass
class GameSession:
    """Mutable state for one game. Replaced wholesale on reset."""

    players: list[Player] = field(default_factory=list)
    active: int = 0
    game_over: bool = False
    winner: int | None = None
    last_roll: int | None = None
    generation: int = 0

    @classmethod
    def new(cls, settings: Settings, generation: int = 0) -> GameSession:
        return cls(
            players=[
                Player(1, settings.human_name, settings.human_color),
                Player(2, settings.opponent_name, settings.opponent_color, is_automated=True),
            ],
            generation=generation,
        )

    @property
    def active_player(self) -> Player:
        return self.players[self.active]


class TurnState(str, Enum):
    AWAITING_HUMAN_MOVE = "awaiting_human_move"
    RESOLVING_MOVE = "resolving_move"
    AUTOMATED_TURN_PENDING = "automated_turn_pending"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class PlayerView:
    id: int
    name: str
    color: str
    position: int
    is_automated: bool
    avatar: str | None = None


@dataclass(frozen=True)
class GameSnapshot:
    """Read-only copy of the session handed to renderers and narrators."""

    players: tuple[PlayerView, ...]
    state: TurnState
    active: int
    game_over: bool
    winner: int | None
    last_roll: int | None
    generation: int


# ── Cancellation ────────────────────────────────────────────────────

class TurnCancelled(Exception):
    """The session this work belongs to has been reset."""


class CancellationToken:
    """Shared by every scheduled transition of one session."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled()

    async def sleep(self, delay: float) -> None:
        """Wait *delay* seconds, waking early (and raising) on cancellation."""
        if delay > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(0)
        self.raise_if_cancelled()


# ── Orchestrator ────────────────────────────────────────────────────

class GameOrchestrator:
    """Owns the session and drives it through the turn state machine.

    Only one move is ever in flight: the busy flag covers both the human
    and the automated path.
    """

    def __init__(
        self,
        topology: BoardTopology | None = None,
        trigger: CommentaryTrigger | None = None,
        settings: Settings | None = None,
        roll: Callable[[], int] | None = None,
    ):
        self.topology = topology if topology is not None else BoardTopology.standard()
        self.trigger = trigger if trigger is not None else ListTrigger()
        self.settings = settings if settings is not None else Settings()
        self._roll = roll or roll_dice
        self._session = GameSession.new(self.settings)
        self._state = TurnState.AWAITING_HUMAN_MOVE
        self._busy = False
        self._token = CancellationToken()
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def session(self) -> GameSession:
        return self._session

    # ── public operations ──

    async def request_move(self) -> MoveOutcome | None:
        """Play the human's turn. Ignored unless it's the human's move."""
        if self._busy or self._state is not TurnState.AWAITING_HUMAN_MOVE:
            logger.debug(
                "Ignoring move request (state=%s, busy=%s)", self._state.value, self._busy,
            )
            return None
        return await self._play_turn(self._token)

    def reset_game(self) -> None:
        """Start over from any state, abandoning whatever is in flight."""
        self._token.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        generation = self._session.generation + 1
        self._session = GameSession.new(self.settings, generation)
        self._token = CancellationToken()
        self._busy = False
        self._state = TurnState.AWAITING_HUMAN_MOVE
        discard = getattr(self.trigger, "discard_before", None)
        if discard is not None:
            discard(generation)
        logger.info("Game reset (generation %d)", generation)

    async def wait_idle(self) -> None:
        """Wait for scheduled turns to finish."""
        while self._tasks:
            done, _ = await asyncio.wait(set(self._tasks))
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    def snapshot(self) -> GameSnapshot:
        s = self._session
        return GameSnapshot(
            players=tuple(
                PlayerView(p.id, p.name, p.color, p.position, p.is_automated, p.avatar)
                for p in s.players
            ),
            state=self._state,
            active=s.active,
            game_over=s.game_over,
            winner=s.winner,
            last_roll=s.last_roll,
            generation=s.generation,
        )

    def status_line(self) -> str:
        s = self._session
        if s.game_over and s.winner is not None:
            winner = s.players[s.winner]
            verb = "win" if winner.name == "You" else "wins"
            return f"{winner.name} {verb}! 🏆"
        if self._state is TurnState.RESOLVING_MOVE:
            return "Rolling…"
        if s.active_player.is_automated:
            return f"{s.active_player.name} is making its move…"
        return "Your turn: roll the dice!"

    # ── turn machinery ──

    async def _play_turn(self, token: CancellationToken) -> MoveOutcome | None:
        session = self._session
        self._busy = True
        self._state = TurnState.RESOLVING_MOVE
        try:
            idx = session.active
            player = session.players[idx]

            rolled = self._roll()
            outcome = resolve_move(self.topology, player.position, rolled)
            session.last_roll = rolled
            player.position = outcome.to_square
            logger.debug(
                "%s rolled %d: %d → %d%s%s%s",
                player.name, rolled, outcome.from_square, outcome.to_square,
                " (snake)" if outcome.crossed_snake else "",
                " (ladder)" if outcome.crossed_ladder else "",
                " (overshoot)" if outcome.overshot else "",
            )

            if outcome.won:
                session.game_over = True
                session.winner = idx
                self._state = TurnState.GAME_OVER
                logger.info("%s wins", player.name)
                await token.sleep(self.settings.win_narration_delay)
                self._emit(session, player, outcome)
                return outcome

            if outcome.overshot:
                self._emit(session, player, outcome)
                await token.sleep(self.settings.overshoot_delay)
            else:
                await token.sleep(self.settings.narration_delay)
                self._emit(session, player, outcome)

            session.active = 1 - idx
            if session.active_player.is_automated:
                self._state = TurnState.AUTOMATED_TURN_PENDING
                self._schedule(self._automated_turn(token))
            else:
                self._state = TurnState.AWAITING_HUMAN_MOVE
            return outcome
        except TurnCancelled:
            logger.debug("Turn abandoned: session was reset")
            return None
        finally:
            if token is self._token:
                self._busy = False

    async def _automated_turn(self, token: CancellationToken) -> None:
        try:
            await token.sleep(self.settings.opponent_delay)
        except TurnCancelled:
            return
        if self._busy or self._state is not TurnState.AUTOMATED_TURN_PENDING:
            return
        await self._play_turn(token)

    def _schedule(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _emit(self, session: GameSession, player: Player, outcome: MoveOutcome) -> None:
        event = CommentaryEvent(
            outcome=outcome,
            player_name=player.name,
            is_automated=player.is_automated,
            is_win=outcome.won,
            generation=session.generation,
        )
        try:
            self.trigger.notify(event)
        except Exception:
            # Commentary never gets a say in how the game goes.
            logger.exception("Commentary trigger failed")
