"""Commentary events and the narration channel/worker that voices them.

The orchestrator only ever calls ``notify``; everything slow (the narrator
round-trip, transcript updates) happens in :class:`NarrationWorker`, off the
move-resolution path.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from snakes_duel.board import MoveOutcome
from snakes_duel.config import CELL_COUNT, SYSTEM_PROMPT
from snakes_duel.narrators import Narrator, NarratorError

if TYPE_CHECKING:
    from snakes_duel.chat import ChatTranscript

logger = logging.getLogger(__name__)


# ── Events ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CommentaryEvent:
    """A resolved move, as the narrator sees it."""

    outcome: MoveOutcome
    player_name: str
    is_automated: bool
    is_win: bool = False
    generation: int = 0


def describe_event(event: CommentaryEvent) -> str:
    """Plain-text account of the move, told from the AI rival's side."""
    o = event.outcome
    who = "I" if event.is_automated else f"My opponent ({event.player_name})"

    if o.overshot:
        return (
            f"{who} rolled a {o.rolled} on square {o.from_square} but needed exactly "
            f"{CELL_COUNT - o.from_square} to finish, so the token stays on {o.from_square}."
        )
    if o.crossed_snake:
        text = (
            f"{who} rolled a {o.rolled}, landed on a snake at {o.target} "
            f"and slid down to {o.to_square}."
        )
    elif o.crossed_ladder:
        text = (
            f"{who} rolled a {o.rolled}, landed on a ladder at {o.target} "
            f"and climbed up to {o.to_square}."
        )
    else:
        text = f"{who} rolled a {o.rolled} and moved from {o.from_square} to {o.to_square}."

    if event.is_win:
        text += f" That reaches square {CELL_COUNT} and wins the game!"
    return text


def tone_directive(event: CommentaryEvent) -> str:
    if event.is_win and event.is_automated:
        return "You just won. Celebrate shamelessly and rub it in."
    if event.is_win:
        return "You just lost. Be a sore loser in one grudging, dramatic line."
    if event.is_automated:
        return "Gloat about your own move in one short line."
    return "Taunt and mock your opponent's move in one short line."


def build_messages(history: list[dict], event: CommentaryEvent) -> list[dict]:
    """Chat messages for one narration request (system prompt sent separately)."""
    prompt = f"{describe_event(event)} {tone_directive(event)}"
    return [*history, {"role": "user", "content": prompt}]


# ── Trigger interface ───────────────────────────────────────────────

class CommentaryTrigger(Protocol):
    """Receives commentary events. Must not block and must not fail the caller.

    A trigger may also offer ``discard_before(generation)``; the orchestrator
    calls it on reset to drop events from older sessions.
    """

    def notify(self, event: CommentaryEvent) -> None: ...


@dataclass
class ListTrigger:
    """Default trigger — collects events into a list."""

    events: list[CommentaryEvent] = field(default_factory=list)
    generation: int = 0

    def notify(self, event: CommentaryEvent) -> None:
        self.events.append(event)

    def discard_before(self, generation: int) -> None:
        self.generation = generation


class NarrationChannel:
    """Outbound queue of commentary events for a :class:`NarrationWorker`."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[CommentaryEvent] = asyncio.Queue()
        self.generation = 0

    def notify(self, event: CommentaryEvent) -> None:
        if self.is_stale(event):
            logger.debug("Dropping event from stale generation %d", event.generation)
            return
        self._queue.put_nowait(event)

    def discard_before(self, generation: int) -> None:
        """Forget queued events from sessions older than *generation*."""
        self.generation = generation
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.debug("Discarded %d pending narration event(s)", dropped)

    def is_stale(self, event: CommentaryEvent) -> bool:
        return event.generation < self.generation

    async def get(self) -> CommentaryEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def __len__(self) -> int:
        return self._queue.qsize()


class NarrationWorker:
    """Turns queued events into chat lines, one at a time, in arrival order."""

    def __init__(
        self,
        channel: NarrationChannel,
        narrator: Narrator,
        transcript: ChatTranscript,
        context_messages: int = 5,
    ):
        self.channel = channel
        self.narrator = narrator
        self.transcript = transcript
        self.context_messages = context_messages

    async def run(self) -> None:
        while True:
            event = await self.channel.get()
            try:
                await self.narrate(event)
            finally:
                self.channel.task_done()

    async def narrate(self, event: CommentaryEvent) -> str | None:
        """Voice one event. Returns the line added to the transcript, if any."""
        if self.channel.is_stale(event):
            return None

        messages = build_messages(self.transcript.recent(self.context_messages), event)
        self.transcript.loading = True
        try:
            reply = await asyncio.to_thread(self.narrator.complete, SYSTEM_PROMPT, messages)
        except NarratorError as exc:
            logger.warning("Narration failed: %s", exc)
            if not self.channel.is_stale(event):
                self.transcript.fail(str(exc))
            return None
        except Exception as exc:
            logger.exception("Narrator raised unexpectedly")
            if not self.channel.is_stale(event):
                self.transcript.fail(f"Narrator error: {exc}")
            return None
        finally:
            self.transcript.loading = False

        # A reset may have landed while the narrator was thinking.
        if self.channel.is_stale(event):
            logger.debug("Dropping narration for stale generation %d", event.generation)
            return None

        self.transcript.add("assistant", reply)
        return reply
