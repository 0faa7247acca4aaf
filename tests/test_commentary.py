"""Tests for snakes_duel.commentary (events, channel, narration worker)."""

import asyncio

from snakes_duel.board import BoardTopology, resolve_move
from snakes_duel.chat import ChatTranscript
from snakes_duel.commentary import (
    CommentaryEvent,
    NarrationChannel,
    NarrationWorker,
    build_messages,
    describe_event,
    tone_directive,
)
from snakes_duel.config import SYSTEM_PROMPT, WELCOME_MESSAGE, Settings
from snakes_duel.game import GameOrchestrator
from snakes_duel.narrators import NarratorError

BOARD = BoardTopology.standard()


def _event(position, roll, automated=False, generation=0):
    outcome = resolve_move(BOARD, position, roll)
    return CommentaryEvent(
        outcome=outcome,
        player_name="AI" if automated else "You",
        is_automated=automated,
        is_win=outcome.won,
        generation=generation,
    )


class FakeNarrator:
    """Records requests and answers with numbered lines (or fails)."""

    def __init__(self, error: Exception | None = None, on_call=None):
        self.calls: list[tuple[str, list[dict]]] = []
        self.error = error
        self.on_call = on_call

    def complete(self, system: str, messages: list[dict]) -> str:
        self.calls.append((system, messages))
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return f"line {len(self.calls)}"


# ── describe_event ───────────────────────────────────────────────────

def test_describe_plain_move():
    text = describe_event(_event(10, 3))
    assert "rolled a 3" in text
    assert "from 10 to 13" in text
    assert text.startswith("My opponent (You)")


def test_describe_automated_move_in_first_person():
    assert describe_event(_event(10, 3, automated=True)).startswith("I rolled a 3")


def test_describe_snake():
    text = describe_event(_event(93, 6))
    assert "snake at 99" in text
    assert "down to 7" in text


def test_describe_ladder():
    text = describe_event(_event(1, 1))
    assert "ladder at 2" in text
    assert "up to 23" in text


def test_describe_overshoot():
    text = describe_event(_event(95, 6))
    assert "needed exactly 5" in text
    assert "stays on 95" in text


def test_describe_win():
    assert "wins the game" in describe_event(_event(96, 4))


# ── tone_directive ───────────────────────────────────────────────────

def test_tones_are_role_specific():
    human = tone_directive(_event(10, 3))
    ai = tone_directive(_event(10, 3, automated=True))
    human_win = tone_directive(_event(96, 4))
    ai_win = tone_directive(_event(96, 4, automated=True))
    assert "Taunt" in human
    assert "Gloat" in ai
    assert len({human, ai, human_win, ai_win}) == 4


def test_build_messages_appends_prompt():
    history = [{"role": "assistant", "content": WELCOME_MESSAGE}]
    msgs = build_messages(history, _event(10, 3))
    assert msgs[0] == history[0]
    assert msgs[-1]["role"] == "user"
    assert "rolled a 3" in msgs[-1]["content"]
    assert "Taunt" in msgs[-1]["content"]
    assert len(history) == 1  # not mutated


# ── NarrationChannel ─────────────────────────────────────────────────

def test_channel_queues_events():
    channel = NarrationChannel()
    channel.notify(_event(10, 3))
    channel.notify(_event(10, 4))
    assert len(channel) == 2


def test_channel_discard_before_drops_pending():
    channel = NarrationChannel()
    channel.notify(_event(10, 3))
    channel.discard_before(1)
    assert len(channel) == 0
    assert channel.is_stale(_event(10, 3, generation=0))
    assert not channel.is_stale(_event(10, 3, generation=1))


def test_channel_ignores_stale_notifications():
    channel = NarrationChannel()
    channel.discard_before(2)
    channel.notify(_event(10, 3, generation=1))
    assert len(channel) == 0


# ── NarrationWorker ──────────────────────────────────────────────────

def test_worker_adds_reply_to_transcript():
    async def scenario():
        transcript = ChatTranscript()
        narrator = FakeNarrator()
        worker = NarrationWorker(NarrationChannel(), narrator, transcript)
        reply = await worker.narrate(_event(10, 3))
        assert reply == "line 1"
        assert transcript.messages[-1].content == "line 1"
        assert transcript.messages[-1].role == "assistant"
        assert not transcript.loading

        system, messages = narrator.calls[0]
        assert system == SYSTEM_PROMPT
        assert messages[0]["content"] == WELCOME_MESSAGE

    asyncio.run(scenario())


def test_worker_limits_context():
    async def scenario():
        transcript = ChatTranscript()
        for i in range(10):
            transcript.add("user", f"msg {i}")
        narrator = FakeNarrator()
        worker = NarrationWorker(NarrationChannel(), narrator, transcript, context_messages=5)
        await worker.narrate(_event(10, 3))
        _, messages = narrator.calls[0]
        assert len(messages) == 6  # 5 history + the event prompt
        assert messages[0]["content"] == "msg 5"

    asyncio.run(scenario())


def test_worker_reports_narrator_error():
    async def scenario():
        transcript = ChatTranscript()
        narrator = FakeNarrator(error=NarratorError("OPENAI_API_KEY missing!"))
        worker = NarrationWorker(NarrationChannel(), narrator, transcript)
        assert await worker.narrate(_event(10, 3)) is None
        assert transcript.error == "OPENAI_API_KEY missing!"
        assert [m.content for m in transcript.messages] == [WELCOME_MESSAGE]
        assert not transcript.loading

    asyncio.run(scenario())


def test_worker_reports_unexpected_narrator_failure():
    async def scenario():
        transcript = ChatTranscript()
        channel = NarrationChannel()
        narrator = FakeNarrator(error=RuntimeError("bad payload"))
        worker = NarrationWorker(channel, narrator, transcript)
        task = asyncio.create_task(worker.run())

        channel.notify(_event(10, 3))
        await channel.join()
        assert not task.done()
        assert transcript.error == "Narrator error: bad payload"
        assert not transcript.loading

        worker.narrator = FakeNarrator()
        channel.notify(_event(13, 2, automated=True))
        await channel.join()
        assert transcript.messages[-1].content == "line 1"

        task.cancel()

    asyncio.run(scenario())


def test_worker_drops_reply_after_reset():
    async def scenario():
        transcript = ChatTranscript()
        channel = NarrationChannel()
        narrator = FakeNarrator(on_call=lambda: setattr(channel, "generation", 1))
        worker = NarrationWorker(channel, narrator, transcript)
        assert await worker.narrate(_event(10, 3, generation=0)) is None
        assert [m.content for m in transcript.messages] == [WELCOME_MESSAGE]

    asyncio.run(scenario())


def test_worker_skips_stale_event_without_calling_narrator():
    async def scenario():
        channel = NarrationChannel()
        channel.discard_before(1)
        narrator = FakeNarrator()
        worker = NarrationWorker(channel, narrator, ChatTranscript())
        assert await worker.narrate(_event(10, 3, generation=0)) is None
        assert narrator.calls == []

    asyncio.run(scenario())


def test_worker_run_keeps_going_after_failure():
    async def scenario():
        transcript = ChatTranscript()
        channel = NarrationChannel()
        failing = FakeNarrator(error=NarratorError("service down"))
        worker = NarrationWorker(channel, failing, transcript)
        task = asyncio.create_task(worker.run())

        channel.notify(_event(10, 3))
        await channel.join()
        assert transcript.error == "service down"

        worker.narrator = FakeNarrator()
        channel.notify(_event(13, 2, automated=True))
        await channel.join()
        assert transcript.messages[-1].content == "line 1"

        task.cancel()

    asyncio.run(scenario())


# ── end to end ───────────────────────────────────────────────────────

def test_game_narration_in_arrival_order():
    async def scenario():
        transcript = ChatTranscript()
        channel = NarrationChannel()
        narrator = FakeNarrator()
        worker_task = asyncio.create_task(
            NarrationWorker(channel, narrator, transcript).run()
        )
        rolls = iter([3, 5])
        game = GameOrchestrator(
            trigger=channel, settings=Settings().instant(), roll=lambda: next(rolls),
        )

        await game.request_move()
        await game.wait_idle()
        await channel.join()

        assert [m.content for m in transcript.messages] == [WELCOME_MESSAGE, "line 1", "line 2"]
        first_prompt = narrator.calls[0][1][-1]["content"]
        second_prompt = narrator.calls[1][1][-1]["content"]
        assert "My opponent" in first_prompt
        assert second_prompt.startswith("I rolled a 5")

        worker_task.cancel()

    asyncio.run(scenario())


def test_narrator_failure_does_not_stall_game():
    async def scenario():
        transcript = ChatTranscript()
        channel = NarrationChannel()
        worker_task = asyncio.create_task(
            NarrationWorker(channel, FakeNarrator(error=NarratorError("no key")), transcript).run()
        )
        rolls = iter([3, 5])
        game = GameOrchestrator(
            trigger=channel, settings=Settings().instant(), roll=lambda: next(rolls),
        )
        await game.request_move()
        await game.wait_idle()
        await channel.join()

        assert [p.position for p in game.session.players] == [4, 6]
        assert transcript.error == "no key"

        worker_task.cancel()

    asyncio.run(scenario())
