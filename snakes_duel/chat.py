"""Chat transcript between the human and the AI rival."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from snakes_duel.config import SYSTEM_PROMPT, WELCOME_MESSAGE
from snakes_duel.narrators import Narrator, NarratorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "assistant" | "user"
    content: str


def _welcome() -> list[ChatMessage]:
    return [ChatMessage("assistant", WELCOME_MESSAGE)]


@dataclass
class ChatTranscript:
    """Its own state slice — never touched by the game orchestrator."""

    messages: list[ChatMessage] = field(default_factory=_welcome)
    error: str | None = None
    loading: bool = False

    def add(self, role: str, content: str) -> ChatMessage:
        msg = ChatMessage(role, content)
        self.messages.append(msg)
        return msg

    def fail(self, message: str) -> None:
        self.error = message

    def recent(self, n: int) -> list[dict]:
        """The last *n* messages in chat-completion format."""
        if n <= 0:
            return []
        return [{"role": m.role, "content": m.content} for m in self.messages[-n:]]

    def reset_to_welcome(self) -> None:
        self.messages = _welcome()
        self.error = None
        self.loading = False


async def send_user_message(
    transcript: ChatTranscript,
    narrator: Narrator,
    text: str,
    context_messages: int = 5,
) -> str | None:
    """Post the human's *text* and wait for the rival's answer.

    Returns the reply, or ``None`` if *text* is blank or the narrator failed
    (in which case the failure is on ``transcript.error``).
    """
    text = text.strip()
    if not text:
        return None

    history = transcript.recent(context_messages)
    transcript.add("user", text)
    conversation = transcript.messages
    transcript.error = None
    transcript.loading = True
    try:
        reply = await asyncio.to_thread(
            narrator.complete,
            SYSTEM_PROMPT,
            [*history, {"role": "user", "content": text}],
        )
    except NarratorError as exc:
        logger.warning("Chat reply failed: %s", exc)
        if transcript.messages is conversation:
            transcript.fail(str(exc))
        return None
    finally:
        transcript.loading = False

    # reset_to_welcome() swaps in a new list; the reply belongs to the old one.
    if transcript.messages is not conversation:
        logger.debug("Dropping chat reply after transcript reset")
        return None
    transcript.add("assistant", reply)
    return reply
