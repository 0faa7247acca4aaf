"""Board constants and runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping

BOARD_SIZE = 10
CELL_COUNT = BOARD_SIZE * BOARD_SIZE
DIE_FACES = 6

WELCOME_MESSAGE = "Ha! Ready to get schooled in Snakes and Ladders?"

SYSTEM_PROMPT = (
    "You are a playful, cheeky Snakes and Ladders champion. Respond in very "
    "short, witty, and taunting lines. Never offer helpful advice—always gloat "
    "and make fun (but family-friendly)."
)


@dataclass(frozen=True)
class Settings:
    """Everything a session needs that isn't board topology."""

    human_name: str = "You"
    human_color: str = "#d42c27"
    opponent_name: str = "AI"
    opponent_color: str = "#31c951"

    # Pacing delays (seconds). Realism only; zero is always valid.
    overshoot_delay: float = 1.3
    narration_delay: float = 1.1
    win_narration_delay: float = 0.65
    opponent_delay: float = 1.2

    # Narrator
    provider: str = "openai"  # "openai" | "anthropic"
    model: str | None = None  # None = provider default
    max_tokens: int = 38
    temperature: float = 0.95
    context_messages: int = 5

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        settings = cls(
            provider=env.get("SNAKES_DUEL_PROVIDER", cls.provider),
            model=env.get("SNAKES_DUEL_MODEL") or None,
        )
        if env.get("SNAKES_DUEL_FAST") == "1":
            settings = settings.instant()
        return settings

    def instant(self) -> Settings:
        """Copy of these settings with every pacing delay removed."""
        return replace(
            self,
            overshoot_delay=0.0,
            narration_delay=0.0,
            win_narration_delay=0.0,
            opponent_delay=0.0,
        )
