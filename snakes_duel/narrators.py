"""Narrator implementations — OpenAI, Anthropic, and OpenRouter."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

from snakes_duel.config import Settings

logger = logging.getLogger(__name__)


class NarratorError(Exception):
    """The commentary service couldn't produce a line (recoverable)."""


def _to_json_safe(obj: Any) -> Any:
    """Recursively convert SDK objects (with model_dump) to plain dicts/lists."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if isinstance(obj, dict):
        return {k: _to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_to_json_safe(v) for v in obj]
    return obj


@dataclass
class NarrationInvocation:
    """Snapshot of a single completion call — request, reply, and metadata."""

    request_messages: list[dict] = field(default_factory=list)
    reply: str = ""
    response_raw: dict = field(default_factory=dict)
    model_api_id: str = ""
    input_tokens: int | None = None
    output_tokens: int | None = None
    latency_ms: int | None = None


# ── Narrator interface ──────────────────────────────────────────────

@runtime_checkable
class Narrator(Protocol):
    """Structural interface — any object with ``complete`` works."""

    def complete(self, system: str, messages: list[dict]) -> str: ...


# ── OpenAI-compatible narrator (works for OpenAI + OpenRouter) ──────

@dataclass
class OpenAINarrator:
    """Narrator backed by any OpenAI-compatible chat/completions API."""

    model: str
    api_key: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    max_tokens: int = 38
    temperature: float = 0.95
    _client: object = field(default=None, repr=False)
    _last_invocation: NarrationInvocation | None = field(default=None, repr=False)

    @property
    def last_invocation(self) -> NarrationInvocation | None:
        return self._last_invocation

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
            )
        return self._client

    def complete(self, system: str, messages: list[dict]) -> str:
        if not self.api_key:
            raise NarratorError(
                f"{self.api_key_env} missing! Set {self.api_key_env} in the environment."
            )
        import openai

        request = [{"role": "system", "content": system}, *messages]
        client = self._get_client()
        t0 = time.monotonic()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=request,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.OpenAIError as exc:
            raise NarratorError(f"OpenAI response error: {exc}") from exc
        latency_ms = int((time.monotonic() - t0) * 1000)

        choices = getattr(response, "choices", None) or []
        reply = (choices[0].message.content if choices else None) or "…"

        usage = getattr(response, "usage", None)
        self._last_invocation = NarrationInvocation(
            request_messages=_to_json_safe(request),
            reply=reply,
            response_raw=response.model_dump() if hasattr(response, "model_dump") else {},
            model_api_id=self.model,
            input_tokens=getattr(usage, "prompt_tokens", None),
            output_tokens=getattr(usage, "completion_tokens", None),
            latency_ms=latency_ms,
        )
        logger.debug("Narrator replied in %d ms: %r", latency_ms, reply)
        return reply


# ── Anthropic narrator ──────────────────────────────────────────────

@dataclass
class AnthropicNarrator:
    """Narrator backed by Anthropic's messages API."""

    model: str
    api_key: str | None = None
    api_key_env: str = "ANTHROPIC_API_KEY"
    max_tokens: int = 38
    temperature: float = 0.95
    _client: object = field(default=None, repr=False)
    _last_invocation: NarrationInvocation | None = field(default=None, repr=False)

    @property
    def last_invocation(self) -> NarrationInvocation | None:
        return self._last_invocation

    def _get_client(self):
        if self._client is None:
            from anthropic import Anthropic
            self._client = Anthropic(api_key=self.api_key)
        return self._client

    def complete(self, system: str, messages: list[dict]) -> str:
        if not self.api_key:
            raise NarratorError(
                f"{self.api_key_env} missing! Set {self.api_key_env} in the environment."
            )
        import anthropic

        # The messages API wants the first turn to come from the user.
        request = list(messages)
        while request and request[0]["role"] != "user":
            request.pop(0)

        client = self._get_client()
        t0 = time.monotonic()
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=request,
            )
        except anthropic.AnthropicError as exc:
            raise NarratorError(f"Anthropic response error: {exc}") from exc
        latency_ms = int((time.monotonic() - t0) * 1000)

        texts = [b.text for b in response.content if getattr(b, "type", None) == "text"]
        reply = "\n".join(texts) or "…"

        usage = getattr(response, "usage", None)
        self._last_invocation = NarrationInvocation(
            request_messages=_to_json_safe(request),
            reply=reply,
            response_raw=response.model_dump() if hasattr(response, "model_dump") else {},
            model_api_id=self.model,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
            latency_ms=latency_ms,
        )
        logger.debug("Narrator replied in %d ms: %r", latency_ms, reply)
        return reply


# ── Offline narrator ────────────────────────────────────────────────

@dataclass
class CannedNarrator:
    """Offline narrator that cycles through fixed lines."""

    lines: tuple[str, ...] = (
        "Is that all you've got?",
        "Watch and learn.",
        "The dice love me, clearly.",
    )
    _idx: int = field(default=0, repr=False)

    def complete(self, system: str, messages: list[dict]) -> str:
        line = self.lines[self._idx % len(self.lines)]
        self._idx += 1
        return line


# ── Provider registry ───────────────────────────────────────────────

@dataclass
class NarratorSpec:
    """How to instantiate a narrator for a given provider."""

    provider: str  # "openai" | "anthropic" | "openrouter"
    default_model: str
    api_key_env: str
    base_url: str | None = None

    def make_narrator(
        self,
        settings: Settings,
        environ: Mapping[str, str] | None = None,
    ) -> OpenAINarrator | AnthropicNarrator:
        env = os.environ if environ is None else environ
        model = settings.model or self.default_model
        api_key = env.get(self.api_key_env)
        if self.provider == "anthropic":
            return AnthropicNarrator(
                model=model,
                api_key=api_key,
                api_key_env=self.api_key_env,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
            )
        return OpenAINarrator(
            model=model,
            api_key=api_key,
            api_key_env=self.api_key_env,
            base_url=self.base_url,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )


PROVIDERS: dict[str, NarratorSpec] = {
    "openai": NarratorSpec("openai", "gpt-3.5-turbo", "OPENAI_API_KEY"),
    "anthropic": NarratorSpec("anthropic", "claude-haiku-4-5-20251001", "ANTHROPIC_API_KEY"),
    "openrouter": NarratorSpec(
        "openrouter", "openai/gpt-4.1-mini", "OPENROUTER_API_KEY",
        base_url="https://openrouter.ai/api/v1",
    ),
}


def make_narrator(
    settings: Settings,
    environ: Mapping[str, str] | None = None,
) -> OpenAINarrator | AnthropicNarrator:
    """Build the narrator named by ``settings.provider``.

    A missing credential is not an error here; it surfaces on the first
    ``complete`` call so gameplay can start regardless.
    """
    spec = PROVIDERS.get(settings.provider)
    if spec is None:
        raise ValueError(
            f"Unknown narrator provider {settings.provider!r} "
            f"(expected one of {', '.join(PROVIDERS)})"
        )
    return spec.make_narrator(settings, environ)
