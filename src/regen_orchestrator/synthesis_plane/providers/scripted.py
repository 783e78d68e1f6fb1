"""Deterministic scripted generator for offline runs and tests."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TypeAlias

from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
from regen_orchestrator.synthesis_plane.providers.base import (
    GenerationResponse,
    GeneratorUnavailableError,
)

ScriptedStep: TypeAlias = (
    str
    | GenerationResponse
    | BaseException
    | Callable[[str, ModelBinding], "str | GenerationResponse | Awaitable[str | GenerationResponse]"]
)


@dataclass(frozen=True, slots=True)
class GeneratorCall:
    prompt: str
    model: ModelBinding
    max_tokens: int


class ScriptedGenerator:
    """Replays queued outcomes in order, one per ``generate`` call.

    Each step is a completion string, a ready ``GenerationResponse``, an exception
    to raise, or a callable receiving ``(prompt, model)``.
    """

    provider_name = "scripted"

    def __init__(
        self,
        steps: Iterable[ScriptedStep] = (),
        *,
        tokens_per_call: int = 100,
        delay_seconds: float = 0.0,
    ) -> None:
        if tokens_per_call < 0:
            raise ValueError("tokens_per_call must be >= 0")
        self._steps: deque[ScriptedStep] = deque(steps)
        self._tokens_per_call = tokens_per_call
        self._delay_seconds = delay_seconds
        self.calls: list[GeneratorCall] = []

    def enqueue(self, *steps: ScriptedStep) -> None:
        self._steps.extend(steps)

    @property
    def remaining(self) -> int:
        return len(self._steps)

    async def generate(
        self,
        prompt: str,
        model: ModelBinding,
        *,
        max_tokens: int,
    ) -> GenerationResponse:
        self.calls.append(GeneratorCall(prompt=prompt, model=model, max_tokens=max_tokens))
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)
        if not self._steps:
            raise GeneratorUnavailableError(
                "scripted generator has no remaining outcomes",
                provider=self.provider_name,
                code="exhausted",
            )
        step = self._steps.popleft()
        if isinstance(step, BaseException):
            raise step
        if callable(step) and not isinstance(step, GenerationResponse):
            produced = step(prompt, model)
            if inspect.isawaitable(produced):
                produced = await produced
            step = produced
        if isinstance(step, GenerationResponse):
            return step
        return GenerationResponse(text=step, token_cost=self._tokens_per_call, model=model.model)


__all__ = ["GeneratorCall", "ScriptedGenerator", "ScriptedStep"]
