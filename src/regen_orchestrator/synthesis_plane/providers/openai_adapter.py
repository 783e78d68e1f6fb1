"""
regen-orchestrator — OpenAI-compatible generator adapter

File: src/regen_orchestrator/synthesis_plane/providers/openai_adapter.py
Last updated: 2026-10-19

Purpose
- Chat-completions generator for OpenAI and OpenAI-compatible gateways (OpenRouter by default).

What should be included in this file
- Lazy SDK import with injected-client support for tests.
- API key resolution from an environment variable name, never a literal in config.
- Usage accounting and transport error mapping.

Functional requirements
- Must return plain text completions; JSON parsing belongs to the layers.

Non-functional requirements
- Must be configurable and safe; do not hardcode keys.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import random as random_module
import time
from typing import Final, Protocol, cast

from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
from regen_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    GenerationResponse,
    GeneratorError,
    GeneratorUnavailableError,
    RandomFn,
    SleepFn,
    map_transport_exception,
    read_int,
    read_sequence,
    read_str,
    read_value,
    run_with_retries,
)

DEFAULT_OPENAI_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class OpenAICompatibleGenerator:
    """Chat-completions adapter with optional SDK dependency."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = DEFAULT_OPENAI_BASE_URL,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
    ) -> None:
        self._api_key = api_key.strip() if api_key else None
        self._api_key_env = api_key_env.strip() if api_key_env else None
        self._base_url = base_url.strip() if base_url else None
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._backoff = backoff if backoff is not None else BackoffConfig()
        self._sleep = sleep
        self._random_fn = random_fn

    async def generate(
        self,
        prompt: str,
        model: ModelBinding,
        *,
        max_tokens: int,
    ) -> GenerationResponse:
        payload: dict[str, object] = {
            "model": model.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
        }
        if model.temperature is not None:
            payload["temperature"] = model.temperature

        async def operation() -> GenerationResponse:
            client = self._ensure_client()
            started = time.perf_counter()
            raw = await client.chat.completions.create(**payload)
            duration_ms = int((time.perf_counter() - started) * 1000)
            return self._normalize_response(raw, model=model, duration_ms=duration_ms)

        return await run_with_retries(
            operation,
            map_exception=self._map_exception,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
        )

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise GeneratorUnavailableError(
                "openai SDK is not installed; install regen-orchestrator[openai]",
                provider=self.provider_name,
                code="sdk_missing",
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise GeneratorUnavailableError(
                "openai SDK does not expose AsyncOpenAI",
                provider=self.provider_name,
                code="sdk_missing",
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key
        env_names = [self._api_key_env] if self._api_key_env else ["OPENAI_API_KEY"]
        for env_name in env_names:
            configured = os.getenv(env_name)
            if configured is not None and configured.strip():
                return configured
        raise GeneratorUnavailableError(
            f"missing API key in env var {env_names[0]}",
            provider=self.provider_name,
            code="authentication",
            http_status=401,
        )

    def _normalize_response(
        self,
        raw: object,
        *,
        model: ModelBinding,
        duration_ms: int,
    ) -> GenerationResponse:
        choices = read_sequence(raw, "choices")
        if not choices:
            raise GeneratorUnavailableError(
                "completion response contained no choices",
                provider=self.provider_name,
                code="invalid_response",
            )
        message = read_value(choices[0], "message")
        text = read_str(message, "content") or ""
        usage = read_value(raw, "usage")
        input_tokens = read_int(usage, "prompt_tokens")
        output_tokens = read_int(usage, "completion_tokens")
        total_tokens = read_int(usage, "total_tokens") or input_tokens + output_tokens
        return GenerationResponse(
            text=text,
            token_cost=total_tokens,
            duration_ms=duration_ms,
            model=read_str(raw, "model") or model.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def _map_exception(self, exc: Exception) -> GeneratorError:
        return map_transport_exception(exc, provider=self.provider_name)


__all__ = ["DEFAULT_OPENAI_BASE_URL", "OpenAICompatibleGenerator"]
