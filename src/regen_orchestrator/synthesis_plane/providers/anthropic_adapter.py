"""
regen-orchestrator — Anthropic generator adapter

File: src/regen_orchestrator/synthesis_plane/providers/anthropic_adapter.py
Last updated: 2026-10-19

Purpose
- Messages-API generator for Anthropic models.

Functional requirements
- Concatenate text content blocks into the completion text.
- Map SDK/transport failures to ``GeneratorError`` subclasses.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import random as random_module
import time
from typing import Protocol, cast

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


class _MessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _MessagesAPI


class AnthropicGenerator:
    """Anthropic messages adapter with optional SDK dependency."""

    provider_name = "anthropic"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
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
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if model.temperature is not None:
            payload["temperature"] = min(model.temperature, 1.0)

        async def operation() -> GenerationResponse:
            client = self._ensure_client()
            started = time.perf_counter()
            raw = await client.messages.create(**payload)
            duration_ms = int((time.perf_counter() - started) * 1000)
            return self._normalize_response(raw, model=model, duration_ms=duration_ms)

        return await run_with_retries(
            operation,
            map_exception=self._map_exception,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
        )

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _AnthropicClient:
        try:
            anthropic_module = importlib.import_module("anthropic")
        except ImportError as exc:
            raise GeneratorUnavailableError(
                "anthropic SDK is not installed; install regen-orchestrator[anthropic]",
                provider=self.provider_name,
                code="sdk_missing",
            ) from exc

        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise GeneratorUnavailableError(
                "anthropic SDK does not expose AsyncAnthropic",
                provider=self.provider_name,
                code="sdk_missing",
            )
        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_AnthropicClient", async_anthropic(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key
        env_name = self._api_key_env or "ANTHROPIC_API_KEY"
        configured = os.getenv(env_name)
        if configured is None or not configured.strip():
            raise GeneratorUnavailableError(
                f"missing API key in env var {env_name}",
                provider=self.provider_name,
                code="authentication",
                http_status=401,
            )
        return configured

    def _normalize_response(
        self,
        raw: object,
        *,
        model: ModelBinding,
        duration_ms: int,
    ) -> GenerationResponse:
        blocks: list[str] = []
        for item in read_sequence(raw, "content"):
            if read_str(item, "type") not in (None, "text"):
                continue
            text = read_str(item, "text")
            if text is not None:
                blocks.append(text)
        usage = read_value(raw, "usage")
        input_tokens = read_int(usage, "input_tokens")
        output_tokens = read_int(usage, "output_tokens")
        return GenerationResponse(
            text="".join(blocks),
            token_cost=input_tokens + output_tokens,
            duration_ms=duration_ms,
            model=read_str(raw, "model") or model.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def _map_exception(self, exc: Exception) -> GeneratorError:
        return map_transport_exception(exc, provider=self.provider_name)


__all__ = ["AnthropicGenerator"]
