"""
Unit tests for generator adapters and the shared generator API.

Coverage:
- Deterministic bounded backoff and transport exception classification.
- OpenAI-compatible and Anthropic adapter normalization and retry behavior.
- Lazy SDK import and API key resolution from environment variable names.
- Generator registry and the scripted offline generator.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

import pytest

from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
from regen_orchestrator.synthesis_plane.providers import (
    DEFAULT_OPENAI_BASE_URL,
    AnthropicGenerator,
    BackoffConfig,
    GenerationResponse,
    GeneratorRegistry,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
    OpenAICompatibleGenerator,
    ScriptedGenerator,
    compute_backoff_delay,
    map_transport_exception,
)


@dataclass(slots=True)
class _ScriptedCreate:
    outcomes: deque[object | Exception]
    calls: list[dict[str, object]] = field(default_factory=list)

    async def create(self, **kwargs: object) -> object:
        self.calls.append(dict(kwargs))
        if not self.outcomes:
            raise RuntimeError("scripted outcomes exhausted")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass(slots=True)
class _FakeChat:
    completions: _ScriptedCreate


@dataclass(slots=True)
class _FakeOpenAIClient:
    chat: _FakeChat


@dataclass(slots=True)
class _FakeAnthropicClient:
    messages: _ScriptedCreate


@dataclass(slots=True)
class _SleepRecorder:
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RateLimitError(Exception):
    status_code = 429


class AuthenticationError(Exception):
    status_code = 401


class APIConnectionError(Exception):
    pass


class BadRequestError(Exception):
    status_code = 400


_BINDING = ModelBinding(provider="openai", model="openai/gpt-oss-20b", temperature=0.2)
_CLAUDE = ModelBinding(provider="anthropic", model="claude-sonnet-4-5", temperature=1.5)


def _openai(outcomes: list[object | Exception], **kwargs: object) -> tuple[
    OpenAICompatibleGenerator, _ScriptedCreate
]:
    api = _ScriptedCreate(outcomes=deque(outcomes))
    adapter = OpenAICompatibleGenerator(
        client=_FakeOpenAIClient(chat=_FakeChat(completions=api)),
        **kwargs,  # type: ignore[arg-type]
    )
    return adapter, api


def test_compute_backoff_delay_is_bounded_and_deterministic() -> None:
    random_values = iter((0.0, 1.0, 0.5))

    def random_fn() -> float:
        return next(random_values)

    config = BackoffConfig(
        max_retries=4,
        initial_delay_seconds=1.0,
        multiplier=3.0,
        max_delay_seconds=5.0,
        jitter_ratio=0.5,
    )

    delay_1 = compute_backoff_delay(retry_number=1, config=config, random_fn=random_fn)
    delay_2 = compute_backoff_delay(retry_number=2, config=config, random_fn=random_fn)
    delay_3 = compute_backoff_delay(retry_number=3, config=config, random_fn=random_fn)

    assert delay_1 == pytest.approx(0.5)
    assert delay_2 == pytest.approx(4.5)
    assert delay_3 == pytest.approx(5.0)


@pytest.mark.parametrize(
    ("exc", "error_type", "code", "retryable"),
    [
        (RateLimitError("slow down"), GeneratorUnavailableError, "rate_limited", True),
        (AuthenticationError("bad key"), GeneratorUnavailableError, "authentication", False),
        (APIConnectionError("reset"), GeneratorUnavailableError, "service", True),
        (BadRequestError("too long"), GeneratorUnavailableError, "invalid_request", False),
        (TimeoutError("deadline"), GeneratorTimeoutError, "timeout", True),
        (KeyError("odd"), GeneratorUnavailableError, "unknown", False),
    ],
)
def test_map_transport_exception_classifies_failures(
    exc: Exception, error_type: type[Exception], code: str, retryable: bool
) -> None:
    mapped = map_transport_exception(exc, provider="openai")

    assert type(mapped) is error_type
    assert mapped.code == code
    assert mapped.retryable is retryable
    assert mapped.provider == "openai"


def test_generator_registry_register_get_and_missing_error() -> None:
    registry = GeneratorRegistry()
    registry.register("Scripted", ScriptedGenerator)

    assert registry.list() == ("scripted",)
    assert registry.is_registered("scripted")
    assert isinstance(registry.get("SCRIPTED"), ScriptedGenerator)

    with pytest.raises(ValueError, match="generator already registered: scripted"):
        registry.register("scripted", ScriptedGenerator)

    with pytest.raises(
        GeneratorUnavailableError,
        match=r"provider=missing code=not_registered retryable=false detail=generator is not registered",
    ):
        registry.get("missing")


async def test_openai_adapter_normalizes_response_and_usage() -> None:
    adapter, api = _openai(
        [
            {
                "model": "openai/gpt-oss-20b-2026",
                "choices": [{"message": {"content": '{"ok": true}'}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
            }
        ]
    )

    response = await adapter.generate("Return JSON", _BINDING, max_tokens=256)

    assert response.text == '{"ok": true}'
    assert response.token_cost == 20
    assert response.input_tokens == 12
    assert response.output_tokens == 8
    assert response.model == "openai/gpt-oss-20b-2026"
    assert api.calls == [
        {
            "model": "openai/gpt-oss-20b",
            "messages": [{"role": "user", "content": "Return JSON"}],
            "max_tokens": 256,
            "temperature": 0.2,
        }
    ]


async def test_openai_adapter_rejects_empty_choices() -> None:
    adapter, _ = _openai([{"choices": []}])

    with pytest.raises(GeneratorUnavailableError, match="code=invalid_response"):
        await adapter.generate("x", _BINDING, max_tokens=10)


async def test_openai_adapter_retries_rate_limit_with_backoff() -> None:
    sleep_recorder = _SleepRecorder()
    adapter, api = _openai(
        [
            RateLimitError("too many requests"),
            {"choices": [{"message": {"content": "Recovered"}}]},
        ],
        backoff=BackoffConfig(
            max_retries=2,
            initial_delay_seconds=0.2,
            multiplier=2.0,
            max_delay_seconds=2.0,
        ),
        sleep=sleep_recorder,
    )

    response = await adapter.generate("Retry please", _BINDING, max_tokens=10)

    assert response.text == "Recovered"
    assert response.model == "openai/gpt-oss-20b"
    assert len(api.calls) == 2
    assert sleep_recorder.calls == [0.2]


async def test_openai_adapter_gives_up_after_retry_budget() -> None:
    sleep_recorder = _SleepRecorder()
    adapter, api = _openai(
        [APIConnectionError("reset")] * 3,
        backoff=BackoffConfig(max_retries=2, initial_delay_seconds=0.1),
        sleep=sleep_recorder,
    )

    with pytest.raises(GeneratorUnavailableError, match="code=service retryable=true"):
        await adapter.generate("x", _BINDING, max_tokens=10)

    assert len(api.calls) == 3
    assert sleep_recorder.calls == [pytest.approx(0.1), pytest.approx(0.2)]


async def test_openai_adapter_auth_errors_are_not_retried() -> None:
    sleep_recorder = _SleepRecorder()
    adapter, api = _openai(
        [AuthenticationError("invalid api key")],
        backoff=BackoffConfig(max_retries=4, initial_delay_seconds=0.1),
        sleep=sleep_recorder,
    )

    with pytest.raises(
        GeneratorUnavailableError,
        match=r"provider=openai code=authentication retryable=false http_status=401 detail=invalid api key",
    ):
        await adapter.generate("x", _BINDING, max_tokens=10)

    assert len(api.calls) == 1
    assert sleep_recorder.calls == []


async def test_anthropic_adapter_joins_text_blocks_and_clamps_temperature() -> None:
    api = _ScriptedCreate(
        outcomes=deque(
            [
                {
                    "content": [
                        {"type": "text", "text": '{"a": '},
                        {"type": "tool_use", "text": "ignored"},
                        {"type": "text", "text": "1}"},
                    ],
                    "usage": {"input_tokens": 30, "output_tokens": 5},
                }
            ]
        )
    )
    adapter = AnthropicGenerator(client=_FakeAnthropicClient(messages=api))

    response = await adapter.generate("Return JSON", _CLAUDE, max_tokens=128)

    assert response.text == '{"a": 1}'
    assert response.token_cost == 35
    assert response.model == "claude-sonnet-4-5"
    assert api.calls[0]["temperature"] == 1.0
    assert api.calls[0]["max_tokens"] == 128


async def test_anthropic_adapter_retries_connection_failures() -> None:
    sleep_recorder = _SleepRecorder()
    api = _ScriptedCreate(
        outcomes=deque(
            [
                APIConnectionError("connection reset"),
                {"content": [{"type": "text", "text": "ok"}], "usage": {}},
            ]
        )
    )
    adapter = AnthropicGenerator(
        client=_FakeAnthropicClient(messages=api),
        backoff=BackoffConfig(max_retries=1, initial_delay_seconds=0.05),
        sleep=sleep_recorder,
    )

    response = await adapter.generate("x", _CLAUDE, max_tokens=10)

    assert response.text == "ok"
    assert response.token_cost == 0
    assert sleep_recorder.calls == [0.05]


async def test_sdk_missing_raises_only_when_generate_is_called(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    import importlib

    real_import_module = importlib.import_module

    def blocking_import(name: str, package: str | None = None) -> object:
        if name in {"openai", "anthropic"}:
            raise ImportError(f"blocked: {name}")
        return real_import_module(name, package)

    monkeypatch.setattr(importlib, "import_module", blocking_import)

    openai_adapter = OpenAICompatibleGenerator(api_key="k")
    anthropic_adapter = AnthropicGenerator(api_key="k")

    with pytest.raises(
        GeneratorUnavailableError,
        match=r"provider=openai code=sdk_missing retryable=false detail=openai SDK is not installed",
    ):
        await openai_adapter.generate("x", _BINDING, max_tokens=10)

    with pytest.raises(
        GeneratorUnavailableError,
        match=r"provider=anthropic code=sdk_missing retryable=false detail=anthropic SDK",
    ):
        await anthropic_adapter.generate("x", _CLAUDE, max_tokens=10)


def test_openai_adapter_prefers_configured_api_key_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("REGEN_TEST_OPENAI_KEY", "config-key")
    monkeypatch.setenv("OPENAI_API_KEY", "fallback-key")

    adapter = OpenAICompatibleGenerator(api_key_env="REGEN_TEST_OPENAI_KEY")

    assert adapter._resolve_api_key() == "config-key"


@pytest.mark.parametrize(
    ("factory", "env_name"),
    [
        (OpenAICompatibleGenerator, "REGEN_TEST_OPENAI_KEY"),
        (AnthropicGenerator, "REGEN_TEST_ANTHROPIC_KEY"),
    ],
)
def test_missing_configured_api_key_env_does_not_fall_back(
    monkeypatch: pytest.MonkeyPatch, factory: type, env_name: str
) -> None:
    monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "fallback-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "fallback-key")

    adapter = factory(api_key_env=env_name)

    with pytest.raises(GeneratorUnavailableError, match=f"missing API key in env var {env_name}"):
        adapter._resolve_api_key()


def test_openai_adapter_defaults_to_openrouter_gateway() -> None:
    assert DEFAULT_OPENAI_BASE_URL == "https://openrouter.ai/api/v1"
    with pytest.raises(ValueError, match="timeout_seconds"):
        OpenAICompatibleGenerator(timeout_seconds=0)


async def test_scripted_generator_replays_steps_in_order() -> None:
    async def echo(prompt: str, model: ModelBinding) -> str:
        return f"{model.model}:{prompt}"

    generator = ScriptedGenerator(
        [
            "first",
            GenerationResponse(text="second", token_cost=7),
            echo,
            GeneratorTimeoutError("slow", provider="scripted"),
        ],
        tokens_per_call=3,
    )

    first = await generator.generate("a", _BINDING, max_tokens=1)
    second = await generator.generate("b", _BINDING, max_tokens=1)
    third = await generator.generate("c", _BINDING, max_tokens=1)
    with pytest.raises(GeneratorTimeoutError):
        await generator.generate("d", _BINDING, max_tokens=1)
    with pytest.raises(GeneratorUnavailableError, match="code=exhausted"):
        await generator.generate("e", _BINDING, max_tokens=1)

    assert (first.text, first.token_cost) == ("first", 3)
    assert (second.text, second.token_cost) == ("second", 7)
    assert third.text == "openai/gpt-oss-20b:c"
    assert [call.prompt for call in generator.calls] == ["a", "b", "c", "d", "e"]
    assert generator.remaining == 0


def test_generation_response_derives_token_cost_from_usage() -> None:
    response = GenerationResponse(text="x", input_tokens=4, output_tokens=6)
    assert response.token_cost == 10

    with pytest.raises(ValueError):
        GenerationResponse(text="x", token_cost=-1)
