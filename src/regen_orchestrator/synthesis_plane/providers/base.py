"""
regen-orchestrator — generator base models and shared utilities

File: src/regen_orchestrator/synthesis_plane/providers/base.py
Last updated: 2026-10-19

Purpose
- Abstract generator interface and the normalized response returned by every adapter.

What should be included in this file
- ``GeneratorProtocol``: ``generate(prompt, model, *, max_tokens) -> GenerationResponse``.
- Bounded exponential backoff for transient transport failures.
- Exception mapping helpers shared by SDK-backed adapters.
- A small registry of generator factories keyed by provider name.

Functional requirements
- Adapters must raise ``GeneratorError`` subclasses, never raw SDK exceptions.
- Retries only apply to errors classified as retryable.

Non-functional requirements
- Must make it easy to add new providers without touching layer logic.
"""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeAlias, TypeVar, runtime_checkable

from regen_orchestrator.domain.errors import (
    GeneratorError,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
)
from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]

_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class GenerationResponse:
    """Normalized text completion plus usage accounting."""

    text: str
    token_cost: int = 0
    duration_ms: int = 0
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError("GenerationResponse.text must be a string")
        for name in ("token_cost", "duration_ms", "input_tokens", "output_tokens"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"GenerationResponse.{name} must be an integer")
            if value < 0:
                raise ValueError(f"GenerationResponse.{name} must be >= 0")
        if self.token_cost == 0 and (self.input_tokens or self.output_tokens):
            object.__setattr__(self, "token_cost", self.input_tokens + self.output_tokens)


@runtime_checkable
class GeneratorProtocol(Protocol):
    """Protocol implemented by concrete generator adapters."""

    async def generate(
        self,
        prompt: str,
        model: ModelBinding,
        *,
        max_tokens: int,
    ) -> GenerationResponse:
        """Produce one completion for ``prompt`` with ``model``."""


GeneratorFactory: TypeAlias = Callable[[], GeneratorProtocol]


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Bounded exponential backoff policy."""

    max_retries: int = 2
    initial_delay_seconds: float = 0.25
    multiplier: float = 2.0
    max_delay_seconds: float = 4.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")


def compute_backoff_delay(
    *,
    retry_number: int,
    config: BackoffConfig,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return the delay before retry N (1-based)."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    base_delay = config.initial_delay_seconds * (config.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, config.max_delay_seconds)
    if config.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")
    max_jitter = bounded_delay * config.jitter_ratio
    jitter = ((random_value * 2.0) - 1.0) * max_jitter
    return max(0.0, min(config.max_delay_seconds, bounded_delay + jitter))


_ResultT = TypeVar("_ResultT")
RetryCallback: TypeAlias = Callable[[int, GeneratorError, float], None]


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    map_exception: Callable[[Exception], GeneratorError],
    backoff: BackoffConfig,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
    on_retry: RetryCallback | None = None,
) -> _ResultT:
    """Run ``operation`` with bounded retries for retryable generator errors."""

    retry_count = 0
    while True:
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001
            mapped = exc if isinstance(exc, GeneratorError) else map_exception(exc)
            if not isinstance(mapped, GeneratorError):
                raise TypeError("map_exception must return GeneratorError") from exc

            if not mapped.retryable or retry_count >= backoff.max_retries:
                if mapped is exc:
                    raise
                raise mapped from exc

            retry_count += 1
            delay_seconds = compute_backoff_delay(
                retry_number=retry_count,
                config=backoff,
                random_fn=random_fn,
            )
            if on_retry is not None:
                on_retry(retry_count, mapped, delay_seconds)
            await sleep(delay_seconds)


def map_transport_exception(exc: Exception, *, provider: str) -> GeneratorError:
    """Classify an SDK/transport exception by status code and class name."""

    if isinstance(exc, GeneratorError):
        return exc
    detail = exception_detail(exc)
    class_name = type(exc).__name__.lower()
    status_code = read_status_code(exc)

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or "timeout" in class_name:
        return GeneratorTimeoutError(detail, provider=provider)
    if status_code in {401, 403} or "authentication" in class_name or "permission" in class_name:
        return GeneratorUnavailableError(
            detail, provider=provider, code="authentication", http_status=status_code
        )
    if status_code == 429 or "ratelimit" in class_name:
        return GeneratorUnavailableError(
            detail, provider=provider, code="rate_limited", retryable=True, http_status=status_code
        )
    if status_code in {400, 404, 413, 422} or "badrequest" in class_name:
        return GeneratorUnavailableError(
            detail, provider=provider, code="invalid_request", http_status=status_code
        )
    if status_code in _RETRYABLE_STATUS_CODES or "connection" in class_name:
        return GeneratorUnavailableError(
            detail, provider=provider, code="service", retryable=True, http_status=status_code
        )
    return GeneratorUnavailableError(
        detail, provider=provider, code="unknown", http_status=status_code
    )


def read_value(source: object, key: str) -> object | None:
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def read_str(source: object, key: str) -> str | None:
    value = read_value(source, key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def read_int(source: object, key: str) -> int:
    value = read_value(source, key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def read_sequence(source: object, key: str) -> Sequence[object]:
    value = read_value(source, key)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    return ()


def read_status_code(exc: BaseException) -> int | None:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        read_value(getattr(exc, "response", None), "status_code"),
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return text
    return type(exc).__name__


class GeneratorRegistry:
    """Registry of generator factories keyed by provider name."""

    def __init__(self) -> None:
        self._factories: dict[str, GeneratorFactory] = {}

    def register(self, name: str, factory: GeneratorFactory, *, overwrite: bool = False) -> None:
        normalized = name.strip().lower()
        if not normalized:
            raise ValueError("name cannot be empty")
        if normalized in self._factories and not overwrite:
            raise ValueError(f"generator already registered: {normalized}")
        self._factories[normalized] = factory

    def is_registered(self, name: str) -> bool:
        return name.strip().lower() in self._factories

    def list(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories.keys()))

    def get(self, name: str) -> GeneratorProtocol:
        normalized = name.strip().lower()
        factory = self._factories.get(normalized)
        if factory is None:
            raise GeneratorUnavailableError(
                "generator is not registered",
                provider=normalized or "generator",
                code="not_registered",
            )
        adapter = factory()
        if not isinstance(adapter, GeneratorProtocol):
            raise TypeError(f"generator factory returned invalid adapter for {normalized}")
        return adapter


__all__ = [
    "BackoffConfig",
    "GenerationResponse",
    "GeneratorError",
    "GeneratorFactory",
    "GeneratorProtocol",
    "GeneratorRegistry",
    "GeneratorTimeoutError",
    "GeneratorUnavailableError",
    "RandomFn",
    "RetryCallback",
    "SleepFn",
    "compute_backoff_delay",
    "exception_detail",
    "map_transport_exception",
    "read_int",
    "read_sequence",
    "read_status_code",
    "read_str",
    "read_value",
    "run_with_retries",
]
