"""
regen-orchestrator — layer contract and shared run state

File: src/regen_orchestrator/layers/base.py
Last updated: 2026-10-19

Purpose
- Define what a regeneration layer is and the per-run state layers read and update.

What should be included in this file
- ``RegenerationLayer`` protocol and the ``LayerOutcome`` returned on success.
- ``LayerContext``: request, config, cancellation, latest output/error, best candidate.
- ``invoke_generator``: the single place generator calls are awaited, timed out,
  cancelled, and accounted.
- ``check_candidate``: parse + validate generator text and track the best partial.

Functional requirements
- Layers raise ``RegenerationError`` subclasses on failure; they never swallow cancellation.
- Every generator invocation counts toward the layer's retry and token telemetry,
  including invocations that fail.

Non-functional requirements
- No shared mutable state between runs; a context belongs to exactly one run.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from regen_orchestrator.domain.errors import (
    CandidateSyntaxError,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
    RegenerationCancelledError,
    RegenerationError,
    SchemaViolationError,
)
from regen_orchestrator.domain.models import (
    JSONValue,
    LayerConfig,
    LayerName,
    PartialFieldResult,
    RegenerationRequest,
    Unparsed,
    Validated,
    ValidationOutcome,
)
from regen_orchestrator.layers.coercion import coerce_candidate
from regen_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from regen_orchestrator.synthesis_plane.providers.base import exception_detail
from regen_orchestrator.utils.concurrency import CancellationToken, run_with_timeout
from regen_orchestrator.verification_plane.schema_validator import validate

if TYPE_CHECKING:
    from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
    from regen_orchestrator.synthesis_plane.providers.base import (
        GenerationResponse,
        GeneratorProtocol,
    )

_DEFAULT_PARSE_ERROR = "output could not be parsed as JSON"


@dataclass(slots=True)
class LayerTelemetry:
    """Mutable per-layer counters, frozen into a ``LayerAttempt`` afterwards."""

    retry_count: int = 0
    token_cost: int = 0
    cost_usd: float = 0.0
    models_used: list[str] = field(default_factory=list)

    def add_model(self, model: str) -> None:
        if model not in self.models_used:
            self.models_used.append(model)


@dataclass(slots=True)
class LayerContext:
    """State shared by the layers of one regeneration run."""

    request: RegenerationRequest
    config: LayerConfig
    cancel_token: CancellationToken
    prompt_engine: PromptTemplateEngine
    logger: Any = None
    latest: Unparsed | None = None
    latest_error: str = ""
    best_candidate: dict[str, JSONValue] | None = None
    best_outcome: ValidationOutcome | None = None
    telemetry: LayerTelemetry = field(default_factory=LayerTelemetry)

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = structlog.get_logger(__name__)
        if self.latest is None:
            self.latest = Unparsed(self.request.raw_output)
        if not self.latest_error:
            self.latest_error = self.request.parse_error or _DEFAULT_PARSE_ERROR

    def begin_layer(self) -> LayerTelemetry:
        self.telemetry = LayerTelemetry()
        return self.telemetry

    @property
    def latest_output(self) -> str:
        return self.latest.text if self.latest is not None else self.request.raw_output

    def observe(self, value: JSONValue, outcome: ValidationOutcome) -> None:
        """Remember ``value`` if it is the object candidate with the fewest violations so far."""

        if not isinstance(value, dict) or outcome.valid:
            return
        if self.best_outcome is None or outcome.error_count < self.best_outcome.error_count:
            self.best_candidate = value
            self.best_outcome = outcome

    def note_failure(self, output: str | None, error: str) -> None:
        if output is not None:
            self.latest = Unparsed(output)
        self.latest_error = error


@dataclass(frozen=True, slots=True)
class LayerOutcome:
    """Successful result of one layer."""

    layer: LayerName
    candidate: Validated
    partial: PartialFieldResult | None = None
    repairs: tuple[str, ...] = ()

    @property
    def data(self) -> JSONValue:
        return self.candidate.value


class RegenerationLayer(Protocol):
    """One escalation step. Returns an outcome or raises ``RegenerationError``."""

    name: LayerName

    async def attempt(self, context: LayerContext) -> LayerOutcome: ...


async def invoke_generator(
    context: LayerContext,
    generator: GeneratorProtocol,
    prompt: str,
    binding: ModelBinding,
    *,
    max_tokens: int,
) -> GenerationResponse:
    """Await one generator call under the run's timeout and cancellation token."""

    token = context.cancel_token
    if token.is_cancelled:
        raise RegenerationCancelledError(token.reason)

    telemetry = context.telemetry
    telemetry.retry_count += 1
    telemetry.add_model(binding.model)
    timeout = context.config.generator_timeout_seconds
    try:
        response = await run_with_timeout(
            generator.generate(prompt, binding, max_tokens=max_tokens),
            timeout,
            token,
        )
    except asyncio.CancelledError:
        if token.is_cancelled:
            raise RegenerationCancelledError(token.reason) from None
        raise
    except TimeoutError as exc:
        raise GeneratorTimeoutError(
            f"generator call exceeded {timeout:g}s", provider=binding.provider
        ) from exc
    except RegenerationError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise GeneratorUnavailableError(
            exception_detail(exc), provider=binding.provider, code="unexpected"
        ) from exc

    telemetry.token_cost += response.token_cost
    telemetry.cost_usd += binding.estimate_cost(response.token_cost)
    context.logger.debug(
        "regeneration_generator_call",
        model=binding.model,
        provider=binding.provider,
        token_cost=response.token_cost,
        duration_ms=response.duration_ms,
    )
    return response


def check_candidate(
    context: LayerContext, candidate: Unparsed
) -> tuple[Validated, tuple[str, ...]]:
    """Parse, normalize, and validate unparsed text against the request schema.

    Returns the validated candidate and the names of the repairs it needed.
    """

    schema = context.request.schema
    text = candidate.text
    try:
        parsed = coerce_candidate(text, schema, normalizer=context.config.structure_normalizer)
    except CandidateSyntaxError as exc:
        context.note_failure(text, exc.detail)
        raise
    outcome = validate(parsed.value, schema)
    context.observe(parsed.value, outcome)
    if not outcome.valid:
        summary = outcome.summary()
        context.note_failure(text, summary)
        raise SchemaViolationError(summary, violations=outcome.errors)
    return Validated(parsed.value), parsed.repairs


def dump_candidate(value: JSONValue) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=False)


__all__ = [
    "LayerContext",
    "LayerOutcome",
    "LayerTelemetry",
    "RegenerationLayer",
    "check_candidate",
    "dump_candidate",
    "invoke_generator",
]
