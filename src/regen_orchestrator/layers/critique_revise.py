"""
regen-orchestrator — Layer 2: critique and revise

File: src/regen_orchestrator/layers/critique_revise.py
Last updated: 2026-10-19

Purpose
- Ask the primary model to fix its own output, given the concrete error.

What should be included in this file
- Revision prompt built from the original prompt, the latest broken output,
  the latest error, and the target schema.
- Bounded loop of ``1 + max_retries`` invocations that always feeds back the
  most recent output and error.

Functional requirements
- Stop on the first schema-valid revision.
- Generator failures consume budget and the loop continues.
- Exhaustion raises ``RetryBudgetExhaustedError`` when any revision was produced,
  otherwise the last generator failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from regen_orchestrator.domain.errors import (
    CandidateSyntaxError,
    GeneratorError,
    RetryBudgetExhaustedError,
    SchemaViolationError,
)
from regen_orchestrator.domain.models import LayerName, Unparsed
from regen_orchestrator.layers.base import (
    LayerContext,
    LayerOutcome,
    check_candidate,
    invoke_generator,
)
from regen_orchestrator.synthesis_plane.prompt_templates import CRITIQUE_REVISE_TEMPLATE

if TYPE_CHECKING:
    from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
    from regen_orchestrator.synthesis_plane.providers.base import GeneratorProtocol


class CritiqueReviseLayer:
    name = LayerName.CRITIQUE_REVISE

    def __init__(self, generator: GeneratorProtocol, binding: ModelBinding) -> None:
        self._generator = generator
        self._binding = binding

    @property
    def binding(self) -> ModelBinding:
        return self._binding

    async def attempt(self, context: LayerContext) -> LayerOutcome:
        budget = context.config.max_retries + 1
        schema_json = context.request.schema.to_json()
        produced_revision = False
        last_generator_error: GeneratorError | None = None

        for invocation in range(1, budget + 1):
            prompt = context.prompt_engine.render(
                CRITIQUE_REVISE_TEMPLATE,
                original_prompt=context.request.original_prompt,
                broken_output=context.latest_output,
                error=context.latest_error,
                schema_json=schema_json,
            )
            try:
                response = await invoke_generator(
                    context,
                    self._generator,
                    prompt.prompt,
                    self._binding,
                    max_tokens=self._binding.max_tokens or context.config.max_tokens,
                )
            except GeneratorError as exc:
                last_generator_error = exc
                context.logger.warning(
                    "regeneration_revision_call_failed",
                    invocation=invocation,
                    budget=budget,
                    error=exc.detail,
                )
                continue

            produced_revision = True
            try:
                validated, repairs = check_candidate(context, Unparsed(response.text))
            except (CandidateSyntaxError, SchemaViolationError) as exc:
                context.logger.info(
                    "regeneration_revision_rejected",
                    invocation=invocation,
                    budget=budget,
                    kind=exc.kind.value,
                    error=exc.detail,
                )
                continue
            return LayerOutcome(layer=self.name, candidate=validated, repairs=repairs)

        if not produced_revision and last_generator_error is not None:
            raise last_generator_error
        raise RetryBudgetExhaustedError(
            f"critique-revise spent {budget} invocation(s) without a valid revision",
            attempts=budget,
            last_error=context.latest_error,
        )


__all__ = ["CritiqueReviseLayer"]
