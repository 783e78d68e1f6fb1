"""
regen-orchestrator — Layer 4: model escalation

File: src/regen_orchestrator/layers/model_escalation.py
Last updated: 2026-10-19

Purpose
- Re-issue the original prompt to progressively stronger model tiers.

What should be included in this file
- Tier selection from the injected ``ModelTierRegistry`` (phase chain or default).
- Skipping of the tier that produced the raw output and every tier below it.

Functional requirements
- At most ``1 + max_retries`` tier invocations per run, in tier order.
- A generator bound per provider may be supplied; otherwise one generator serves every tier.
- No remaining tier raises ``RetryBudgetExhaustedError`` without a generator call.
"""

from __future__ import annotations

from collections.abc import Mapping
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

if TYPE_CHECKING:
    from regen_orchestrator.synthesis_plane.model_tiers import ModelTier, ModelTierRegistry
    from regen_orchestrator.synthesis_plane.providers.base import GeneratorProtocol


class ModelEscalationLayer:
    name = LayerName.MODEL_ESCALATION

    def __init__(
        self,
        generator: GeneratorProtocol,
        registry: ModelTierRegistry,
        *,
        generators_by_provider: Mapping[str, GeneratorProtocol] | None = None,
    ) -> None:
        self._generator = generator
        self._registry = registry
        self._by_provider = {
            name.strip().lower(): adapter for name, adapter in (generators_by_provider or {}).items()
        }

    def remaining_tiers(
        self, phase_id: str | None, source_model: str | None
    ) -> tuple[ModelTier, ...]:
        """Tiers stronger than ``source_model`` for the phase (all tiers if unknown)."""

        tiers = self._registry.tiers_for(phase_id)
        if source_model is None:
            return tiers
        models = [tier.binding.model for tier in tiers]
        if source_model not in models:
            return tiers
        return tiers[models.index(source_model) + 1 :]

    async def attempt(self, context: LayerContext) -> LayerOutcome:
        request = context.request
        remaining = self.remaining_tiers(request.phase_id, request.source_model)
        selected = remaining[: context.config.max_retries + 1]
        if not selected:
            raise RetryBudgetExhaustedError(
                f"no model tier above {request.source_model or 'the source model'} "
                f"for phase {request.phase_id or 'default'}",
                attempts=0,
            )

        produced_output = False
        last_generator_error: GeneratorError | None = None
        for tier in selected:
            binding = tier.binding
            generator = self._by_provider.get(binding.provider, self._generator)
            context.logger.info(
                "regeneration_escalating",
                tier=tier.tier_id,
                model=binding.model,
                provider=binding.provider,
            )
            try:
                response = await invoke_generator(
                    context,
                    generator,
                    request.original_prompt,
                    binding,
                    max_tokens=binding.max_tokens or context.config.max_tokens,
                )
            except GeneratorError as exc:
                last_generator_error = exc
                context.logger.warning(
                    "regeneration_tier_call_failed", tier=tier.tier_id, error=exc.detail
                )
                continue

            produced_output = True
            try:
                validated, repairs = check_candidate(context, Unparsed(response.text))
            except (CandidateSyntaxError, SchemaViolationError) as exc:
                context.logger.info(
                    "regeneration_tier_rejected",
                    tier=tier.tier_id,
                    kind=exc.kind.value,
                    error=exc.detail,
                )
                continue
            return LayerOutcome(layer=self.name, candidate=validated, repairs=repairs)

        if not produced_output and last_generator_error is not None:
            raise last_generator_error
        raise RetryBudgetExhaustedError(
            f"model escalation tried {len(selected)} tier(s) without a valid output",
            attempts=len(selected),
            last_error=context.latest_error,
        )


__all__ = ["ModelEscalationLayer"]
