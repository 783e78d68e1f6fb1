"""Layer 5: one call to a fallback generator from a different model family."""

from __future__ import annotations

from typing import TYPE_CHECKING

from regen_orchestrator.domain.models import LayerName, Unparsed
from regen_orchestrator.layers.base import (
    LayerContext,
    LayerOutcome,
    check_candidate,
    invoke_generator,
)
from regen_orchestrator.synthesis_plane.prompt_templates import EMERGENCY_TEMPLATE

if TYPE_CHECKING:
    from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
    from regen_orchestrator.synthesis_plane.providers.base import GeneratorProtocol


class EmergencyLayer:
    name = LayerName.EMERGENCY

    def __init__(self, generator: GeneratorProtocol, binding: ModelBinding) -> None:
        self._generator = generator
        self._binding = binding

    @property
    def binding(self) -> ModelBinding:
        return self._binding

    async def attempt(self, context: LayerContext) -> LayerOutcome:
        prompt = context.prompt_engine.render(
            EMERGENCY_TEMPLATE,
            original_prompt=context.request.original_prompt,
            schema_json=context.request.schema.to_json(),
        )
        response = await invoke_generator(
            context,
            self._generator,
            prompt.prompt,
            self._binding,
            max_tokens=self._binding.max_tokens or context.config.max_tokens,
        )
        validated, repairs = check_candidate(context, Unparsed(response.text))
        return LayerOutcome(layer=self.name, candidate=validated, repairs=repairs)


__all__ = ["EmergencyLayer"]
