"""
regen-orchestrator — synthesis plane

File: src/regen_orchestrator/synthesis_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Synthesis plane: generator adapters, model tier registry, and layer prompt templates.

Functional requirements
- Must be provider-agnostic through adapters.
"""

from regen_orchestrator.synthesis_plane.model_tiers import (
    ModelBinding,
    ModelTier,
    ModelTierRegistry,
    load_default_tier_registry,
    load_tier_registry,
)
from regen_orchestrator.synthesis_plane.prompt_templates import (
    PromptTemplateEngine,
    PromptTemplateError,
    RenderedPrompt,
)
from regen_orchestrator.synthesis_plane.providers import (
    AnthropicGenerator,
    GenerationResponse,
    GeneratorProtocol,
    GeneratorRegistry,
    OpenAICompatibleGenerator,
    ScriptedGenerator,
)

__all__ = [
    "AnthropicGenerator",
    "GenerationResponse",
    "GeneratorProtocol",
    "GeneratorRegistry",
    "ModelBinding",
    "ModelTier",
    "ModelTierRegistry",
    "OpenAICompatibleGenerator",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "RenderedPrompt",
    "ScriptedGenerator",
    "load_default_tier_registry",
    "load_tier_registry",
]
