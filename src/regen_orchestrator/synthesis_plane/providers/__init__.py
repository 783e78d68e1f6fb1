"""
regen-orchestrator — generator adapters and shared generator API

File: src/regen_orchestrator/synthesis_plane/providers/__init__.py
Last updated: 2026-10-19

Purpose
- Generator adapters (OpenAI-compatible gateways, Anthropic, scripted offline replay).

Functional requirements
- Must normalize completions (text, tokens, latency) into ``GenerationResponse``.

Non-functional requirements
- Must never log secrets or raw API keys.
"""

from regen_orchestrator.synthesis_plane.providers.anthropic_adapter import AnthropicGenerator
from regen_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    GenerationResponse,
    GeneratorError,
    GeneratorFactory,
    GeneratorProtocol,
    GeneratorRegistry,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
    compute_backoff_delay,
    map_transport_exception,
    run_with_retries,
)
from regen_orchestrator.synthesis_plane.providers.openai_adapter import (
    DEFAULT_OPENAI_BASE_URL,
    OpenAICompatibleGenerator,
)
from regen_orchestrator.synthesis_plane.providers.scripted import GeneratorCall, ScriptedGenerator

__all__ = [
    "DEFAULT_OPENAI_BASE_URL",
    "AnthropicGenerator",
    "BackoffConfig",
    "GenerationResponse",
    "GeneratorCall",
    "GeneratorError",
    "GeneratorFactory",
    "GeneratorProtocol",
    "GeneratorRegistry",
    "GeneratorTimeoutError",
    "GeneratorUnavailableError",
    "OpenAICompatibleGenerator",
    "ScriptedGenerator",
    "compute_backoff_delay",
    "map_transport_exception",
    "run_with_retries",
]
