"""Build a ``UnifiedRegenerator`` and its per-request ``LayerConfig`` from loaded config."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from regen_orchestrator.config.schema import PROVIDER_NAMES
from regen_orchestrator.control_plane.orchestrator import UnifiedRegenerator
from regen_orchestrator.domain.models import LayerConfig
from regen_orchestrator.synthesis_plane.model_tiers import (
    ModelBinding,
    ModelTierRegistry,
    load_tier_registry,
)
from regen_orchestrator.synthesis_plane.providers.anthropic_adapter import AnthropicGenerator
from regen_orchestrator.synthesis_plane.providers.base import (
    GeneratorProtocol,
    GeneratorRegistry,
)
from regen_orchestrator.synthesis_plane.providers.openai_adapter import (
    DEFAULT_OPENAI_BASE_URL,
    OpenAICompatibleGenerator,
)

if TYPE_CHECKING:
    from regen_orchestrator.domain.models import QualityValidator, StructureNormalizer
    from regen_orchestrator.observability.metrics import MetricsSink


def layer_config_from_config(
    config: Mapping[str, Any],
    *,
    quality_validator: QualityValidator | None = None,
    structure_normalizer: StructureNormalizer | None = None,
) -> LayerConfig:
    layers = config["layers"]
    generation = config["generation"]
    return LayerConfig(
        enabled_layers=tuple(layers["enabled"]),
        max_retries=layers["max_retries"],
        quality_validator=quality_validator,
        metrics_tracking=layers["metrics_tracking"],
        structure_normalizer=structure_normalizer,
        max_tokens=generation["max_tokens"],
        partial_max_tokens=generation["partial_max_tokens"],
        generator_timeout_seconds=generation["timeout_seconds"],
        allow_warning_fallback=layers["allow_warning_fallback"],
    )


def default_generator_registry(config: Mapping[str, Any]) -> GeneratorRegistry:
    """Register the OpenAI-compatible and Anthropic adapters with their configured settings.

    Adapters import their SDK on first use, so registering them is free.
    """

    providers = config["providers"]
    timeout = config["generation"]["timeout_seconds"]
    openai_settings = providers.get("openai", {})
    anthropic_settings = providers.get("anthropic", {})

    registry = GeneratorRegistry()
    registry.register(
        "openai",
        lambda: OpenAICompatibleGenerator(
            api_key_env=openai_settings.get("api_key_env"),
            base_url=openai_settings.get("base_url", DEFAULT_OPENAI_BASE_URL),
            timeout_seconds=timeout,
        ),
    )
    registry.register(
        "anthropic",
        lambda: AnthropicGenerator(
            api_key_env=anthropic_settings.get("api_key_env"),
            base_url=anthropic_settings.get("base_url"),
            timeout_seconds=timeout,
        ),
    )
    return registry


def build_regenerator(
    config: Mapping[str, Any],
    *,
    registry: GeneratorRegistry | None = None,
    tier_registry: ModelTierRegistry | None = None,
    metrics_sink: MetricsSink | None = None,
    logger: Any | None = None,
) -> UnifiedRegenerator:
    """Wire generators, bindings, and the tier registry named by ``config``."""

    generators = registry if registry is not None else default_generator_registry(config)
    tiers = (
        tier_registry
        if tier_registry is not None
        else load_tier_registry(config.get("tiers", {}).get("path"))
    )
    providers = config["providers"]
    primary_name = providers["primary"]
    fallback_name = providers["fallback"]

    by_provider: dict[str, GeneratorProtocol] = {}
    for name in (*PROVIDER_NAMES, *generators.list()):
        if name not in by_provider and generators.is_registered(name):
            by_provider[name] = generators.get(name)

    primary_model_id = providers.get("primary_model")
    primary_model = (
        ModelBinding(provider=primary_name, model=primary_model_id)
        if primary_model_id
        else tiers.primary_for(None)
    )
    fallback_model_id = providers.get("fallback_model")
    fallback_model = (
        ModelBinding(provider=fallback_name, model=fallback_model_id)
        if fallback_model_id
        else tiers.emergency
    )

    return UnifiedRegenerator(
        generator=by_provider.get(primary_name),
        primary_model=primary_model,
        tier_registry=tiers,
        fallback_generator=by_provider.get(fallback_name),
        fallback_model=fallback_model,
        generators_by_provider=by_provider,
        metrics_sink=metrics_sink,
        default_config=layer_config_from_config(config),
        logger=logger,
    )


__all__ = ["build_regenerator", "default_generator_registry", "layer_config_from_config"]
