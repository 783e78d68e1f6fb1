from __future__ import annotations

import pytest

from regen_orchestrator.config.schema import default_config
from regen_orchestrator.control_plane import (
    build_regenerator,
    default_generator_registry,
    layer_config_from_config,
)
from regen_orchestrator.domain.errors import ConfigurationError
from regen_orchestrator.domain.models import LayerConfig, LayerName, RegenerationRequest
from regen_orchestrator.synthesis_plane.model_tiers import ModelTierRegistry
from regen_orchestrator.synthesis_plane.providers import (
    AnthropicGenerator,
    GeneratorRegistry,
    OpenAICompatibleGenerator,
    ScriptedGenerator,
)
from regen_orchestrator.verification_plane import SchemaContract

_VALID_ITEM = '{"name": "lamp", "count": 2, "active": true}'


def _registry_with(name: str, generator: ScriptedGenerator) -> GeneratorRegistry:
    registry = GeneratorRegistry()
    registry.register(name, lambda: generator)
    return registry


@pytest.mark.unit
def test_layer_config_from_config_maps_sections() -> None:
    config = default_config()
    config["layers"]["enabled"] = ["emergency", "auto-repair"]
    config["layers"]["max_retries"] = 3
    config["generation"]["timeout_seconds"] = 9.5

    layer_config = layer_config_from_config(config)

    assert layer_config.attempt_order() == (LayerName.AUTO_REPAIR, LayerName.EMERGENCY)
    assert layer_config.max_retries == 3
    assert layer_config.max_tokens == 4096
    assert layer_config.partial_max_tokens == 2048
    assert layer_config.generator_timeout_seconds == 9.5
    assert layer_config.metrics_tracking is True
    assert layer_config.quality_validator is None


@pytest.mark.unit
def test_default_generator_registry_registers_both_adapters() -> None:
    registry = default_generator_registry(default_config())

    assert registry.list() == ("anthropic", "openai")
    assert isinstance(registry.get("openai"), OpenAICompatibleGenerator)
    assert isinstance(registry.get("anthropic"), AnthropicGenerator)


@pytest.mark.unit
async def test_build_regenerator_uses_tier_primary_binding(
    item_schema: SchemaContract,
) -> None:
    generator = ScriptedGenerator([_VALID_ITEM])
    regenerator = build_regenerator(
        default_config(), registry=_registry_with("openai", generator)
    )

    result = await regenerator.regenerate(
        RegenerationRequest(
            raw_output='{"name": "lamp"',
            original_prompt="Describe a lamp.",
            schema=item_schema,
        )
    )

    assert result.success
    assert result.metadata.layer_used == "critique-revise"
    assert [call.model.model for call in generator.calls] == ["openai/gpt-oss-20b"]
    assert [layer.name for layer in regenerator.layers_for()] == list(LayerName)


@pytest.mark.unit
async def test_build_regenerator_honours_explicit_models(
    item_schema: SchemaContract, tier_registry: ModelTierRegistry
) -> None:
    config = default_config()
    config["providers"]["primary_model"] = "custom/primary"
    config["providers"]["fallback_model"] = "custom/fallback"
    config["layers"]["enabled"] = ["critique-revise", "emergency"]
    config["layers"]["max_retries"] = 0
    generator = ScriptedGenerator(["not json", _VALID_ITEM])

    regenerator = build_regenerator(
        config,
        registry=_registry_with("openai", generator),
        tier_registry=tier_registry,
    )
    result = await regenerator.regenerate(
        RegenerationRequest(raw_output="{", original_prompt="Describe a lamp.", schema=item_schema)
    )

    assert result.success
    assert result.metadata.layer_used == "emergency"
    assert [call.model.model for call in generator.calls] == ["custom/primary", "custom/fallback"]
    assert regenerator.tier_registry is tier_registry


@pytest.mark.unit
def test_build_regenerator_without_primary_adapter_fails_on_use() -> None:
    regenerator = build_regenerator(
        default_config(), registry=_registry_with("anthropic", ScriptedGenerator())
    )

    with pytest.raises(ConfigurationError, match="layer 'critique-revise' requires a generator"):
        regenerator.layers_for()

    offline = LayerConfig(enabled_layers=(LayerName.AUTO_REPAIR,))
    assert [layer.name for layer in regenerator.layers_for(offline)] == [LayerName.AUTO_REPAIR]
