from __future__ import annotations

from pathlib import Path

import pytest

from regen_orchestrator.domain.errors import ConfigurationError
from regen_orchestrator.synthesis_plane.model_tiers import (
    ModelBinding,
    ModelTier,
    ModelTierRegistry,
    load_default_tier_registry,
    load_tier_registry,
)


@pytest.mark.unit
def test_default_registry_loads_and_is_cached() -> None:
    registry = load_default_tier_registry()

    assert registry is load_default_tier_registry()
    assert registry.phase_names() == ("default", "section_generation")
    assert [tier.tier_id for tier in registry.tiers_for("default")] == ["standard", "extended"]
    assert registry.emergency is not None
    assert registry.emergency.model == "google/gemini-2.5-flash"
    assert registry.primary_for(None) == registry.tiers_for("default")[0].binding


@pytest.mark.unit
def test_tiers_for_unknown_phase_falls_back_to_default(tier_registry: ModelTierRegistry) -> None:
    assert tier_registry.tiers_for("SECTION_GENERATION")[0].binding.model == "scripted/medium"
    assert tier_registry.tiers_for("unheard_of") == tier_registry.tiers_for("default")

    no_default = ModelTierRegistry(
        phases={"only": (ModelTier("t", ModelBinding(provider="p", model="m")),)}
    )
    assert no_default.tiers_for("other") == ()
    assert no_default.primary_for("other") is None


@pytest.mark.unit
@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"version": 2, "phases": {}}, "unsupported tier registry version"),
        ({"phases": []}, "phases must be an object"),
        ({"phases": {"default": "openai"}}, "phases.default must be an array"),
        ({"phases": {"default": []}}, "phases.default must declare at least one tier"),
        (
            {"phases": {"default": [{"tier": "a", "provider": "openai"}]}},
            r"phases.default\[0\].model must be a string",
        ),
        (
            {
                "phases": {
                    "default": [
                        {"tier": "a", "provider": "openai", "model": "x"},
                        {"tier": "a", "provider": "openai", "model": "y"},
                    ]
                }
            },
            "repeats tier 'a'",
        ),
        (
            {"phases": {"default": [{"tier": "a", "provider": "o", "model": "x", "max_tokens": 0}]}},
            "max_tokens must be > 0",
        ),
    ],
)
def test_from_mapping_reports_invalid_registries(payload: dict[str, object], message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        ModelTierRegistry.from_mapping(payload)


@pytest.mark.unit
def test_binding_validation_and_cost_estimate() -> None:
    binding = ModelBinding(provider=" OpenAI ", model="gpt", cost_per_1k_tokens_usd=2)

    assert binding.provider == "openai"
    assert binding.estimate_cost(1500) == pytest.approx(3.0)
    with pytest.raises(ConfigurationError, match="temperature"):
        ModelBinding(provider="openai", model="gpt", temperature=3.0)
    with pytest.raises(ConfigurationError, match="cost_per_1k_tokens_usd must be >= 0"):
        ModelBinding(provider="openai", model="gpt", cost_per_1k_tokens_usd=-1.0)


@pytest.mark.unit
def test_load_tier_registry_from_file_round_trips_to_dict(tmp_path: Path) -> None:
    path = tmp_path / "tiers.yaml"
    path.write_text(
        """
version: 1
phases:
  Default:
    - tier: standard
      provider: anthropic
      model: claude-haiku
      max_tokens: 1000
emergency:
  provider: openai
  model: big
""".lstrip(),
        encoding="utf-8",
    )

    registry = load_tier_registry(path)

    assert registry.to_dict() == {
        "version": 1,
        "phases": {
            "default": [
                {
                    "tier": "standard",
                    "provider": "anthropic",
                    "model": "claude-haiku",
                    "max_tokens": 1000,
                    "cost_per_1k_tokens_usd": 0.0,
                }
            ]
        },
        "emergency": {
            "provider": "openai",
            "model": "big",
            "max_tokens": None,
            "cost_per_1k_tokens_usd": 0.0,
        },
    }


@pytest.mark.unit
def test_from_file_errors_are_configuration_errors(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("phases: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="invalid tier registry YAML"):
        ModelTierRegistry.from_file(broken)
    with pytest.raises(ConfigurationError, match="unable to read tier registry"):
        ModelTierRegistry.from_file(tmp_path / "missing.yaml")
