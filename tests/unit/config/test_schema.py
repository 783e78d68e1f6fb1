"""
regen-orchestrator — unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-10-19

Purpose
- Validate defaults, structured issue reporting, profile overlays, and redaction.

What this test file should cover
- Built-in defaults validate cleanly and ship the expected profiles.
- Structured issue paths for bad types, unknown fields, and embedded secrets.
- Schema version mismatch reporting.
- Deterministic deep merge.

Functional requirements
- No network or provider credentials required.

Non-functional requirements
- Deterministic issue ordering.
"""

from __future__ import annotations

import pytest

from jsonschema import Draft202012Validator

from regen_orchestrator.config.loader import env_bindings
from regen_orchestrator.config.schema import (
    BUILTIN_PROFILE_NAMES,
    CONFIG_SCHEMA,
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_default_config_is_valid_and_ships_builtin_profiles() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert tuple(sorted(result.config["profiles"])) == BUILTIN_PROFILE_NAMES
    assert result.config["layers"]["enabled"] == [
        "auto-repair",
        "critique-revise",
        "partial-regen",
        "model-escalation",
        "emergency",
    ]


def test_default_config_returns_independent_copies() -> None:
    first = default_config()
    first["layers"]["max_retries"] = 9

    assert default_config()["layers"]["max_retries"] == 1


@pytest.mark.parametrize(
    ("section", "key", "value", "expected_path"),
    [
        ("layers", "max_retries", -1, "layers.max_retries"),
        ("layers", "max_retries", True, "layers.max_retries"),
        ("layers", "enabled", "auto-repair", "layers.enabled"),
        ("layers", "enabled", ["auto-repair", "magic"], "layers.enabled[1]"),
        ("layers", "max_concurrency", 0, "layers.max_concurrency"),
        ("generation", "timeout_seconds", 0, "generation.timeout_seconds"),
        ("generation", "max_tokens", 0, "generation.max_tokens"),
        ("providers", "primary", "cohere", "providers.primary"),
        ("observability", "log_level", "LOUD", "observability.log_level"),
        ("observability", "log_to_stdout", "yes", "observability.log_to_stdout"),
    ],
)
def test_invalid_values_report_field_paths(
    section: str, key: str, value: object, expected_path: str
) -> None:
    config = default_config()
    config[section][key] = value  # type: ignore[literal-required]

    assert expected_path in _issue_paths(config)


def test_layer_names_are_normalized_to_declaration_order() -> None:
    config = default_config()
    config["layers"]["enabled"] = ["EMERGENCY", "partial_regen", "auto-repair"]

    normalized = assert_valid_config(config)

    assert normalized["layers"]["enabled"] == ["auto-repair", "partial-regen", "emergency"]


def test_unknown_fields_and_embedded_secrets_are_distinguished() -> None:
    config = default_config()
    config["layers"]["colour"] = "blue"  # type: ignore[typeddict-unknown-key]
    config["providers"]["anthropic"]["apiKey"] = "sk-ant-123"  # type: ignore[typeddict-unknown-key]

    issues = {issue.path: issue.message for issue in validate_config(config).issues}

    assert issues["layers.colour"] == "unknown field"
    assert "embedded secret values are forbidden" in issues["providers.anthropic.apiKey"]


def test_token_limits_are_not_mistaken_for_secrets() -> None:
    config = default_config()
    config["generation"]["max_tokens"] = 8000

    assert validate_config(config).is_valid


def test_env_name_must_look_like_an_environment_variable() -> None:
    config = default_config()
    config["providers"]["openai"]["api_key_env"] = "sk-live-value"

    assert "providers.openai.api_key_env" in _issue_paths(config)


def test_selected_provider_requires_api_key_env() -> None:
    config = default_config()
    config["providers"]["primary"] = "anthropic"
    config["providers"]["anthropic"] = {}

    paths = _issue_paths(config)

    assert "providers.anthropic.api_key_env" in paths
    assert "providers.primary" in paths


def test_schema_version_mismatch_is_reported() -> None:
    config = default_config()
    config["meta"]["schema_version"] = 2

    with pytest.raises(ConfigValidationError, match="unsupported schema version 2; expected 1"):
        assert_valid_config(config)


def test_config_schema_is_a_valid_draft_2020_12_schema() -> None:
    Draft202012Validator.check_schema(CONFIG_SCHEMA)

    bindings = env_bindings()
    assert bindings["REGEN_LAYERS_MAX_RETRIES"] == (("layers", "max_retries"), "integer")
    assert bindings["REGEN_LAYERS_ALLOW_WARNING_FALLBACK"][1] == "boolean"
    assert bindings["REGEN_PROVIDERS_OPENAI_BASE_URL"][0] == ("providers", "openai", "base_url")
    assert "REGEN_PROFILES_OFFLINE_LAYERS_ENABLED" not in bindings


def test_missing_sections_and_non_object_root() -> None:
    assert _issue_paths([]) == ["<root>"]
    paths = _issue_paths({"meta": {"schema_version": 1}})
    assert "layers" in paths
    assert "providers" in paths


def test_profile_overlay_is_validated_and_applied() -> None:
    applied = apply_profile_overlay(default_config(), "thorough")

    assert applied["layers"]["max_retries"] == 3
    assert applied["generation"]["timeout_seconds"] == 300.0

    config = default_config()
    config["profiles"]["Bad Name"] = {}
    assert "profiles.Bad Name" in _issue_paths(config)

    with pytest.raises(ConfigValidationError, match="not defined"):
        apply_profile_overlay(default_config(), "nope")


def test_merge_config_is_deep_and_does_not_mutate_inputs() -> None:
    base = {"layers": {"max_retries": 1, "enabled": ["auto-repair"]}, "x": 1}
    overlay = {"layers": {"max_retries": 2}}

    merged = merge_config(base, overlay)

    assert merged == {"layers": {"max_retries": 2, "enabled": ["auto-repair"]}, "x": 1}
    assert base["layers"]["max_retries"] == 1  # type: ignore[index]


def test_redact_config_masks_env_names_and_keeps_limits() -> None:
    redacted = redact_config(default_config())

    assert redacted["providers"]["openai"]["api_key_env"] == "<redacted>"
    assert redacted["generation"]["max_tokens"] == 4096
    assert redacted["generation"]["partial_max_tokens"] == 2048
    assert redact_config("not a mapping") == {}


def test_profile_overlays_are_checked_without_required_fields() -> None:
    config = default_config()
    config["profiles"]["ci"] = {
        "layers": {"max_retries": 2},
        "observability": {"log_level": "debug"},
    }
    assert validate_config(config).is_valid

    config["profiles"]["ci"] = {"layers": {"colour": 1}, "metrics": {}}
    paths = _issue_paths(config)

    assert "profiles.ci.layers.colour" in paths
    assert "profiles.ci.metrics" in paths


def test_warning_fallback_is_off_by_default() -> None:
    config = default_config()
    assert config["layers"]["allow_warning_fallback"] is False

    config["layers"]["allow_warning_fallback"] = "sometimes"
    assert "layers.allow_warning_fallback" in _issue_paths(config)
