"""
regen-orchestrator — configuration schema and validation.

File: src/regen_orchestrator/config/schema.py
Last updated: 2026-10-19

Purpose
- Define the built-in defaults and the JSON Schema every effective config must satisfy.

What should be included in this file
- ``CONFIG_SCHEMA`` (one sub-schema per section) and its profile overlay variant.
- Conversion of ``jsonschema`` errors into field-path issues.
- Profile overlays, deep merge, and redaction for dumps.

Functional requirements
- Report every issue with a dotted field path (``layers.enabled[1]``).
- Reject embedded secret values; only environment variable names are accepted.
- Ship the ``offline`` and ``thorough`` profiles.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as SchemaError

from regen_orchestrator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    DEFAULT_PARTIAL_MAX_TOKENS,
    LAYER_AUTO_REPAIR,
    LAYER_ORDER,
)

BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("offline", "thorough")
PROVIDER_NAMES: Final[tuple[str, ...]] = ("openai", "anthropic")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
REDACTED: Final[str] = "<redacted>"

# Config paths resolved relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("tiers", "path"),
    ("observability", "log_dir"),
)

_PROFILE_NAME_PATTERN: Final[str] = "^[a-z][a-z0-9_-]*$"
_SECRET_MESSAGE: Final[str] = (
    "embedded secret values are forbidden; use an *_env key with an env var name"
)
_SENSITIVE_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "api",
        "key",
        "apikey",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
# Numeric limits that are not secrets even though they contain "token".
_NON_SECRET_KEYS: Final[frozenset[str]] = frozenset({"max_tokens", "partial_max_tokens"})
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_TEXT: Final[dict[str, Any]] = {"type": "string", "minLength": 1}
_PATH_TEXT: Final[dict[str, Any]] = {"type": "string", "pattern": "^[^\\x00]+$"}
_ENV_NAME: Final[dict[str, Any]] = {"type": "string", "pattern": "^[A-Z_][A-Z0-9_]*$"}
_PROVIDER: Final[dict[str, Any]] = {"type": "string", "enum": list(PROVIDER_NAMES)}
_FLAG: Final[dict[str, Any]] = {"type": "boolean"}

_PROVIDER_SETTINGS: Final[dict[str, Any]] = {
    "type": "object",
    "properties": {
        "api_key_env": _ENV_NAME,
        "base_url": {"type": "string", "pattern": "^https?://"},
    },
    "required": ["api_key_env"],
    "additionalProperties": False,
}

SECTION_SCHEMAS: Final[dict[str, dict[str, Any]]] = {
    "meta": {
        "type": "object",
        "properties": {"schema_version": {"type": "integer", "const": CONFIG_SCHEMA_VERSION}},
        "required": ["schema_version"],
        "additionalProperties": False,
    },
    "layers": {
        "type": "object",
        "properties": {
            "enabled": {"type": "array", "items": {"enum": list(LAYER_ORDER)}},
            "max_retries": {"type": "integer", "minimum": 0},
            "metrics_tracking": _FLAG,
            "max_concurrency": {"type": "integer", "minimum": 1},
            "allow_warning_fallback": _FLAG,
        },
        "required": [
            "enabled",
            "max_retries",
            "metrics_tracking",
            "max_concurrency",
            "allow_warning_fallback",
        ],
        "additionalProperties": False,
    },
    "generation": {
        "type": "object",
        "properties": {
            "max_tokens": {"type": "integer", "minimum": 1},
            "partial_max_tokens": {"type": "integer", "minimum": 1},
            "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        },
        "required": ["max_tokens", "partial_max_tokens", "timeout_seconds"],
        "additionalProperties": False,
    },
    "providers": {
        "type": "object",
        "properties": {
            "primary": _PROVIDER,
            "fallback": _PROVIDER,
            "primary_model": _TEXT,
            "fallback_model": _TEXT,
            **{name: _PROVIDER_SETTINGS for name in PROVIDER_NAMES},
        },
        "required": ["primary", "fallback", *PROVIDER_NAMES],
        "additionalProperties": False,
    },
    "tiers": {
        "type": "object",
        "properties": {"path": _PATH_TEXT},
        "additionalProperties": False,
    },
    "observability": {
        "type": "object",
        "properties": {
            "log_level": {"type": "string", "enum": list(LOG_LEVELS)},
            "log_dir": _PATH_TEXT,
            "log_to_stdout": _FLAG,
            "redact_secrets": _FLAG,
        },
        "required": ["log_level", "log_dir", "log_to_stdout", "redact_secrets"],
        "additionalProperties": False,
    },
}
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = (
    "layers",
    "generation",
    "providers",
    "tiers",
    "observability",
)


def _without_required(schema: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "required":
            continue
        if isinstance(value, Mapping):
            out[key] = _without_required(value)
        else:
            out[key] = copy.deepcopy(value)
    return out


PROFILE_OVERLAY_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "properties": {name: _without_required(SECTION_SCHEMAS[name]) for name in _OVERLAY_SECTIONS},
    "additionalProperties": False,
}

CONFIG_SCHEMA: Final[dict[str, Any]] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        **SECTION_SCHEMAS,
        "profiles": {
            "type": "object",
            "patternProperties": {_PROFILE_NAME_PATTERN: PROFILE_OVERLAY_SCHEMA},
            "additionalProperties": False,
        },
    },
    "required": list(SECTION_SCHEMAS),
    "additionalProperties": False,
}

_VALIDATOR: Final[Draft202012Validator] = Draft202012Validator(CONFIG_SCHEMA)


DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "meta": {
        "schema_version": CONFIG_SCHEMA_VERSION,
    },
    "layers": {
        "enabled": list(LAYER_ORDER),
        "max_retries": DEFAULT_MAX_RETRIES,
        "metrics_tracking": True,
        "max_concurrency": DEFAULT_MAX_CONCURRENCY,
        "allow_warning_fallback": False,
    },
    "generation": {
        "max_tokens": DEFAULT_MAX_TOKENS,
        "partial_max_tokens": DEFAULT_PARTIAL_MAX_TOKENS,
        "timeout_seconds": DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    },
    "providers": {
        "primary": "openai",
        "fallback": "openai",
        "openai": {"api_key_env": "REGEN_OPENAI_API_KEY"},
        "anthropic": {"api_key_env": "REGEN_ANTHROPIC_API_KEY"},
    },
    "tiers": {},
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "offline": {
            "layers": {"enabled": [LAYER_AUTO_REPAIR]},
        },
        "thorough": {
            "layers": {"max_retries": 3},
            "generation": {"timeout_seconds": 300.0},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Iterable[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered or 'unknown validation failure'}")


def default_config() -> dict[str, Any]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; lists and scalars are replaced."""

    merged = {key: copy.deepcopy(value) for key, value in base.items()}
    for key, value in overlay.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = merge_config(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, Any], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and re-validate the result."""

    if profile is None or not profile.strip():
        return copy.deepcopy(dict(config))
    selected = profile.strip()
    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate ``config`` and return every issue, or the normalized config."""

    prepared = _prepare(config)
    issues: list[ConfigValidationIssue] = []
    for error in _VALIDATOR.iter_errors(prepared):
        issues.extend(_issues_from(error))

    if isinstance(prepared, dict):
        generation = prepared.get("generation")
        timeout = generation.get("timeout_seconds") if isinstance(generation, dict) else None
        if isinstance(timeout, float) and not math.isfinite(timeout):
            issues.append(ConfigValidationIssue("generation.timeout_seconds", "must be finite"))
        issues.extend(_provider_issues(prepared.get("providers")))
        selected = active_profile.strip() if isinstance(active_profile, str) else ""
        profiles = prepared.get("profiles")
        if selected and (not isinstance(profiles, dict) or selected not in profiles):
            issues.append(ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"))

    if issues:
        unique = sorted(set(issues), key=lambda item: (item.path, item.message))
        return ConfigValidationResult(config=None, issues=tuple(unique))
    layers = prepared["layers"]
    layers["enabled"] = [name for name in LAYER_ORDER if name in layers["enabled"]]
    return ConfigValidationResult(config=prepared, issues=())


def assert_valid_config(
    config: object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: object) -> dict[str, Any]:
    """Copy of ``config`` with env names and secret-looking keys replaced by ``<redacted>``."""

    if not isinstance(config, Mapping):
        return {}
    return _redact(config)


def looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env") or normalized in _NON_SECRET_KEYS:
        return False
    return any(token in _SENSITIVE_TOKENS for token in normalized.split("_") if token)


def _prepare(config: object) -> object:
    """Copy with strings trimmed, the log level upper-cased, and layer names canonical."""

    if not isinstance(config, Mapping):
        return config
    prepared = _trimmed(config)
    for observability in _sections(prepared, "observability"):
        if isinstance(observability.get("log_level"), str):
            observability["log_level"] = observability["log_level"].upper()
    for layers in _sections(prepared, "layers"):
        enabled = layers.get("enabled")
        if isinstance(enabled, list):
            layers["enabled"] = [
                item.lower().replace("_", "-") if isinstance(item, str) else item
                for item in enabled
            ]
    return prepared


def _sections(config: Mapping[str, Any], name: str) -> list[dict[str, Any]]:
    found = [config.get(name)]
    profiles = config.get("profiles")
    if isinstance(profiles, Mapping):
        found.extend(
            overlay.get(name) for overlay in profiles.values() if isinstance(overlay, Mapping)
        )
    return [section for section in found if isinstance(section, dict)]


def _trimmed(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _trimmed(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_trimmed(item) for item in value]
    if isinstance(value, str):
        return value.strip()
    return copy.deepcopy(value)


def _issues_from(error: SchemaError) -> list[ConfigValidationIssue]:
    path = _render_path(error.absolute_path)
    instance = error.instance
    if error.validator == "required" and isinstance(instance, Mapping):
        return [
            ConfigValidationIssue(_join(path, key), "missing required field")
            for key in error.validator_value
            if key not in instance
        ]
    if error.validator == "additionalProperties" and isinstance(instance, Mapping):
        declared = error.schema.get("properties", {})
        patterns = error.schema.get("patternProperties", {})
        issues: list[ConfigValidationIssue] = []
        for key in sorted(str(item) for item in instance):
            if key in declared or any(re.search(pattern, key) for pattern in patterns):
                continue
            if patterns:
                message = f"profile name must match {_PROFILE_NAME_PATTERN}"
            elif looks_sensitive_key(key):
                message = _SECRET_MESSAGE
            else:
                message = "unknown field"
            issues.append(ConfigValidationIssue(_join(path, key), message))
        return issues
    if error.validator == "const" and path == "meta.schema_version":
        message = f"unsupported schema version {instance!r}; expected {CONFIG_SCHEMA_VERSION}"
        return [ConfigValidationIssue(path, message)]
    if error.validator == "pattern" and path.endswith("api_key_env"):
        message = "must be an env var name (example: REGEN_OPENAI_API_KEY)"
        return [ConfigValidationIssue(path, message)]
    return [ConfigValidationIssue(path or "<root>", error.message)]


def _provider_issues(providers: object) -> list[ConfigValidationIssue]:
    if not isinstance(providers, Mapping):
        return []
    issues: list[ConfigValidationIssue] = []
    for role in ("primary", "fallback"):
        selected = providers.get(role)
        if selected not in PROVIDER_NAMES:
            continue
        settings = providers.get(selected)
        if not isinstance(settings, Mapping) or not isinstance(settings.get("api_key_env"), str):
            issues.append(
                ConfigValidationIssue(
                    f"providers.{role}", f"{role} provider {selected!r} requires api_key_env"
                )
            )
    return issues


def _render_path(parts: Iterable[str | int]) -> str:
    rendered = ""
    for part in parts:
        rendered = f"{rendered}[{part}]" if isinstance(part, int) else _join(rendered, part)
    return rendered


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED
            if _normalize_key(str(key)).endswith("_env") or looks_sensitive_key(str(key))
            else _redact(item)
            for key, item in sorted(value.items())
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_SCHEMA",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PROFILE_OVERLAY_SCHEMA",
    "PROVIDER_NAMES",
    "SECTION_SCHEMAS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "looks_sensitive_key",
    "merge_config",
    "redact_config",
    "validate_config",
]
