"""
regen-orchestrator — runtime config loader.

File: src/regen_orchestrator/config/loader.py
Last updated: 2026-10-19

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (REGEN_) > profile > file > defaults.
- TOML loading via ``tomllib``.
- ``REGEN_<SECTION>_<FIELD>`` bindings derived from the config schema.
- Path normalization relative to the config file location.

Functional requirements
- Reject invalid/embedded-secret config via schema validation.
- Coercion failures name the offending environment variable.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from regen_orchestrator.config.schema import (
    PATH_FIELDS,
    PROVIDER_NAMES,
    SECTION_SCHEMAS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "regenerator.toml"
ENV_PREFIX: Final[str] = "REGEN_"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    require_secret_env_values: bool = False,
) -> dict[str, Any]:
    """Load the effective config: CLI > env > profile > file > defaults."""

    env = dict(os.environ if environ is None else environ)
    cli = dict(cli_overrides or {})
    if config_path is None:
        path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        path = Path(config_path).expanduser().resolve()

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    selected = _pick_profile(profile, cli, env)
    if selected is not None:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, env_overrides(env))
    config = merge_config(config, _cli_payload(cli))
    config = normalize_paths(
        assert_valid_config(config, active_profile=selected), base_dir=path.parent
    )

    if require_secret_env_values:
        _check_secret_envs(config, env)
    return config


def env_bindings() -> dict[str, tuple[tuple[str, ...], str]]:
    """Map every ``REGEN_*`` variable to its config path and JSON Schema type."""

    return {
        ENV_PREFIX + "_".join(part.upper() for part in path): (path, kind)
        for path, kind in _schema_leaves(SECTION_SCHEMAS, ())
    }


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, (path, kind) in sorted(env_bindings().items()):
        raw = environ.get(env_name)
        if raw is not None:
            _set_nested(overrides, path, _coerce(raw.strip(), kind, env_name, path))
    return overrides


def normalize_paths(config: Mapping[str, Any], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative path fields against ``base_dir``."""

    normalized = merge_config(config, {})
    for section, key in PATH_FIELDS:
        holder = normalized.get(section)
        if isinstance(holder, dict) and isinstance(holder.get(key), str):
            candidate = Path(os.path.expandvars(holder[key])).expanduser()
            if not candidate.is_absolute():
                candidate = base_dir / candidate
            holder[key] = Path(os.path.normpath(candidate)).as_posix()
    return normalized


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Deterministic JSON dump of the redacted config."""

    separators = (",", ":") if indent is None else None
    return json.dumps(
        redact_config(config),
        sort_keys=True,
        indent=indent,
        separators=separators,
        ensure_ascii=False,
    )


def _schema_leaves(
    properties: Mapping[str, Any], prefix: tuple[str, ...]
) -> Iterator[tuple[tuple[str, ...], str]]:
    for name, node in properties.items():
        path = (*prefix, name)
        children = node.get("properties")
        if isinstance(children, Mapping):
            yield from _schema_leaves(children, path)
        else:
            yield path, str(node.get("type", "string"))


def _coerce(value: str, kind: str, env_name: str, path: tuple[str, ...]) -> object:
    field = ".".join(path)
    if kind == "array":
        return [item.strip() for item in value.split(",") if item.strip()]
    if kind == "integer":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {field} must be an integer") from exc
    if kind == "number":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {field} must be a number") from exc
    if kind == "boolean":
        lowered = value.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ConfigLoadError(
            f"{env_name} -> {field} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    return value


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(
    profile: str | None,
    cli: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    chosen = profile if profile is not None else cli.get("profile")
    if chosen is None:
        chosen = environ.get(f"{ENV_PREFIX}PROFILE")
    if chosen is None:
        return None
    if not isinstance(chosen, str):
        raise ConfigLoadError("cli override 'profile' must be a string")
    return chosen.strip() or None


def _cli_payload(cli: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in sorted(cli.items()):
        if key == "profile" or value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _check_secret_envs(config: Mapping[str, Any], environ: Mapping[str, str]) -> None:
    providers = config["providers"]
    used = {providers["primary"], providers["fallback"]}
    missing = sorted(
        f"providers.{name}.api_key_env -> {providers[name]['api_key_env']}"
        for name in PROVIDER_NAMES
        if name in used and not environ.get(providers[name]["api_key_env"], "").strip()
    )
    if missing:
        details = ", ".join(missing)
        raise ConfigLoadError(f"missing required secret environment variable values: {details}")


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_bindings",
    "env_overrides",
    "load_config",
    "normalize_paths",
]
