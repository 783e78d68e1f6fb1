"""
regen-orchestrator — model tier registry

File: src/regen_orchestrator/synthesis_plane/model_tiers.py
Last updated: 2026-10-19

Purpose
- Describe which models back each escalation tier, per pipeline phase.

What should be included in this file
- ``ModelBinding``: provider + model + per-call limits + blended cost.
- ``ModelTierRegistry`` loaded from the packaged ``model_tiers.yaml`` or a caller file.

Functional requirements
- Tier order is the file order; escalation walks tiers weakest to strongest.
- Unknown phases fall back to the ``default`` chain.
- An ``emergency`` binding is optional; the emergency layer requires one at call time.

Non-functional requirements
- Deterministic, offline-safe, cached after the first load.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Final

import yaml

from regen_orchestrator.constants import DEFAULT_TIER_PHASE, TIER_REGISTRY_SCHEMA_VERSION
from regen_orchestrator.domain.errors import ConfigurationError

_DEFAULT_REGISTRY_PATH: Final[Path] = Path(__file__).with_name("model_tiers.yaml")


def _validate_non_empty_str(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ConfigurationError(f"{field_name} cannot be empty")
    return parsed


def _as_mapping(value: object, field_name: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{field_name} must be an object")
    return value


def _as_sequence(value: object, field_name: str) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise ConfigurationError(f"{field_name} must be an array")


@dataclass(frozen=True, slots=True)
class ModelBinding:
    """Concrete model selection for one generator call."""

    provider: str
    model: str
    max_tokens: int | None = None
    cost_per_1k_tokens_usd: float = 0.0
    temperature: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "provider",
            _validate_non_empty_str(self.provider, "ModelBinding.provider").lower(),
        )
        object.__setattr__(self, "model", _validate_non_empty_str(self.model, "ModelBinding.model"))
        if self.max_tokens is not None:
            if isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int):
                raise ConfigurationError("ModelBinding.max_tokens must be an integer")
            if self.max_tokens <= 0:
                raise ConfigurationError("ModelBinding.max_tokens must be > 0")
        if isinstance(self.cost_per_1k_tokens_usd, bool) or not isinstance(
            self.cost_per_1k_tokens_usd, (int, float)
        ):
            raise ConfigurationError("ModelBinding.cost_per_1k_tokens_usd must be numeric")
        if self.cost_per_1k_tokens_usd < 0:
            raise ConfigurationError("ModelBinding.cost_per_1k_tokens_usd must be >= 0")
        object.__setattr__(self, "cost_per_1k_tokens_usd", float(self.cost_per_1k_tokens_usd))
        if self.temperature is not None and not (0.0 <= self.temperature <= 2.0):
            raise ConfigurationError("ModelBinding.temperature must be between 0.0 and 2.0")

    @property
    def label(self) -> str:
        return self.model

    def estimate_cost(self, tokens: int) -> float:
        if tokens < 0:
            raise ValueError("tokens must be >= 0")
        return (tokens / 1000.0) * self.cost_per_1k_tokens_usd

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, path: str) -> ModelBinding:
        max_tokens = payload.get("max_tokens")
        temperature = payload.get("temperature")
        if temperature is not None and (
            isinstance(temperature, bool) or not isinstance(temperature, (int, float))
        ):
            raise ConfigurationError(f"{path}.temperature must be numeric")
        return cls(
            provider=_validate_non_empty_str(payload.get("provider"), f"{path}.provider"),
            model=_validate_non_empty_str(payload.get("model"), f"{path}.model"),
            max_tokens=max_tokens,  # type: ignore[arg-type]
            cost_per_1k_tokens_usd=payload.get("cost_per_1k_tokens_usd", 0.0),  # type: ignore[arg-type]
            temperature=float(temperature) if temperature is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ModelTier:
    tier_id: str
    binding: ModelBinding


@dataclass(frozen=True, slots=True)
class ModelTierRegistry:
    """Per-phase ordered tier chains plus an optional emergency binding."""

    phases: Mapping[str, tuple[ModelTier, ...]]
    emergency: ModelBinding | None = None

    def __post_init__(self) -> None:
        normalized: dict[str, tuple[ModelTier, ...]] = {}
        for phase, tiers in self.phases.items():
            key = _validate_non_empty_str(phase, "phase").lower()
            chain = tuple(tiers)
            if not chain:
                raise ConfigurationError(f"phases.{key} must declare at least one tier")
            seen: set[str] = set()
            for tier in chain:
                if tier.tier_id in seen:
                    raise ConfigurationError(f"phases.{key} repeats tier {tier.tier_id!r}")
                seen.add(tier.tier_id)
            normalized[key] = chain
        object.__setattr__(self, "phases", MappingProxyType(normalized))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ModelTierRegistry:
        version = payload.get("version", TIER_REGISTRY_SCHEMA_VERSION)
        if version != TIER_REGISTRY_SCHEMA_VERSION:
            raise ConfigurationError(
                f"unsupported tier registry version {version!r}; "
                f"expected {TIER_REGISTRY_SCHEMA_VERSION}"
            )
        phases_raw = _as_mapping(payload.get("phases"), "phases")
        phases: dict[str, tuple[ModelTier, ...]] = {}
        for phase, entries in phases_raw.items():
            tiers: list[ModelTier] = []
            for index, entry in enumerate(_as_sequence(entries, f"phases.{phase}")):
                path = f"phases.{phase}[{index}]"
                entry_map = _as_mapping(entry, path)
                tiers.append(
                    ModelTier(
                        tier_id=_validate_non_empty_str(entry_map.get("tier"), f"{path}.tier"),
                        binding=ModelBinding.from_mapping(entry_map, path=path),
                    )
                )
            phases[str(phase)] = tuple(tiers)

        emergency_raw = payload.get("emergency")
        emergency = (
            ModelBinding.from_mapping(_as_mapping(emergency_raw, "emergency"), path="emergency")
            if emergency_raw is not None
            else None
        )
        return cls(phases=phases, emergency=emergency)

    @classmethod
    def from_file(cls, path: str | Path) -> ModelTierRegistry:
        candidate = Path(path).expanduser()
        try:
            payload = yaml.safe_load(candidate.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid tier registry YAML in {candidate}: {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"unable to read tier registry {candidate}: {exc}") from exc
        return cls.from_mapping(_as_mapping(payload, "tier registry"))

    def phase_names(self) -> tuple[str, ...]:
        return tuple(sorted(self.phases))

    def tiers_for(self, phase_id: str | None) -> tuple[ModelTier, ...]:
        """Tier chain for ``phase_id``, falling back to the default chain."""

        if phase_id is not None:
            chain = self.phases.get(phase_id.strip().lower())
            if chain is not None:
                return chain
        return self.phases.get(DEFAULT_TIER_PHASE, ())

    def primary_for(self, phase_id: str | None) -> ModelBinding | None:
        chain = self.tiers_for(phase_id)
        return chain[0].binding if chain else None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "version": TIER_REGISTRY_SCHEMA_VERSION,
            "phases": {
                phase: [
                    {
                        "tier": tier.tier_id,
                        "provider": tier.binding.provider,
                        "model": tier.binding.model,
                        "max_tokens": tier.binding.max_tokens,
                        "cost_per_1k_tokens_usd": tier.binding.cost_per_1k_tokens_usd,
                    }
                    for tier in chain
                ]
                for phase, chain in sorted(self.phases.items())
            },
        }
        if self.emergency is not None:
            payload["emergency"] = {
                "provider": self.emergency.provider,
                "model": self.emergency.model,
                "max_tokens": self.emergency.max_tokens,
                "cost_per_1k_tokens_usd": self.emergency.cost_per_1k_tokens_usd,
            }
        return payload


@lru_cache(maxsize=1)
def load_default_tier_registry() -> ModelTierRegistry:
    """Load and cache the tier registry shipped with the package."""

    return ModelTierRegistry.from_file(_DEFAULT_REGISTRY_PATH)


def load_tier_registry(path: str | Path | None = None) -> ModelTierRegistry:
    if path is None:
        return load_default_tier_registry()
    return ModelTierRegistry.from_file(path)


__all__ = [
    "ModelBinding",
    "ModelTier",
    "ModelTierRegistry",
    "load_default_tier_registry",
    "load_tier_registry",
]
