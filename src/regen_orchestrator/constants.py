"""Stable constants shared across regeneration planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
TIER_REGISTRY_SCHEMA_VERSION: Final[int] = 1

# Layer identifiers in declaration order.
LAYER_AUTO_REPAIR: Final[str] = "auto-repair"
LAYER_CRITIQUE_REVISE: Final[str] = "critique-revise"
LAYER_PARTIAL_REGEN: Final[str] = "partial-regen"
LAYER_MODEL_ESCALATION: Final[str] = "model-escalation"
LAYER_EMERGENCY: Final[str] = "emergency"
LAYER_ORDER: Final[tuple[str, ...]] = (
    LAYER_AUTO_REPAIR,
    LAYER_CRITIQUE_REVISE,
    LAYER_PARTIAL_REGEN,
    LAYER_MODEL_ESCALATION,
    LAYER_EMERGENCY,
)
LAYER_USED_FAILED: Final[str] = "failed"
LAYER_USED_WARNING_FALLBACK: Final[str] = "warning_fallback"

# Generation defaults.
DEFAULT_MAX_RETRIES: Final[int] = 1
DEFAULT_MAX_TOKENS: Final[int] = 4096
DEFAULT_PARTIAL_MAX_TOKENS: Final[int] = 2048
DEFAULT_GENERATOR_TIMEOUT_SECONDS: Final[float] = 120.0
DEFAULT_MAX_CONCURRENCY: Final[int] = 4

# Phase identifier used when a tier registry has no chain for the requested phase.
DEFAULT_TIER_PHASE: Final[str] = "default"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_GENERATOR_TIMEOUT_SECONDS",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_PARTIAL_MAX_TOKENS",
    "DEFAULT_TIER_PHASE",
    "LAYER_AUTO_REPAIR",
    "LAYER_CRITIQUE_REVISE",
    "LAYER_EMERGENCY",
    "LAYER_MODEL_ESCALATION",
    "LAYER_ORDER",
    "LAYER_PARTIAL_REGEN",
    "LAYER_USED_FAILED",
    "LAYER_USED_WARNING_FALLBACK",
    "TIER_REGISTRY_SCHEMA_VERSION",
]
