"""
regen-orchestrator — control plane

File: src/regen_orchestrator/control_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Run regeneration layers in order and wire the engine from configuration.
"""

from regen_orchestrator.control_plane.factory import (
    build_regenerator,
    default_generator_registry,
    layer_config_from_config,
)
from regen_orchestrator.control_plane.orchestrator import RegenerationJob, UnifiedRegenerator

__all__ = [
    "RegenerationJob",
    "UnifiedRegenerator",
    "build_regenerator",
    "default_generator_registry",
    "layer_config_from_config",
]
