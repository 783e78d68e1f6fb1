"""
regen-orchestrator — package root

File: src/regen_orchestrator/__init__.py
Last updated: 2026-10-19

Purpose
- Package root. Exposes the regeneration entrypoints without importing provider SDKs.

What should be included in this file
- Version export and the minimal public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

from regen_orchestrator.control_plane.orchestrator import UnifiedRegenerator
from regen_orchestrator.domain.models import (
    LayerConfig,
    LayerName,
    RegenerationRequest,
    RegenerationResult,
)
from regen_orchestrator.verification_plane.schema_contract import SchemaContract

__version__ = "0.1.0"

__all__ = [
    "LayerConfig",
    "LayerName",
    "RegenerationRequest",
    "RegenerationResult",
    "SchemaContract",
    "UnifiedRegenerator",
    "__version__",
]
