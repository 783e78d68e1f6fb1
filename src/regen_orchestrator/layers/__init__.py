"""
regen-orchestrator — regeneration layers

File: src/regen_orchestrator/layers/__init__.py
Last updated: 2026-10-19

Purpose
- Export the five escalation layers and their shared run context.
"""

from regen_orchestrator.layers.base import (
    LayerContext,
    LayerOutcome,
    LayerTelemetry,
    RegenerationLayer,
    check_candidate,
    invoke_generator,
)
from regen_orchestrator.layers.coercion import canonical_key, coerce_candidate, normalize_keys
from regen_orchestrator.layers.critique_revise import CritiqueReviseLayer
from regen_orchestrator.layers.emergency import EmergencyLayer
from regen_orchestrator.layers.text_repair import RepairResult, repair_json
from regen_orchestrator.layers.model_escalation import ModelEscalationLayer
from regen_orchestrator.layers.partial_regen import PartialRegenLayer
from regen_orchestrator.layers.syntax_repair import SyntaxRepairLayer

__all__ = [
    "CritiqueReviseLayer",
    "EmergencyLayer",
    "LayerContext",
    "LayerOutcome",
    "LayerTelemetry",
    "ModelEscalationLayer",
    "PartialRegenLayer",
    "RegenerationLayer",
    "RepairResult",
    "SyntaxRepairLayer",
    "canonical_key",
    "check_candidate",
    "coerce_candidate",
    "invoke_generator",
    "normalize_keys",
    "repair_json",
]
