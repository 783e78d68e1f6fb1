"""
regen-orchestrator — verification plane public API.

File: src/regen_orchestrator/verification_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Export the schema contract, the validator used by every regeneration layer, and the
  heuristic quality gate.

Non-functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from regen_orchestrator.verification_plane.quality import completeness_of, create_quality_validator
from regen_orchestrator.verification_plane.schema_contract import SchemaContract
from regen_orchestrator.verification_plane.schema_validator import (
    FieldPartition,
    partition_fields,
    render_path,
    validate,
)

__all__ = [
    "FieldPartition",
    "SchemaContract",
    "completeness_of",
    "create_quality_validator",
    "partition_fields",
    "render_path",
    "validate",
]
