"""
regen-orchestrator — Layer 1: deterministic syntax repair

File: src/regen_orchestrator/layers/syntax_repair.py
Last updated: 2026-10-19

Purpose
- Recover the raw output without any generator call.

Functional requirements
- Applies ``repair_json`` (strict parse, then the ``json_repair`` library),
  schema key normalization, and the optional structure normalizer, then validates.
- Already-valid JSON is returned unchanged with no repairs recorded.
- Zero tokens, zero retries.
"""

from __future__ import annotations

from regen_orchestrator.domain.models import LayerName, Unparsed
from regen_orchestrator.layers.base import LayerContext, LayerOutcome, check_candidate


class SyntaxRepairLayer:
    name = LayerName.AUTO_REPAIR

    async def attempt(self, context: LayerContext) -> LayerOutcome:
        validated, repairs = check_candidate(context, Unparsed(context.request.raw_output))
        if repairs:
            context.logger.debug("regeneration_auto_repair_applied", repairs=list(repairs))
        return LayerOutcome(layer=self.name, candidate=validated, repairs=repairs)


__all__ = ["SyntaxRepairLayer"]
