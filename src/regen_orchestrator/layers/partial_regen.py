"""
regen-orchestrator — Layer 3: partial field regeneration

File: src/regen_orchestrator/layers/partial_regen.py
Last updated: 2026-10-19

Purpose
- Regenerate only the top-level fields that fail validation, keeping the rest as-is.

What should be included in this file
- Selection of the best partially-valid object candidate seen in the run.
- Field partition (successful vs. needing regeneration) and a minimal prompt.
- Merge that replaces only previously-invalid fields.

Functional requirements
- Successful fields in the merged data are the same objects as in the candidate.
- Candidates that are not objects, already valid, or violate the schema at the
  root are not applicable and cost no generator call.

Non-functional requirements
- One generator invocation per run, capped at ``partial_max_tokens``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from regen_orchestrator.domain.errors import (
    CandidateSyntaxError,
    LayerNotApplicableError,
    SchemaViolationError,
)
from regen_orchestrator.domain.models import (
    JSONValue,
    LayerName,
    PartialFieldResult,
    Validated,
)
from regen_orchestrator.layers.base import (
    LayerContext,
    LayerOutcome,
    dump_candidate,
    invoke_generator,
)
from regen_orchestrator.layers.coercion import coerce_candidate, normalize_keys
from regen_orchestrator.layers.text_repair import repair_json
from regen_orchestrator.synthesis_plane.prompt_templates import PARTIAL_REGEN_TEMPLATE
from regen_orchestrator.verification_plane.schema_validator import partition_fields, validate

if TYPE_CHECKING:
    from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding
    from regen_orchestrator.synthesis_plane.providers.base import GeneratorProtocol


class PartialRegenLayer:
    name = LayerName.PARTIAL_REGEN

    def __init__(self, generator: GeneratorProtocol, binding: ModelBinding) -> None:
        self._generator = generator
        self._binding = binding

    @property
    def binding(self) -> ModelBinding:
        return self._binding

    async def attempt(self, context: LayerContext) -> LayerOutcome:
        schema = context.request.schema
        base = self._base_candidate(context)
        outcome = validate(base, schema)
        if outcome.valid:
            raise LayerNotApplicableError("candidate already satisfies the schema")
        partition = partition_fields(base, outcome, schema)
        if partition.has_root_errors:
            rendered = "; ".join(violation.render() for violation in partition.root_errors)
            raise LayerNotApplicableError(f"violations outside individual fields: {rendered}")
        if not partition.invalid:
            raise LayerNotApplicableError("no individual field can be regenerated")

        invalid = partition.invalid
        field_errors = "\n".join(f"- {violation.render()}" for violation in outcome.errors)
        prompt = context.prompt_engine.render(
            PARTIAL_REGEN_TEMPLATE,
            original_prompt=context.request.original_prompt,
            preserved_json={key: base[key] for key in partition.successful},
            field_errors=field_errors,
            field_schemas_json={name: dict(schema.property_schema(name)) for name in invalid},
            field_names=", ".join(invalid),
        )
        context.logger.info(
            "regeneration_partial_fields_selected",
            successful_fields=list(partition.successful),
            invalid_fields=list(invalid),
        )
        response = await invoke_generator(
            context,
            self._generator,
            prompt.prompt,
            self._binding,
            max_tokens=context.config.partial_max_tokens,
        )

        try:
            patch = normalize_keys(repair_json(response.text).value, schema)
        except CandidateSyntaxError as exc:
            context.note_failure(response.text, exc.detail)
            raise
        if not isinstance(patch, dict):
            detail = "partial regeneration must return a JSON object"
            context.note_failure(response.text, detail)
            raise SchemaViolationError(detail)

        merged: dict[str, JSONValue] = dict(base)
        regenerated: list[str] = []
        for name in invalid:
            if name in patch:
                merged[name] = patch[name]
                regenerated.append(name)

        merged_outcome = validate(merged, schema)
        context.observe(merged, merged_outcome)
        if not merged_outcome.valid:
            summary = merged_outcome.summary()
            context.note_failure(dump_candidate(merged), summary)
            raise SchemaViolationError(summary, violations=merged_outcome.errors)

        partial = PartialFieldResult(
            successful_fields=partition.successful,
            regenerated_fields=tuple(regenerated),
            data=merged,
            original=base,
        )
        return LayerOutcome(layer=self.name, candidate=Validated(merged), partial=partial)

    def _base_candidate(self, context: LayerContext) -> dict[str, JSONValue]:
        if context.best_candidate is not None:
            return context.best_candidate
        try:
            parsed = coerce_candidate(
                context.request.raw_output,
                context.request.schema,
                normalizer=context.config.structure_normalizer,
            )
        except CandidateSyntaxError as exc:
            raise LayerNotApplicableError(f"no parseable candidate to patch: {exc.detail}") from exc
        if not isinstance(parsed.value, dict):
            raise LayerNotApplicableError("candidate is not a JSON object")
        return parsed.value


__all__ = ["PartialRegenLayer"]
