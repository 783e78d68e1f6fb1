"""
regen-orchestrator — schema validation

File: src/regen_orchestrator/verification_plane/schema_validator.py
Last updated: 2026-10-19

Purpose
- Check a parsed candidate against a ``SchemaContract`` and report every violated field.

What should be included in this file
- ``validate`` returning a ``ValidationOutcome`` with all errors, not just the first.
- ``partition_fields`` splitting a top-level object into valid and invalid fields.

Functional requirements
- Field paths use dotted/indexed notation (``items[3].title``).
- Missing required properties are reported on the property path, not on the parent.

Non-functional requirements
- Deterministic ordering of violations for stable prompts and logs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

from jsonschema import exceptions as jsonschema_exceptions

from regen_orchestrator.domain.models import FieldViolation, JSONValue, ValidationOutcome
from regen_orchestrator.verification_plane.schema_contract import SchemaContract

_MAX_REASON_CHARS: Final[int] = 200


@dataclass(frozen=True, slots=True)
class FieldPartition:
    """Top-level fields of a candidate object grouped by validity."""

    successful: tuple[str, ...]
    invalid: tuple[str, ...]
    root_errors: tuple[FieldViolation, ...] = ()

    @property
    def has_root_errors(self) -> bool:
        return bool(self.root_errors)


def validate(candidate: JSONValue, schema: SchemaContract) -> ValidationOutcome:
    """Validate ``candidate`` and collect every violation."""

    violations = _collect(schema.iter_errors(candidate))
    if not violations:
        return ValidationOutcome.passed()
    return ValidationOutcome(valid=False, errors=violations)


def partition_fields(
    candidate: Mapping[str, JSONValue],
    outcome: ValidationOutcome,
    schema: SchemaContract,
) -> FieldPartition:
    """Group the candidate's top-level fields by whether any violation touches them.

    Required properties that are absent count as invalid fields. Violations that
    cannot be attributed to a single field (for example ``additionalProperties``
    on the root, or a root type mismatch) are returned as ``root_errors``.
    """

    invalid: list[str] = []
    root_errors: list[FieldViolation] = []
    known = set(candidate) | set(schema.property_names())
    for violation in outcome.errors:
        head = _head_segment(violation.path)
        if head is None or head not in known:
            root_errors.append(violation)
            continue
        if head not in invalid:
            invalid.append(head)
    successful = tuple(key for key in candidate if key not in invalid)
    order = {name: index for index, name in enumerate(schema.property_names())}
    invalid.sort(key=lambda name: (order.get(name, len(order)), name))
    return FieldPartition(
        successful=successful,
        invalid=tuple(invalid),
        root_errors=tuple(root_errors),
    )


def render_path(parts: Iterable[object]) -> str:
    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += f"[{part}]"
        elif rendered:
            rendered += f".{part}"
        else:
            rendered = str(part)
    return rendered


def _collect(
    errors: Iterable[jsonschema_exceptions.ValidationError],
) -> tuple[FieldViolation, ...]:
    seen: set[FieldViolation] = set()
    for error in errors:
        for violation in _to_violations(error):
            seen.add(violation)
    return tuple(sorted(seen))


def _to_violations(error: jsonschema_exceptions.ValidationError) -> list[FieldViolation]:
    base = list(error.absolute_path)
    if error.validator == "required" and isinstance(error.instance, Mapping):
        required = error.validator_value if isinstance(error.validator_value, list) else []
        missing = [name for name in required if name not in error.instance]
        if missing:
            return [
                FieldViolation(path=render_path([*base, name]), reason="is required")
                for name in missing
            ]
    return [FieldViolation(path=render_path(base), reason=_truncate(error.message))]


def _head_segment(path: str) -> str | None:
    if not path:
        return None
    for index, char in enumerate(path):
        if char in ".[":
            return path[:index] or None
    return path


def _truncate(message: str) -> str:
    text = " ".join(message.split())
    if len(text) <= _MAX_REASON_CHARS:
        return text
    return text[: _MAX_REASON_CHARS - 3] + "..."


__all__ = ["FieldPartition", "partition_fields", "render_path", "validate"]
