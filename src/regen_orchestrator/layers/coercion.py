"""Schema-aware candidate coercion shared by every layer.

Text goes through ``repair_json``; keys are then mapped onto the schema's
property names (``courseTitle`` / ``Course-Title`` -> ``course_title``) where the
mapping is unambiguous, and the caller's structure normalizer runs last.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Final

from regen_orchestrator.domain.errors import CandidateSyntaxError
from regen_orchestrator.domain.models import JSONValue, Parsed, StructureNormalizer
from regen_orchestrator.layers.text_repair import repair_json
from regen_orchestrator.verification_plane.schema_contract import SchemaContract

_NON_ALNUM_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]")


def canonical_key(key: str) -> str:
    return _NON_ALNUM_RE.sub("", key.lower())


def normalize_keys(
    value: JSONValue,
    schema: SchemaContract,
    node: Mapping[str, object] | None = None,
) -> JSONValue:
    """Rename object keys to matching schema property names, recursively.

    A key is renamed only when its canonical form matches exactly one declared
    property that the object does not already carry. Unchanged values are
    returned as the same object.
    """

    resolved = schema.root() if node is None else schema.resolve(node)
    if isinstance(value, dict):
        return _normalize_object(value, schema, resolved)
    if isinstance(value, list):
        items = schema.items_schema(resolved)
        if not items:
            return value
        normalized = [normalize_keys(item, schema, items) for item in value]
        if all(new is old for new, old in zip(normalized, value, strict=True)):
            return value
        return normalized
    return value


def _normalize_object(
    value: dict[str, JSONValue],
    schema: SchemaContract,
    node: Mapping[str, object],
) -> JSONValue:
    properties = node.get("properties")
    if not isinstance(properties, Mapping) or not properties:
        return value

    by_canonical: dict[str, list[str]] = {}
    for name in properties:
        by_canonical.setdefault(canonical_key(str(name)), []).append(str(name))

    out: dict[str, JSONValue] = {}
    changed = False
    for key, item in value.items():
        target = key
        if key not in properties:
            matches = by_canonical.get(canonical_key(key), [])
            if len(matches) == 1 and matches[0] not in value and matches[0] not in out:
                target = matches[0]
        subschema = properties.get(target)
        new_item = (
            normalize_keys(item, schema, subschema) if isinstance(subschema, Mapping) else item
        )
        if target != key or new_item is not item:
            changed = True
        out[target] = new_item
    return out if changed else value


def coerce_candidate(
    text: str,
    schema: SchemaContract,
    *,
    normalizer: StructureNormalizer | None = None,
) -> Parsed:
    """Repair, parse, and key-normalize generator text."""

    repaired = repair_json(text)
    repairs = list(repaired.repairs)
    value = normalize_keys(repaired.value, schema)
    if value is not repaired.value:
        repairs.append("normalize_keys")
    if normalizer is not None:
        try:
            value = normalizer(value)
        except Exception as exc:  # noqa: BLE001
            raise CandidateSyntaxError(f"structure normalizer failed: {exc}") from exc
        repairs.append("structure_normalizer")
    return Parsed(value=value, repairs=tuple(repairs))


__all__ = ["canonical_key", "coerce_candidate", "normalize_keys"]
