"""
regen-orchestrator — schema contract

File: src/regen_orchestrator/verification_plane/schema_contract.py
Last updated: 2026-10-19

Purpose
- Wrap a JSON Schema document so layers can validate candidates and inspect field shapes.

What should be included in this file
- Construction from an in-memory mapping or a JSON/YAML file on disk.
- Eager meta-schema check so malformed schemas fail before any layer runs.
- Field introspection helpers used by key normalization and partial regeneration.

Functional requirements
- Must raise ``ConfigurationError`` for schemas that are not valid JSON Schema.
- Must resolve local ``#/...`` references for field introspection.

Non-functional requirements
- Immutable after construction; safe to share across concurrent runs.
"""

from __future__ import annotations

import copy
import hashlib
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import exceptions as jsonschema_exceptions
from jsonschema import validators as jsonschema_validators
from jsonschema.protocols import Validator

from regen_orchestrator.domain.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class SchemaContract:
    """Validated JSON Schema document plus a compiled validator."""

    document: Mapping[str, Any]
    name: str = "schema"
    _validator: Validator = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.document, Mapping):
            raise ConfigurationError("schema document must be a JSON object")
        document = copy.deepcopy(dict(self.document))
        validator_cls = jsonschema_validators.validator_for(
            document,
            default=jsonschema_validators.Draft202012Validator,
        )
        try:
            validator_cls.check_schema(document)
        except jsonschema_exceptions.SchemaError as exc:
            location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
            raise ConfigurationError(
                f"invalid schema {self.name!r} at {location}: {exc.message}"
            ) from exc
        object.__setattr__(self, "document", document)
        object.__setattr__(self, "_validator", validator_cls(document))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, name: str = "schema") -> SchemaContract:
        return cls(document=payload, name=name)

    @classmethod
    def from_file(cls, path: str | Path) -> SchemaContract:
        """Load a schema from ``.json``, ``.yaml`` or ``.yml``."""

        schema_path = Path(path)
        try:
            text = schema_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"unable to read schema file {schema_path}: {exc}") from exc
        try:
            if schema_path.suffix.lower() in {".yaml", ".yml"}:
                payload = yaml.safe_load(text)
            else:
                payload = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"unable to parse schema file {schema_path}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise ConfigurationError(f"schema file {schema_path} must contain a JSON object")
        return cls(document=payload, name=schema_path.stem)

    @property
    def validator(self) -> Validator:
        return self._validator

    def iter_errors(self, instance: object) -> Iterator[jsonschema_exceptions.ValidationError]:
        return self._validator.iter_errors(instance)

    def is_valid(self, instance: object) -> bool:
        return self._validator.is_valid(instance)

    def root(self) -> Mapping[str, Any]:
        return self.resolve(self.document)

    def resolve(self, node: object) -> Mapping[str, Any]:
        """Follow local ``$ref`` pointers until a concrete subschema is reached."""

        seen: set[str] = set()
        current = node
        while isinstance(current, Mapping) and isinstance(current.get("$ref"), str):
            ref = current["$ref"]
            if not ref.startswith("#") or ref in seen:
                break
            seen.add(ref)
            current = self._pointer(ref)
        if not isinstance(current, Mapping):
            return {}
        return current

    def property_names(self, node: object | None = None) -> tuple[str, ...]:
        properties = self.resolve(self.document if node is None else node).get("properties")
        if not isinstance(properties, Mapping):
            return ()
        return tuple(str(key) for key in properties)

    def property_schema(self, name: str, node: object | None = None) -> Mapping[str, Any]:
        properties = self.resolve(self.document if node is None else node).get("properties")
        if not isinstance(properties, Mapping):
            return {}
        return self.resolve(properties.get(name, {}))

    def items_schema(self, node: object) -> Mapping[str, Any]:
        items = self.resolve(node).get("items")
        if isinstance(items, Mapping):
            return self.resolve(items)
        return {}

    def required_fields(self, node: object | None = None) -> tuple[str, ...]:
        required = self.resolve(self.document if node is None else node).get("required")
        if not isinstance(required, list):
            return ()
        return tuple(str(item) for item in required)

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.document, indent=indent, sort_keys=True, ensure_ascii=False)

    def fingerprint(self) -> str:
        canonical = json.dumps(self.document, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def _pointer(self, ref: str) -> object:
        current: object = self.document
        fragment = ref[1:].lstrip("/")
        if not fragment:
            return current
        for raw_part in fragment.split("/"):
            part = raw_part.replace("~1", "/").replace("~0", "~")
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return {}
        return current


__all__ = ["SchemaContract"]
