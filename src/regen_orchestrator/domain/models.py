"""
regen-orchestrator — regeneration domain models

File: src/regen_orchestrator/domain/models.py
Last updated: 2026-10-19

Purpose
- Immutable request/config/result records exchanged between the orchestrator and layers.

What should be included in this file
- ``RegenerationRequest`` and per-request ``LayerConfig``.
- The candidate union ``Unparsed | Parsed | Validated``.
- Validation outcomes, partial-regeneration results, per-layer attempts, final results.

Functional requirements
- Failed results carry an error and no data; successful results carry no error.
- Telemetry totals equal the sum of per-layer attempt contributions.

Non-functional requirements
- Frozen dataclasses only; construction validates eagerly.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

from regen_orchestrator.constants import (
    DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    DEFAULT_PARTIAL_MAX_TOKENS,
    LAYER_AUTO_REPAIR,
    LAYER_CRITIQUE_REVISE,
    LAYER_EMERGENCY,
    LAYER_MODEL_ESCALATION,
    LAYER_PARTIAL_REGEN,
    LAYER_USED_FAILED,
    LAYER_USED_WARNING_FALLBACK,
)
from regen_orchestrator.domain.errors import ConfigurationError, FailureKind

if TYPE_CHECKING:
    from regen_orchestrator.verification_plane.schema_contract import SchemaContract

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

QualityValidator: TypeAlias = Callable[[JSONValue], "bool | Awaitable[bool]"]
StructureNormalizer: TypeAlias = Callable[[JSONValue], JSONValue]


class LayerName(StrEnum):
    """Regeneration layers in declaration (escalation) order."""

    AUTO_REPAIR = LAYER_AUTO_REPAIR
    CRITIQUE_REVISE = LAYER_CRITIQUE_REVISE
    PARTIAL_REGEN = LAYER_PARTIAL_REGEN
    MODEL_ESCALATION = LAYER_MODEL_ESCALATION
    EMERGENCY = LAYER_EMERGENCY


class LayerStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _validate_optional_str(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    return _validate_non_empty_str(value, field_name)


def _validate_non_negative_int(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return value


def coerce_layer_name(value: LayerName | str) -> LayerName:
    """Parse a layer identifier, raising ``ConfigurationError`` for unknown names."""

    if isinstance(value, LayerName):
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"layer name must be a string, got {type(value).__name__}")
    normalized = value.strip().lower().replace("_", "-")
    for candidate in LayerName:
        if candidate.value == normalized:
            return candidate
    expected = ", ".join(item.value for item in LayerName)
    raise ConfigurationError(f"unknown layer {value!r}; expected one of: {expected}")


def order_layers(names: Iterable[LayerName | str]) -> tuple[LayerName, ...]:
    """Return the given layers de-duplicated and sorted into declaration order."""

    selected = {coerce_layer_name(name) for name in names}
    return tuple(layer for layer in LayerName if layer in selected)


@dataclass(frozen=True, slots=True)
class RegenerationRequest:
    """One broken generator output plus everything needed to recover it."""

    raw_output: str
    original_prompt: str
    schema: SchemaContract
    parse_error: str | None = None
    stage: str | None = None
    phase_id: str | None = None
    course_id: str | None = None
    source_model: str | None = None

    def __post_init__(self) -> None:
        from regen_orchestrator.verification_plane.schema_contract import SchemaContract

        if not isinstance(self.raw_output, str):
            raise TypeError("RegenerationRequest.raw_output must be a string")
        object.__setattr__(
            self,
            "original_prompt",
            _validate_non_empty_str(self.original_prompt, "RegenerationRequest.original_prompt"),
        )
        if isinstance(self.schema, Mapping):
            object.__setattr__(self, "schema", SchemaContract.from_mapping(self.schema))
        elif not isinstance(self.schema, SchemaContract):
            raise TypeError("RegenerationRequest.schema must be a SchemaContract or mapping")
        if self.parse_error is not None and not isinstance(self.parse_error, str):
            raise TypeError("RegenerationRequest.parse_error must be a string")
        for name in ("stage", "phase_id", "course_id", "source_model"):
            object.__setattr__(
                self,
                name,
                _validate_optional_str(getattr(self, name), f"RegenerationRequest.{name}"),
            )

    def correlation(self) -> dict[str, str | None]:
        return {
            "stage": self.stage,
            "phase_id": self.phase_id,
            "course_id": self.course_id,
        }


@dataclass(frozen=True, slots=True)
class LayerConfig:
    """Per-request layer selection, retry budget, and hooks."""

    enabled_layers: tuple[LayerName, ...] = tuple(LayerName)
    max_retries: int = DEFAULT_MAX_RETRIES
    quality_validator: QualityValidator | None = None
    metrics_tracking: bool = True
    structure_normalizer: StructureNormalizer | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    partial_max_tokens: int = DEFAULT_PARTIAL_MAX_TOKENS
    generator_timeout_seconds: float = DEFAULT_GENERATOR_TIMEOUT_SECONDS
    allow_warning_fallback: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.enabled_layers, (str, LayerName)):
            raise ConfigurationError("LayerConfig.enabled_layers must be a sequence of names")
        normalized: list[LayerName] = []
        for raw in self.enabled_layers:
            layer = coerce_layer_name(raw)
            if layer not in normalized:
                normalized.append(layer)
        object.__setattr__(self, "enabled_layers", tuple(normalized))

        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ConfigurationError("LayerConfig.max_retries must be an integer")
        if self.max_retries < 0:
            raise ConfigurationError("LayerConfig.max_retries must be >= 0")
        if self.quality_validator is not None and not callable(self.quality_validator):
            raise ConfigurationError("LayerConfig.quality_validator must be callable")
        if self.structure_normalizer is not None and not callable(self.structure_normalizer):
            raise ConfigurationError("LayerConfig.structure_normalizer must be callable")
        object.__setattr__(self, "metrics_tracking", bool(self.metrics_tracking))
        object.__setattr__(self, "allow_warning_fallback", bool(self.allow_warning_fallback))
        if self.max_tokens <= 0:
            raise ConfigurationError("LayerConfig.max_tokens must be > 0")
        if self.partial_max_tokens <= 0:
            raise ConfigurationError("LayerConfig.partial_max_tokens must be > 0")
        if self.generator_timeout_seconds <= 0:
            raise ConfigurationError("LayerConfig.generator_timeout_seconds must be > 0")

    def attempt_order(self) -> tuple[LayerName, ...]:
        """Enabled layers in declaration order, whatever order they were listed in."""

        return order_layers(self.enabled_layers)

    def is_enabled(self, layer: LayerName | str) -> bool:
        return coerce_layer_name(layer) in self.enabled_layers


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Unparsed:
    """Raw generator text that has not been parsed yet."""

    text: str


@dataclass(frozen=True, slots=True)
class Parsed:
    """Parsed JSON value that has not passed schema validation."""

    value: JSONValue
    repairs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Validated:
    """Schema-valid value, ready to hand back to the caller."""

    value: JSONValue


Candidate: TypeAlias = Unparsed | Parsed | Validated


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, order=True)
class FieldViolation:
    """One violated field path and the reason it failed."""

    path: str
    reason: str

    def render(self) -> str:
        return f"{self.path or '<root>'}: {self.reason}"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of validating one candidate against a schema."""

    valid: bool
    errors: tuple[FieldViolation, ...] = ()

    def __post_init__(self) -> None:
        errors = tuple(self.errors)
        object.__setattr__(self, "errors", errors)
        if self.valid and errors:
            raise ValueError("a valid outcome cannot carry errors")
        if not self.valid and not errors:
            raise ValueError("an invalid outcome must carry at least one error")

    @classmethod
    def passed(cls) -> ValidationOutcome:
        return cls(valid=True)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self, *, limit: int = 10) -> str:
        if self.valid:
            return "valid"
        rendered = [violation.render() for violation in self.errors[:limit]]
        remaining = len(self.errors) - limit
        if remaining > 0:
            rendered.append(f"... and {remaining} more")
        return "; ".join(rendered)


@dataclass(frozen=True, slots=True)
class PartialFieldResult:
    """Merge record for a partial field regeneration.

    ``data`` shares the value objects of ``original`` for every successful field;
    only ``regenerated_fields`` were replaced.
    """

    successful_fields: tuple[str, ...]
    regenerated_fields: tuple[str, ...]
    data: dict[str, JSONValue]
    original: Mapping[str, JSONValue] = field(repr=False)

    def preserves_successful_fields(self) -> bool:
        return all(
            key in self.data and self.data[key] is self.original[key]
            for key in self.successful_fields
        )


# ---------------------------------------------------------------------------
# Telemetry and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LayerAttempt:
    """Telemetry and outcome of one attempted layer."""

    layer: LayerName
    status: LayerStatus
    retry_count: int = 0
    token_cost: int = 0
    duration_ms: int = 0
    models_used: tuple[str, ...] = ()
    estimated_cost_usd: float = 0.0
    failure_kind: FailureKind | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "layer", coerce_layer_name(self.layer))
        object.__setattr__(self, "status", LayerStatus(self.status))
        _validate_non_negative_int(self.retry_count, "LayerAttempt.retry_count")
        _validate_non_negative_int(self.token_cost, "LayerAttempt.token_cost")
        _validate_non_negative_int(self.duration_ms, "LayerAttempt.duration_ms")
        if self.estimated_cost_usd < 0:
            raise ValueError("LayerAttempt.estimated_cost_usd must be >= 0")
        object.__setattr__(self, "models_used", tuple(self.models_used))
        if self.status is LayerStatus.SUCCEEDED and self.failure_kind is not None:
            raise ValueError("a succeeded attempt cannot carry a failure kind")
        if self.status is not LayerStatus.SUCCEEDED and self.failure_kind is None:
            raise ValueError("a failed or cancelled attempt requires a failure kind")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "layer": self.layer.value,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "token_cost": self.token_cost,
            "duration_ms": self.duration_ms,
            "models_used": list(self.models_used),
            "estimated_cost_usd": self.estimated_cost_usd,
        }
        if self.failure_kind is not None:
            payload["failure_kind"] = self.failure_kind.value
        if self.message is not None:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True, slots=True)
class RegenerationMetadata:
    """Accumulated telemetry for one regeneration run."""

    layer_used: str
    retry_count: int = 0
    token_cost: int = 0
    duration_ms: int = 0
    attempts: tuple[LayerAttempt, ...] = ()
    models_used: tuple[str, ...] = ()
    successful_fields: tuple[str, ...] = ()
    regenerated_fields: tuple[str, ...] = ()
    quality_passed: bool | None = None
    cancelled: bool = False
    estimated_cost_usd: float = 0.0

    def __post_init__(self) -> None:
        if self.layer_used not in (LAYER_USED_FAILED, LAYER_USED_WARNING_FALLBACK):
            object.__setattr__(self, "layer_used", coerce_layer_name(self.layer_used).value)
        _validate_non_negative_int(self.retry_count, "RegenerationMetadata.retry_count")
        _validate_non_negative_int(self.token_cost, "RegenerationMetadata.token_cost")
        _validate_non_negative_int(self.duration_ms, "RegenerationMetadata.duration_ms")
        if self.estimated_cost_usd < 0:
            raise ValueError("RegenerationMetadata.estimated_cost_usd must be >= 0")
        object.__setattr__(self, "attempts", tuple(self.attempts))

    @property
    def validated(self) -> bool:
        """False when the data was accepted without passing schema validation."""

        return self.layer_used not in (LAYER_USED_FAILED, LAYER_USED_WARNING_FALLBACK)

    @classmethod
    def from_attempts(
        cls,
        attempts: Iterable[LayerAttempt],
        *,
        layer_used: str,
        successful_fields: tuple[str, ...] = (),
        regenerated_fields: tuple[str, ...] = (),
        quality_passed: bool | None = None,
        cancelled: bool = False,
    ) -> RegenerationMetadata:
        """Build metadata whose totals are the sums over ``attempts``."""

        ordered = tuple(attempts)
        models: list[str] = []
        for attempt in ordered:
            for model in attempt.models_used:
                if model not in models:
                    models.append(model)
        return cls(
            layer_used=layer_used,
            retry_count=sum(item.retry_count for item in ordered),
            token_cost=sum(item.token_cost for item in ordered),
            duration_ms=sum(item.duration_ms for item in ordered),
            attempts=ordered,
            models_used=tuple(models),
            successful_fields=successful_fields,
            regenerated_fields=regenerated_fields,
            quality_passed=quality_passed,
            cancelled=cancelled,
            estimated_cost_usd=sum(item.estimated_cost_usd for item in ordered),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "layer_used": self.layer_used,
            "retry_count": self.retry_count,
            "token_cost": self.token_cost,
            "duration_ms": self.duration_ms,
            "models_used": list(self.models_used),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "cancelled": self.cancelled,
            "estimated_cost_usd": self.estimated_cost_usd,
            "validated": self.validated,
        }
        if self.successful_fields:
            payload["successful_fields"] = list(self.successful_fields)
        if self.regenerated_fields:
            payload["regenerated_fields"] = list(self.regenerated_fields)
        if self.quality_passed is not None:
            payload["quality_passed"] = self.quality_passed
        return payload


@dataclass(frozen=True, slots=True)
class RegenerationResult:
    """Final, immutable outcome of ``UnifiedRegenerator.regenerate``.

    ``data`` may be JSON ``null`` on success when the schema allows it; failed
    results always carry ``data=None``.
    """

    success: bool
    metadata: RegenerationMetadata
    data: JSONValue = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success:
            if self.error is not None:
                raise ValueError("a successful result cannot carry an error")
            if self.metadata.layer_used == LAYER_USED_FAILED:
                raise ValueError("a successful result must name the winning layer")
        else:
            if self.data is not None:
                raise ValueError("a failed result cannot carry data")
            if not self.error:
                raise ValueError("a failed result must carry an error")
            if self.metadata.layer_used != LAYER_USED_FAILED:
                raise ValueError("a failed result must report layer_used='failed'")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "success": self.success,
            "metadata": self.metadata.to_dict(),
        }
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
        return payload


__all__ = [
    "Candidate",
    "FieldViolation",
    "JSONScalar",
    "JSONValue",
    "LayerAttempt",
    "LayerConfig",
    "LayerName",
    "LayerStatus",
    "Parsed",
    "PartialFieldResult",
    "QualityValidator",
    "RegenerationMetadata",
    "RegenerationRequest",
    "RegenerationResult",
    "StructureNormalizer",
    "Unparsed",
    "Validated",
    "ValidationOutcome",
    "coerce_layer_name",
    "order_layers",
]
