"""
regen-orchestrator — regeneration error taxonomy

File: src/regen_orchestrator/domain/errors.py
Last updated: 2026-10-19

Purpose
- Typed failures raised inside layers and generator adapters.

What should be included in this file
- One machine-readable ``FailureKind`` per failure family.
- Recoverability classification: recoverable failures move the run to the next layer,
  fatal ones abort ``regenerate`` before any layer runs.

Functional requirements
- Every error carries a normalized single-line detail suitable for logs and prompts.

Non-functional requirements
- No imports from other regen_orchestrator modules.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import ClassVar


class FailureKind(StrEnum):
    """Machine-readable failure classification recorded per attempted layer."""

    SYNTAX_ERROR = "syntax_error"
    SCHEMA_VIOLATION = "schema_violation"
    QUALITY_REJECTED = "quality_rejected"
    GENERATOR_TIMEOUT = "generator_timeout"
    GENERATOR_UNAVAILABLE = "generator_unavailable"
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    NOT_APPLICABLE = "not_applicable"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"


class RegenerationError(RuntimeError):
    """Base class for all regeneration failures."""

    kind: ClassVar[FailureKind]
    recoverable: ClassVar[bool] = True

    def __init__(self, detail: str) -> None:
        self.detail = _normalize_detail(detail)
        super().__init__(self.detail)


class CandidateSyntaxError(RegenerationError):
    """Candidate text could not be parsed as JSON, even after deterministic repair."""

    kind = FailureKind.SYNTAX_ERROR


class SchemaViolationError(RegenerationError):
    """Candidate parsed but violates the target schema."""

    kind = FailureKind.SCHEMA_VIOLATION

    def __init__(self, detail: str, *, violations: Sequence[object] = ()) -> None:
        super().__init__(detail)
        self.violations = tuple(violations)


class QualityRejectedError(RegenerationError):
    """Schema-valid data was rejected by the caller-supplied quality hook."""

    kind = FailureKind.QUALITY_REJECTED


class GeneratorError(RegenerationError):
    """Normalized generator failure with deterministic machine-readable fields."""

    kind = FailureKind.GENERATOR_UNAVAILABLE

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "generator",
        code: str = "unavailable",
        retryable: bool = False,
        http_status: int | None = None,
    ) -> None:
        self.provider = provider.strip() or "generator"
        self.code = code.strip() or "unavailable"
        self.retryable = bool(retryable)
        self.http_status = http_status
        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={_normalize_detail(detail)}")
        super().__init__(" ".join(parts))


class GeneratorTimeoutError(GeneratorError):
    """Generator call exceeded its timeout (retryable at transport level)."""

    kind = FailureKind.GENERATOR_TIMEOUT

    def __init__(self, detail: str, *, provider: str = "generator") -> None:
        super().__init__(detail, provider=provider, code="timeout", retryable=True)


class GeneratorUnavailableError(GeneratorError):
    """Generator SDK, credentials, or service are unavailable."""

    kind = FailureKind.GENERATOR_UNAVAILABLE

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "generator",
        code: str = "unavailable",
        retryable: bool = False,
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            detail,
            provider=provider,
            code=code,
            retryable=retryable,
            http_status=http_status,
        )


class RetryBudgetExhaustedError(RegenerationError):
    """A layer spent its full invocation budget without a valid candidate."""

    kind = FailureKind.RETRY_BUDGET_EXHAUSTED

    def __init__(self, detail: str, *, attempts: int, last_error: str | None = None) -> None:
        if last_error:
            detail = f"{detail}; last error: {last_error}"
        super().__init__(detail)
        self.attempts = attempts
        self.last_error = last_error


class LayerNotApplicableError(RegenerationError):
    """The layer cannot act on the current run state (nothing it could repair)."""

    kind = FailureKind.NOT_APPLICABLE


class RegenerationCancelledError(RegenerationError):
    """The caller cancelled the run while a layer was in flight."""

    kind = FailureKind.CANCELLED
    recoverable = False


class ConfigurationError(RegenerationError, ValueError):
    """Fatal misconfiguration; never retried."""

    kind = FailureKind.CONFIGURATION
    recoverable = False


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


__all__ = [
    "CandidateSyntaxError",
    "ConfigurationError",
    "FailureKind",
    "GeneratorError",
    "GeneratorTimeoutError",
    "GeneratorUnavailableError",
    "LayerNotApplicableError",
    "QualityRejectedError",
    "RegenerationCancelledError",
    "RegenerationError",
    "RetryBudgetExhaustedError",
    "SchemaViolationError",
]
