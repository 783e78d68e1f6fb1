"""
regen-orchestrator — heuristic quality gate

File: src/regen_orchestrator/verification_plane/quality.py
Last updated: 2026-10-19

Purpose
- Build a ready-made ``QualityValidator`` for callers without a semantic checker.

Functional requirements
- Only non-empty objects and arrays pass.
- An object passes when the share of its top-level values that carry content
  reaches the completeness threshold.
"""

from __future__ import annotations

from regen_orchestrator.domain.models import JSONValue, QualityValidator

DEFAULT_COMPLETENESS = 0.85


def create_quality_validator(completeness: float = DEFAULT_COMPLETENESS) -> QualityValidator:
    """Return a synchronous validator enforcing a minimum share of filled fields."""

    threshold = float(completeness)
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"completeness must be in (0, 1], got {completeness!r}")

    def _check(data: JSONValue) -> bool:
        if isinstance(data, list):
            return bool(data)
        if not isinstance(data, dict) or not data:
            return False
        return completeness_of(data) >= threshold

    return _check


def completeness_of(data: dict[str, JSONValue]) -> float:
    """Share of top-level values that carry content; null and empty values do not."""

    if not data:
        return 0.0
    filled = sum(1 for value in data.values() if _has_content(value))
    return filled / len(data)


def _has_content(value: JSONValue) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


__all__ = ["DEFAULT_COMPLETENESS", "completeness_of", "create_quality_validator"]
