"""Thread-safe regeneration metrics: in-memory registry plus the per-run metrics sink."""

from __future__ import annotations

import json
import math
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MetricLabels = tuple[tuple[str, str], ...]

_METRIC_NAME_MAX_LEN: Final[int] = 128
_LABEL_KEY_MAX_LEN: Final[int] = 128
_LABEL_VALUE_MAX_LEN: Final[int] = 256

RUNS_TOTAL: Final[str] = "regeneration_runs_total"
TOKENS_TOTAL: Final[str] = "regeneration_tokens_total"
DURATION_MS: Final[str] = "regeneration_duration_ms"
RETRY_COUNT: Final[str] = "regeneration_retry_count"


@dataclass(frozen=True, order=True, slots=True)
class _MetricKey:
    name: str
    labels: _MetricLabels


@dataclass(slots=True)
class _DistributionState:
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None
    last: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.last = value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def as_dict(self) -> dict[str, JSONValue]:
        avg = self.total / self.count if self.count else 0.0
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": avg,
            "last": self.last,
        }


class MetricsRegistry:
    """In-memory counters, gauges, and distributions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._created_at = datetime.now(tz=UTC)
        self._counters: dict[_MetricKey, float] = {}
        self._gauges: dict[_MetricKey, float] = {}
        self._distributions: dict[_MetricKey, _DistributionState] = {}

    def inc(
        self,
        name: str,
        amount: float = 1.0,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        """Increment a counter by ``amount`` (>= 0)."""

        delta = _as_finite_float(amount, path="amount")
        if delta < 0:
            raise ValueError("counter increment amount must be >= 0")
        key = _metric_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + delta

    def set_gauge(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        key = _metric_key(name, labels)
        gauge_value = _as_finite_float(value, path="value")
        with self._lock:
            self._gauges[key] = gauge_value

    def observe(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        """Record one sample for distribution statistics."""

        key = _metric_key(name, labels)
        sample = _as_finite_float(value, path="value")
        with self._lock:
            state = self._distributions.get(key)
            if state is None:
                state = _DistributionState()
                self._distributions[key] = state
            state.observe(sample)

    def get_counter(self, name: str, *, labels: Mapping[str, str] | None = None) -> float:
        key = _metric_key(name, labels)
        with self._lock:
            return self._counters.get(key, 0.0)

    def get_gauge(self, name: str, *, labels: Mapping[str, str] | None = None) -> float | None:
        key = _metric_key(name, labels)
        with self._lock:
            return self._gauges.get(key)

    def get_distribution(
        self,
        name: str,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> dict[str, JSONValue] | None:
        key = _metric_key(name, labels)
        with self._lock:
            state = self._distributions.get(key)
            if state is None:
                return None
            return dict(state.as_dict())

    def snapshot(self) -> dict[str, JSONValue]:
        """Return a snapshot with stable key ordering."""

        with self._lock:
            created_at = self._created_at
            counters = tuple(sorted(self._counters.items()))
            gauges = tuple(sorted(self._gauges.items()))
            distributions = tuple(sorted(self._distributions.items()))

        now = datetime.now(tz=UTC)
        return {
            "metadata": {
                "created_at": created_at.isoformat(timespec="seconds").replace("+00:00", "Z"),
                "snapshot_at": now.isoformat(timespec="seconds").replace("+00:00", "Z"),
                "uptime_seconds": max(0.0, (now - created_at).total_seconds()),
            },
            "counters": {_metric_identifier(key): value for key, value in counters},
            "gauges": {_metric_identifier(key): value for key, value in gauges},
            "distributions": {
                _metric_identifier(key): state.as_dict() for key, state in distributions
            },
        }

    def to_json(self, *, indent: int | None = None) -> str:
        payload = self.snapshot()
        if indent is None:
            return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(payload, sort_keys=True, indent=indent, ensure_ascii=False)

    def export_json(self, path: str | Path, *, indent: int = 2) -> Path:
        """Write snapshot JSON to ``path`` and return it."""

        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.to_json(indent=indent), encoding="utf-8")
        return output_path


@runtime_checkable
class MetricsSink(Protocol):
    """Receives one record per regeneration run."""

    def record(
        self,
        *,
        stage: str | None,
        phase: str | None,
        layer: str,
        token_cost: int,
        duration_ms: int,
        retry_count: int,
    ) -> None: ...


@dataclass(frozen=True, slots=True)
class RegenerationMetricRecord:
    stage: str | None
    phase: str | None
    layer: str
    token_cost: int
    duration_ms: int
    retry_count: int

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "stage": self.stage,
            "phase": self.phase,
            "layer": self.layer,
            "token_cost": self.token_cost,
            "duration_ms": self.duration_ms,
            "retry_count": self.retry_count,
        }


class RegistryMetricsSink:
    """Append-only event log that also feeds a ``MetricsRegistry``."""

    def __init__(self, registry: MetricsRegistry | None = None) -> None:
        self._registry = registry if registry is not None else MetricsRegistry()
        self._lock = threading.Lock()
        self._events: list[RegenerationMetricRecord] = []

    @property
    def registry(self) -> MetricsRegistry:
        return self._registry

    def record(
        self,
        *,
        stage: str | None,
        phase: str | None,
        layer: str,
        token_cost: int,
        duration_ms: int,
        retry_count: int,
    ) -> None:
        event = RegenerationMetricRecord(
            stage=stage,
            phase=phase,
            layer=layer,
            token_cost=token_cost,
            duration_ms=duration_ms,
            retry_count=retry_count,
        )
        labels = {"layer": layer, "stage": stage or "unknown"}
        with self._lock:
            self._events.append(event)
        self._registry.inc(RUNS_TOTAL, labels=labels)
        self._registry.inc(TOKENS_TOTAL, token_cost, labels=labels)
        self._registry.observe(DURATION_MS, duration_ms, labels=labels)
        self._registry.observe(RETRY_COUNT, retry_count, labels=labels)

    def events(self) -> tuple[RegenerationMetricRecord, ...]:
        with self._lock:
            return tuple(self._events)


def _metric_key(name: str, labels: Mapping[str, str] | None) -> _MetricKey:
    return _MetricKey(name=_validate_metric_name(name), labels=_normalize_labels(labels))


def _metric_identifier(key: _MetricKey) -> str:
    if not key.labels:
        return key.name
    labels = ",".join(f"{k}={v}" for k, v in key.labels)
    return f"{key.name}{{{labels}}}"


def _validate_metric_name(name: str) -> str:
    if not isinstance(name, str):
        raise ValueError(f"metric name must be a string, got {type(name).__name__}")
    normalized = name.strip()
    if not normalized:
        raise ValueError("metric name must not be empty")
    if len(normalized) > _METRIC_NAME_MAX_LEN:
        raise ValueError(f"metric name must be <= {_METRIC_NAME_MAX_LEN} characters")
    return normalized


def _normalize_labels(labels: Mapping[str, str] | None) -> _MetricLabels:
    if labels is None:
        return ()
    out: list[tuple[str, str]] = []
    for key, value in labels.items():
        if not isinstance(key, str):
            raise ValueError(f"label key must be a string, got {type(key).__name__}")
        if not isinstance(value, str):
            raise ValueError(f"label value for {key!r} must be a string")
        key_name = key.strip()
        val_name = value.strip()
        if not key_name:
            raise ValueError("label key must not be empty")
        if not val_name:
            raise ValueError(f"label value for {key!r} must not be empty")
        if len(key_name) > _LABEL_KEY_MAX_LEN:
            raise ValueError(f"label key {key!r} exceeds {_LABEL_KEY_MAX_LEN} characters")
        if len(val_name) > _LABEL_VALUE_MAX_LEN:
            raise ValueError(f"label value for {key!r} exceeds {_LABEL_VALUE_MAX_LEN} characters")
        out.append((key_name, val_name))
    out.sort(key=lambda item: item[0])
    return tuple(out)


def _as_finite_float(value: float, *, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{path} must be numeric, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        raise ValueError(f"{path} must be finite")
    return parsed


__all__ = [
    "DURATION_MS",
    "RETRY_COUNT",
    "RUNS_TOTAL",
    "TOKENS_TOTAL",
    "MetricsRegistry",
    "MetricsSink",
    "RegenerationMetricRecord",
    "RegistryMetricsSink",
]
