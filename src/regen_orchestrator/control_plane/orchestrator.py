"""
regen-orchestrator — unified regeneration state machine

File: src/regen_orchestrator/control_plane/orchestrator.py
Last updated: 2026-10-19

Purpose
- Drive one broken generator output through the enabled regeneration layers until a
  schema-valid, quality-approved value is produced or every layer has failed.

What should be included in this file
- ``UnifiedRegenerator`` with ``regenerate`` (one request) and ``regenerate_many``
  (independent requests under a concurrency bound).
- Quality gate, cancellation handling, telemetry accumulation, metrics sink emission.

Functional requirements
- Layers run in declaration order, filtered by ``LayerConfig.enabled_layers``; none runs twice.
- Recoverable failures never raise: the result reports ``success=False`` with an
  aggregate error naming every attempted layer's failure kind.
- Missing generators or bindings for an enabled layer raise ``ConfigurationError``
  before any layer runs.
- Metrics sink failures are logged and never change the result.
- With ``allow_warning_fallback`` an exhausted, uncancelled run accepts the parseable
  raw output unvalidated (``layer_used="warning_fallback"``).

Non-functional requirements
- The model tier registry is injected; nothing here loads global configuration.
- No lock is held across an await; runs share only the metrics sink.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from regen_orchestrator.constants import (
    DEFAULT_MAX_CONCURRENCY,
    LAYER_USED_FAILED,
    LAYER_USED_WARNING_FALLBACK,
)
from regen_orchestrator.domain.errors import (
    CandidateSyntaxError,
    ConfigurationError,
    QualityRejectedError,
    RegenerationCancelledError,
    RegenerationError,
)
from regen_orchestrator.domain.models import (
    JSONValue,
    LayerAttempt,
    LayerConfig,
    LayerName,
    LayerStatus,
    RegenerationMetadata,
    RegenerationRequest,
    RegenerationResult,
)
from regen_orchestrator.layers.base import (
    LayerContext,
    LayerOutcome,
    RegenerationLayer,
    dump_candidate,
)
from regen_orchestrator.layers.critique_revise import CritiqueReviseLayer
from regen_orchestrator.layers.emergency import EmergencyLayer
from regen_orchestrator.layers.model_escalation import ModelEscalationLayer
from regen_orchestrator.layers.partial_regen import PartialRegenLayer
from regen_orchestrator.layers.syntax_repair import SyntaxRepairLayer
from regen_orchestrator.layers.text_repair import repair_json
from regen_orchestrator.observability.logging import correlation_scope
from regen_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from regen_orchestrator.synthesis_plane.providers.base import exception_detail
from regen_orchestrator.utils.concurrency import CancellationToken, gather_bounded

if TYPE_CHECKING:
    from regen_orchestrator.domain.models import QualityValidator
    from regen_orchestrator.observability.metrics import MetricsSink
    from regen_orchestrator.synthesis_plane.model_tiers import ModelBinding, ModelTierRegistry
    from regen_orchestrator.synthesis_plane.providers.base import GeneratorProtocol

RegenerationJob = RegenerationRequest | tuple[RegenerationRequest, LayerConfig | None]


class UnifiedRegenerator:
    """Layered recovery of schema-valid data from unreliable generator output."""

    def __init__(
        self,
        *,
        generator: GeneratorProtocol | None = None,
        primary_model: ModelBinding | None = None,
        tier_registry: ModelTierRegistry | None = None,
        fallback_generator: GeneratorProtocol | None = None,
        fallback_model: ModelBinding | None = None,
        generators_by_provider: Mapping[str, GeneratorProtocol] | None = None,
        metrics_sink: MetricsSink | None = None,
        prompt_engine: PromptTemplateEngine | None = None,
        default_config: LayerConfig | None = None,
        logger: Any | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._generator = generator
        self._primary_model = primary_model
        self._tier_registry = tier_registry
        self._fallback_generator = fallback_generator
        self._fallback_model = fallback_model
        self._generators_by_provider = dict(generators_by_provider or {})
        self._metrics_sink = metrics_sink
        self._prompt_engine = prompt_engine if prompt_engine is not None else PromptTemplateEngine()
        self._default_config = default_config if default_config is not None else LayerConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock
        self._layers: dict[LayerName, RegenerationLayer] = {}

    @property
    def default_config(self) -> LayerConfig:
        return self._default_config

    @property
    def tier_registry(self) -> ModelTierRegistry | None:
        return self._tier_registry

    def layers_for(self, config: LayerConfig | None = None) -> tuple[RegenerationLayer, ...]:
        """Layers that ``config`` would run, in order.

        Raises ``ConfigurationError`` when an enabled layer lacks its generator or binding.
        """

        cfg = config if config is not None else self._default_config
        return tuple(self._layer(name) for name in cfg.attempt_order())

    async def regenerate(
        self,
        request: RegenerationRequest,
        config: LayerConfig | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> RegenerationResult:
        cfg = config if config is not None else self._default_config
        layers = self.layers_for(cfg)
        token = cancel_token if cancel_token is not None else CancellationToken()

        with correlation_scope(**request.correlation()):
            result = await self._run(request, cfg, layers, token)
            if cfg.metrics_tracking:
                self._emit_metrics(request, result.metadata)
        return result

    async def regenerate_many(
        self,
        jobs: Sequence[RegenerationJob],
        *,
        config: LayerConfig | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        cancel_token: CancellationToken | None = None,
    ) -> list[RegenerationResult]:
        """Regenerate independent requests concurrently; results keep input order."""

        if max_concurrency <= 0:
            raise ConfigurationError("max_concurrency must be > 0")
        planned: list[tuple[RegenerationRequest, LayerConfig]] = []
        for job in jobs:
            if isinstance(job, tuple):
                request, job_config = job
            else:
                request, job_config = job, None
            effective = job_config or config or self._default_config
            self.layers_for(effective)
            planned.append((request, effective))

        factories = [
            (lambda req=req, cfg=cfg: self.regenerate(req, cfg, cancel_token=cancel_token))
            for req, cfg in planned
        ]
        return await gather_bounded(factories, max_concurrency=max_concurrency)

    async def _run(
        self,
        request: RegenerationRequest,
        config: LayerConfig,
        layers: Sequence[RegenerationLayer],
        token: CancellationToken,
    ) -> RegenerationResult:
        context = LayerContext(
            request=request,
            config=config,
            cancel_token=token,
            prompt_engine=self._prompt_engine,
            logger=self._logger,
        )
        attempts: list[LayerAttempt] = []
        winner: LayerOutcome | None = None
        quality_passed: bool | None = None
        cancelled = False

        for layer in layers:
            if token.is_cancelled:
                cancelled = True
                break
            telemetry = context.begin_layer()
            started = self._clock()
            failure: RegenerationError | None = None
            outcome: LayerOutcome | None = None
            with correlation_scope(layer=layer.name.value):
                self._logger.info("regeneration_layer_started", layer=layer.name.value)
                try:
                    outcome = await layer.attempt(context)
                    if config.quality_validator is not None:
                        quality_passed = await self._passes_quality(
                            config.quality_validator, outcome.data
                        )
                        if not quality_passed:
                            context.note_failure(
                                dump_candidate(outcome.data), "quality validator rejected the output"
                            )
                            raise QualityRejectedError(
                                f"quality validator rejected {layer.name.value} output"
                            )
                except RegenerationCancelledError as exc:
                    failure = exc
                except asyncio.CancelledError:
                    if not token.is_cancelled:
                        raise
                    failure = RegenerationCancelledError(token.reason)
                except ConfigurationError:
                    raise
                except RegenerationError as exc:
                    failure = exc

                elapsed_ms = max(0, int(round((self._clock() - started) * 1000)))
                if failure is None:
                    status = LayerStatus.SUCCEEDED
                elif failure.kind is RegenerationCancelledError.kind:
                    status = LayerStatus.CANCELLED
                else:
                    status = LayerStatus.FAILED
                attempt = LayerAttempt(
                    layer=layer.name,
                    status=status,
                    retry_count=telemetry.retry_count,
                    token_cost=telemetry.token_cost,
                    duration_ms=elapsed_ms,
                    models_used=tuple(telemetry.models_used),
                    estimated_cost_usd=telemetry.cost_usd,
                    failure_kind=None if failure is None else failure.kind,
                    message=None if failure is None else failure.detail,
                )
                attempts.append(attempt)

                if failure is None:
                    self._logger.info(
                        "regeneration_layer_succeeded",
                        layer=layer.name.value,
                        retry_count=attempt.retry_count,
                        token_cost=attempt.token_cost,
                        duration_ms=attempt.duration_ms,
                    )
                    winner = outcome
                    break
                self._logger.warning(
                    "regeneration_layer_failed",
                    layer=layer.name.value,
                    kind=failure.kind.value,
                    error=failure.detail,
                    retry_count=attempt.retry_count,
                    token_cost=attempt.token_cost,
                )
                if status is LayerStatus.CANCELLED:
                    cancelled = True
                    break

        if winner is not None:
            partial = winner.partial
            metadata = RegenerationMetadata.from_attempts(
                attempts,
                layer_used=winner.layer.value,
                successful_fields=partial.successful_fields if partial is not None else (),
                regenerated_fields=partial.regenerated_fields if partial is not None else (),
                quality_passed=quality_passed,
            )
            return RegenerationResult(success=True, metadata=metadata, data=winner.data)

        if config.allow_warning_fallback and not cancelled:
            fallback = self._warning_fallback(request, attempts, quality_passed)
            if fallback is not None:
                return fallback

        metadata = RegenerationMetadata.from_attempts(
            attempts,
            layer_used=LAYER_USED_FAILED,
            quality_passed=quality_passed,
            cancelled=cancelled,
        )
        error = _aggregate_error(attempts, cancelled=cancelled, reason=token.reason)
        self._logger.warning(
            "regeneration_failed",
            error=error,
            retry_count=metadata.retry_count,
            token_cost=metadata.token_cost,
            cancelled=cancelled,
        )
        return RegenerationResult(success=False, metadata=metadata, error=error)

    def _warning_fallback(
        self,
        request: RegenerationRequest,
        attempts: Sequence[LayerAttempt],
        quality_passed: bool | None,
    ) -> RegenerationResult | None:
        try:
            repaired = repair_json(request.raw_output)
        except CandidateSyntaxError as exc:
            self._logger.error("regeneration_warning_fallback_unparseable", error=exc.detail)
            return None
        metadata = RegenerationMetadata.from_attempts(
            attempts,
            layer_used=LAYER_USED_WARNING_FALLBACK,
            quality_passed=quality_passed,
        )
        self._logger.warning(
            "regeneration_warning_fallback_accepted",
            attempted_layers=[attempt.layer.value for attempt in attempts],
            repairs=list(repaired.repairs),
        )
        return RegenerationResult(success=True, metadata=metadata, data=repaired.value)

    async def _passes_quality(self, validator: QualityValidator, data: JSONValue) -> bool:
        try:
            verdict = validator(data)
            if inspect.isawaitable(verdict):
                verdict = await verdict
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("regeneration_quality_hook_failed", error=exception_detail(exc))
            return False
        return bool(verdict)

    def _emit_metrics(self, request: RegenerationRequest, metadata: RegenerationMetadata) -> None:
        if self._metrics_sink is None:
            return
        try:
            self._metrics_sink.record(
                stage=request.stage,
                phase=request.phase_id,
                layer=metadata.layer_used,
                token_cost=metadata.token_cost,
                duration_ms=metadata.duration_ms,
                retry_count=metadata.retry_count,
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("regeneration_metrics_sink_failed", error=exception_detail(exc))

    def _layer(self, name: LayerName) -> RegenerationLayer:
        cached = self._layers.get(name)
        if cached is None:
            cached = self._build_layer(name)
            self._layers[name] = cached
        return cached

    def _build_layer(self, name: LayerName) -> RegenerationLayer:
        if name is LayerName.AUTO_REPAIR:
            return SyntaxRepairLayer()
        if name is LayerName.EMERGENCY:
            if self._fallback_generator is None or self._fallback_model is None:
                raise ConfigurationError(
                    "layer 'emergency' requires fallback_generator and fallback_model"
                )
            return EmergencyLayer(self._fallback_generator, self._fallback_model)

        if self._generator is None:
            raise ConfigurationError(f"layer {name.value!r} requires a generator")
        if name is LayerName.MODEL_ESCALATION:
            if self._tier_registry is None:
                raise ConfigurationError("layer 'model-escalation' requires a tier_registry")
            return ModelEscalationLayer(
                self._generator,
                self._tier_registry,
                generators_by_provider=self._generators_by_provider,
            )
        if self._primary_model is None:
            raise ConfigurationError(f"layer {name.value!r} requires a primary_model binding")
        if name is LayerName.CRITIQUE_REVISE:
            return CritiqueReviseLayer(self._generator, self._primary_model)
        return PartialRegenLayer(self._generator, self._primary_model)


def _aggregate_error(
    attempts: Sequence[LayerAttempt],
    *,
    cancelled: bool,
    reason: str,
) -> str:
    if not attempts:
        if cancelled:
            return f"regeneration cancelled before any layer ran: {reason}"
        return "no regeneration layers enabled"
    kinds = "; ".join(
        f"{attempt.layer.value}={attempt.failure_kind.value}"
        for attempt in attempts
        if attempt.failure_kind is not None
    )
    headline = "regeneration cancelled" if cancelled else "all regeneration layers exhausted"
    last = attempts[-1].message
    if last:
        return f"{headline}: {kinds}; last error: {last}"
    return f"{headline}: {kinds}"


__all__ = ["RegenerationJob", "UnifiedRegenerator"]
