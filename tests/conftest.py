"""Shared fixtures: schemas, tier registries, and scripted generators."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

from regen_orchestrator.domain.models import LayerConfig, RegenerationRequest
from regen_orchestrator.layers.base import LayerContext
from regen_orchestrator.synthesis_plane.model_tiers import (
    ModelBinding,
    ModelTier,
    ModelTierRegistry,
)
from regen_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from regen_orchestrator.utils.concurrency import CancellationToken
from regen_orchestrator.verification_plane import SchemaContract

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def reset_structlog() -> Iterator[None]:
    """Restore structlog defaults after a test that configures logging."""

    yield
    structlog.reset_defaults()


@pytest.fixture
def item_schema() -> SchemaContract:
    return SchemaContract.from_mapping(
        {
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "count": {"type": "integer", "minimum": 0},
                "active": {"type": "boolean"},
            },
            "required": ["name", "count", "active"],
            "additionalProperties": False,
        },
        name="item",
    )


@pytest.fixture
def course_schema() -> SchemaContract:
    return SchemaContract.from_mapping(
        {
            "type": "object",
            "properties": {
                "course_title": {"type": "string"},
                "modules": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string"},
                            "hours": {"type": "number", "minimum": 0},
                        },
                        "required": ["title", "hours"],
                    },
                },
                "summary": {"type": "string", "maxLength": 80},
            },
            "required": ["course_title", "modules", "summary"],
        },
        name="course",
    )


@pytest.fixture
def primary_binding() -> ModelBinding:
    return ModelBinding(
        provider="scripted",
        model="scripted/primary",
        max_tokens=1024,
        cost_per_1k_tokens_usd=0.5,
    )


@pytest.fixture
def fallback_binding() -> ModelBinding:
    return ModelBinding(provider="fallback", model="fallback/emergency", max_tokens=2048)


@pytest.fixture
def tier_registry() -> ModelTierRegistry:
    return ModelTierRegistry(
        phases={
            "default": (
                ModelTier("standard", ModelBinding(provider="scripted", model="scripted/small")),
                ModelTier("extended", ModelBinding(provider="scripted", model="scripted/medium")),
                ModelTier("overflow", ModelBinding(provider="scripted", model="scripted/large")),
            ),
            "section_generation": (
                ModelTier("standard", ModelBinding(provider="scripted", model="scripted/medium")),
                ModelTier("overflow", ModelBinding(provider="scripted", model="scripted/large")),
            ),
        },
        emergency=ModelBinding(provider="fallback", model="fallback/emergency"),
    )


@pytest.fixture
def prompt_engine() -> PromptTemplateEngine:
    return PromptTemplateEngine()


@pytest.fixture
def make_context(
    item_schema: SchemaContract, prompt_engine: PromptTemplateEngine
) -> Callable[..., LayerContext]:
    """Build a fresh ``LayerContext`` for one layer under test."""

    def _make(
        raw_output: str,
        *,
        schema: SchemaContract | None = None,
        config: LayerConfig | None = None,
        cancel_token: CancellationToken | None = None,
        **request_fields: str | None,
    ) -> LayerContext:
        request = RegenerationRequest(
            raw_output=raw_output,
            original_prompt="Generate an inventory item as JSON.",
            schema=schema if schema is not None else item_schema,
            **request_fields,
        )
        context = LayerContext(
            request=request,
            config=config if config is not None else LayerConfig(),
            cancel_token=cancel_token if cancel_token is not None else CancellationToken(),
            prompt_engine=prompt_engine,
        )
        context.begin_layer()
        return context

    return _make
