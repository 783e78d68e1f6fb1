"""
regen-orchestrator — prompt templates

File: src/regen_orchestrator/synthesis_plane/prompt_templates.py
Last updated: 2026-10-19

Purpose
- Load and render the layer prompt templates shipped under ``synthesis_plane/templates``.

What should be included in this file
- Template rendering rules and the allowed variables per template.
- Prompt versioning and hashing so log lines can identify the exact prompt sent.

Functional requirements
- Must render prompts deterministically for same inputs.
- Must fail loudly on missing or unexpected variables.

Non-functional requirements
- Templates are plain text; no autoescaping of the embedded JSON.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, meta

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

CRITIQUE_REVISE_TEMPLATE: Final[str] = "critique_revise"
PARTIAL_REGEN_TEMPLATE: Final[str] = "partial_regen"
EMERGENCY_TEMPLATE: Final[str] = "emergency"

TEMPLATE_VARIABLES: Final[Mapping[str, frozenset[str]]] = MappingProxyType(
    {
        CRITIQUE_REVISE_TEMPLATE: frozenset(
            {"original_prompt", "broken_output", "error", "schema_json"}
        ),
        PARTIAL_REGEN_TEMPLATE: frozenset(
            {
                "original_prompt",
                "preserved_json",
                "field_errors",
                "field_schemas_json",
                "field_names",
            }
        ),
        EMERGENCY_TEMPLATE: frozenset({"original_prompt", "schema_json"}),
    }
)

_TEMPLATE_NAME_RE = re.compile(r"^[a-z0-9_]+$")
_LAST_UPDATED_RE = re.compile(r"(?im)^.*Last updated:\s*(.+?)\s*(?:-?#\})?\s*$")


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing/extra variables or whitelist violations."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt plus identifying hashes."""

    name: str
    prompt: str
    prompt_hash: str
    template_hash: str
    template_version: str


class PromptTemplateEngine:
    """Deterministic template loader + renderer."""

    def __init__(
        self,
        *,
        template_root: Path | str | None = None,
        allowed_variables: Mapping[str, Collection[str]] | None = None,
    ) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")
        self._template_root = resolved_root
        self._allowed = {
            name: frozenset(names)
            for name, names in (allowed_variables or TEMPLATE_VARIABLES).items()
        }
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._sources: dict[str, str] = {}

    @property
    def template_root(self) -> Path:
        return self._template_root

    def render(self, name: str, **variables: object) -> RenderedPrompt:
        """Render template ``name`` with exactly its whitelisted variables."""

        template_name = _normalize_template_name(name)
        allowed = self._allowed.get(template_name)
        if allowed is None:
            raise PromptTemplateNotFoundError(f"no variable whitelist for template {name!r}")
        source = self._load_source(template_name)

        declared = meta.find_undeclared_variables(self._environment.parse(source))
        unexpected_in_template = sorted(declared - allowed)
        if unexpected_in_template:
            raise PromptTemplateVariableError(
                "template uses variables not allowed by whitelist: "
                + ", ".join(unexpected_in_template)
            )
        unexpected_inputs = sorted(set(variables) - allowed)
        if unexpected_inputs:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected_inputs)
            )
        missing = sorted(declared - set(variables))
        if missing:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing)
            )

        rendered_values = {key: _serialize_variable_value(value) for key, value in variables.items()}
        prompt = _normalize_newlines(self._environment.from_string(source).render(**rendered_values))
        return RenderedPrompt(
            name=template_name,
            prompt=prompt,
            prompt_hash=_sha256(prompt),
            template_hash=_sha256(source),
            template_version=_extract_template_version(source),
        )

    def _load_source(self, template_name: str) -> str:
        cached = self._sources.get(template_name)
        if cached is not None:
            return cached
        path = self._template_root / f"{template_name}.j2"
        if not path.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found: {template_name!r} under {self._template_root}"
            )
        source = _normalize_newlines(path.read_text(encoding="utf-8"))
        self._sources[template_name] = source
        return source


def _default_template_root() -> Path:
    return Path(__file__).resolve().with_name("templates")


def _normalize_template_name(name: str) -> str:
    if not isinstance(name, str):
        raise TypeError("template name must be a string")
    cleaned = name.strip().lower()
    if cleaned.endswith(".j2"):
        cleaned = cleaned[:-3]
    if not _TEMPLATE_NAME_RE.fullmatch(cleaned):
        raise ValueError(f"invalid template name: {name!r}")
    return cleaned


def _serialize_variable_value(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2, sort_keys=True)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _extract_template_version(source: str) -> str:
    match = _LAST_UPDATED_RE.search(source)
    if match is None:
        return "unversioned"
    return match.group(1).strip()


__all__ = [
    "CRITIQUE_REVISE_TEMPLATE",
    "EMERGENCY_TEMPLATE",
    "PARTIAL_REGEN_TEMPLATE",
    "TEMPLATE_VARIABLES",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
]
