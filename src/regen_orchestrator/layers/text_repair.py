"""
regen-orchestrator — deterministic JSON text repair

File: src/regen_orchestrator/layers/text_repair.py
Last updated: 2026-10-19

Purpose
- Turn near-JSON generator output into a parsed value without calling a model.

What should be included in this file
- A strict parse used first, so valid JSON is never rewritten.
- Markdown fence stripping, then ``json_repair`` for everything else
  (trailing commas, single quotes, unquoted keys, comments, truncation).

Functional requirements
- Valid JSON parses on the first try and is returned with no repairs recorded.
- Output without any object or array raises ``CandidateSyntaxError``.
- A repaired text that still fails the strict parse raises ``CandidateSyntaxError``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Final

import json_repair

from regen_orchestrator.domain.errors import CandidateSyntaxError
from regen_orchestrator.domain.models import JSONValue

_FENCED_BLOCK_RE: Final[re.Pattern[str]] = re.compile(
    r"```[A-Za-z0-9_+-]*[ \t]*\r?\n?(.*?)```",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class RepairResult:
    """Parsed value plus the final text and the names of the repairs applied."""

    value: JSONValue
    text: str
    repairs: tuple[str, ...] = ()

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or drop an unterminated opening fence."""

    match = _FENCED_BLOCK_RE.search(text)
    if match is not None:
        return match.group(1).strip()
    stripped = text.lstrip()
    if stripped.startswith("```"):
        _, _, remainder = stripped.partition("\n")
        return remainder.strip()
    return text


def parse_json(text: str) -> JSONValue:
    """Strict parse: rejects ``NaN``/``Infinity`` and surrounding garbage."""

    return json.loads(text, parse_constant=_reject_constant)


def repair_json(text: str) -> RepairResult:
    """Parse ``text`` strictly, falling back to fence stripping and ``json_repair``."""

    if not isinstance(text, str):
        raise CandidateSyntaxError(f"candidate must be text, got {type(text).__name__}")
    if not text.strip():
        raise CandidateSyntaxError("failed to parse JSON: empty output")
    try:
        return RepairResult(value=parse_json(text), text=text)
    except ValueError as exc:
        first_error = str(exc)

    applied: list[str] = []
    body = strip_code_fences(text)
    if body != text:
        applied.append("strip_code_fences")
        try:
            return RepairResult(value=parse_json(body), text=body, repairs=tuple(applied))
        except ValueError:
            pass

    if "{" not in body and "[" not in body:
        raise CandidateSyntaxError(
            f"failed to parse JSON: no object or array in output ({first_error})"
        )
    repaired = json_repair.repair_json(body, ensure_ascii=False)
    try:
        value = parse_json(repaired)
    except ValueError as exc:
        raise CandidateSyntaxError(f"failed to parse JSON after repair attempts: {exc}") from exc
    if value == "":
        raise CandidateSyntaxError(
            f"failed to parse JSON after repair attempts: nothing recoverable ({first_error})"
        )
    applied.append("json_repair")
    return RepairResult(value=value, text=repaired, repairs=tuple(applied))


def _reject_constant(name: str) -> JSONValue:
    raise ValueError(f"non-standard JSON constant {name}")


__all__ = ["RepairResult", "parse_json", "repair_json", "strip_code_fences"]
