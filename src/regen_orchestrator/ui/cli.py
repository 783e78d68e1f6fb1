"""Command-line interface router for regen-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from regen_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    redact_config,
)
from regen_orchestrator.constants import DEFAULT_TIER_PHASE
from regen_orchestrator.control_plane import build_regenerator, layer_config_from_config
from regen_orchestrator.domain.errors import CandidateSyntaxError, ConfigurationError
from regen_orchestrator.domain.models import RegenerationRequest, RegenerationResult
from regen_orchestrator.layers.coercion import coerce_candidate
from regen_orchestrator.layers.text_repair import parse_json
from regen_orchestrator.observability.logging import setup_logging, shutdown_logging
from regen_orchestrator.observability.metrics import RegistryMetricsSink
from regen_orchestrator.synthesis_plane.model_tiers import ModelTierRegistry, load_tier_registry
from regen_orchestrator.ui.render import CLIRenderer, create_renderer
from regen_orchestrator.verification_plane import (
    SchemaContract,
    create_quality_validator,
    validate,
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="regen",
        description=(
            "regen-orchestrator: recover schema-valid data from broken LLM output.\n\n"
            "Common workflows:\n"
            "  regen validate -s schema.json out.json    Check output against a schema\n"
            "  regen repair -s schema.json -p PROMPT raw.txt\n"
            "                                            Run the regeneration layers\n"
            "  regen tiers                               Show model escalation chains\n"
            "  regen config                              Show effective (redacted) config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to regenerator TOML config (default: ./regenerator.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Check a JSON file against a schema.",
    )
    validate_parser.add_argument("input_path", help="File holding the candidate JSON text")
    validate_parser.add_argument(
        "--schema", "-s", required=True, help="JSON Schema file (.json, .yaml, .yml)"
    )
    validate_parser.add_argument(
        "--repair",
        action="store_true",
        help="Apply deterministic syntax repair and key normalization before validating.",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # repair --------------------------------------------------------------
    repair_parser = subparsers.add_parser(
        "repair",
        parents=[common],
        help="Run the regeneration layers on a raw generator output.",
    )
    repair_parser.add_argument("input_path", help="File holding the raw generator output")
    repair_parser.add_argument(
        "--schema", "-s", required=True, help="JSON Schema file (.json, .yaml, .yml)"
    )
    prompt_group = repair_parser.add_mutually_exclusive_group(required=True)
    prompt_group.add_argument("--prompt", "-p", default=None, help="Original generation prompt")
    prompt_group.add_argument(
        "--prompt-file", default=None, help="File holding the original generation prompt"
    )
    repair_parser.add_argument(
        "--layers",
        default=None,
        help="Comma-separated layers to enable (default: layers.enabled from config).",
    )
    repair_parser.add_argument(
        "--max-retries", type=int, default=None, help="Per-layer retry budget override."
    )
    repair_parser.add_argument(
        "--allow-warning-fallback",
        action="store_true",
        default=None,
        help="Accept the parseable raw output unvalidated when every layer fails.",
    )
    repair_parser.add_argument(
        "--min-completeness",
        type=float,
        default=None,
        help="Reject results whose share of filled top-level fields is below this value.",
    )
    repair_parser.add_argument("--parse-error", default=None, help="Original parse error text")
    repair_parser.add_argument("--stage", default=None, help="Pipeline stage identifier")
    repair_parser.add_argument("--phase", dest="phase_id", default=None, help="Phase identifier")
    repair_parser.add_argument("--course-id", default=None, help="Course identifier")
    repair_parser.add_argument(
        "--source-model", default=None, help="Model that produced the raw output"
    )
    repair_parser.add_argument("--log-dir", default=None, help="Override observability.log_dir")
    repair_parser.add_argument(
        "--output", "-o", default=None, help="Write recovered data to this file"
    )
    repair_parser.set_defaults(handler=_cmd_repair)

    # tiers ---------------------------------------------------------------
    tiers_parser = subparsers.add_parser(
        "tiers",
        parents=[common],
        help="Show model escalation chains.",
    )
    tiers_parser.add_argument("--phase", dest="phase_id", default=None, help="Show one phase")
    tiers_parser.add_argument(
        "--tiers-file", default=None, help="Tier registry YAML (default: tiers.path or packaged)"
    )
    tiers_parser.set_defaults(handler=_cmd_tiers)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration with secrets redacted.",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    schema = _load_schema(args.schema)
    text = _read_text(args.input_path, "input")

    repairs: tuple[str, ...] = ()
    try:
        if args.repair:
            parsed = coerce_candidate(text, schema)
            value, repairs = parsed.value, parsed.repairs
        else:
            value = parse_json(text)
    except (CandidateSyntaxError, ValueError) as exc:
        detail = exc.detail if isinstance(exc, CandidateSyntaxError) else str(exc)
        payload: dict[str, object] = {
            "command": "validate",
            "valid": False,
            "syntax_error": detail,
            "errors": [],
        }
        if args.json:
            _emit_json(payload)
        else:
            renderer = _get_renderer(args)
            renderer.fail(f"{args.input_path}: not parseable as JSON")
            renderer.text(f"  {detail}")
        return 1

    outcome = validate(value, schema)
    payload = {
        "command": "validate",
        "valid": outcome.valid,
        "repairs": list(repairs),
        "errors": [{"path": item.path, "reason": item.reason} for item in outcome.errors],
    }
    if args.json:
        _emit_json(payload)
        return 0 if outcome.valid else 1

    renderer = _get_renderer(args)
    if outcome.valid:
        renderer.ok(f"{args.input_path} satisfies {schema.name}")
    else:
        renderer.fail(f"{args.input_path}: {outcome.error_count} violation(s)")
        renderer.items([violation.render() for violation in outcome.errors])
    if repairs:
        renderer.kv("Repairs", ", ".join(repairs))
    return 0 if outcome.valid else 1


def _cmd_repair(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.layers is not None:
        overrides["layers.enabled"] = [item.strip() for item in args.layers.split(",") if item]
    if args.max_retries is not None:
        overrides["layers.max_retries"] = args.max_retries
    if args.allow_warning_fallback:
        overrides["layers.allow_warning_fallback"] = True
    if args.log_dir is not None:
        overrides["observability.log_dir"] = str(Path(args.log_dir).expanduser().resolve())
    config = _load_effective_config(args, cli_overrides=overrides)

    schema = _load_schema(args.schema)
    raw_output = _read_text(args.input_path, "input")
    prompt = args.prompt if args.prompt is not None else _read_text(args.prompt_file, "prompt")

    try:
        request = RegenerationRequest(
            raw_output=raw_output,
            original_prompt=prompt,
            schema=schema,
            parse_error=args.parse_error,
            stage=args.stage,
            phase_id=args.phase_id,
            course_id=args.course_id,
            source_model=args.source_model,
        )
    except (TypeError, ValueError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    quality = None
    if args.min_completeness is not None:
        try:
            quality = create_quality_validator(args.min_completeness)
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
    layer_config = layer_config_from_config(config, quality_validator=quality)

    metrics = RegistryMetricsSink()
    run_id = f"regen-{uuid.uuid4().hex[:12]}"
    handle = setup_logging(config["observability"], run_id=run_id)
    try:
        regenerator = build_regenerator(config, metrics_sink=metrics)
        result = asyncio.run(regenerator.regenerate(request, layer_config))
    finally:
        shutdown_logging(handle)

    if result.success and args.output:
        output_path = Path(args.output).expanduser()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(result.data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    if args.json:
        payload: dict[str, object] = {"command": "repair", "run_id": run_id, **result.to_dict()}
        _emit_json(payload)
    else:
        _render_result(_get_renderer(args), result, run_id=run_id, output=args.output)
    return 0 if result.success else 1


def _cmd_tiers(args: argparse.Namespace) -> int:
    tiers_file = args.tiers_file
    if tiers_file is None:
        config = _load_effective_config(args)
        tiers_file = config.get("tiers", {}).get("path")
    registry = _load_tiers(tiers_file)

    phases = registry.phase_names()
    if args.phase_id is not None:
        phases = (args.phase_id.strip().lower(),)

    if args.json:
        payload = registry.to_dict()
        if args.phase_id is not None:
            chains = cast(dict[str, object], payload["phases"])
            fallback = chains.get(DEFAULT_TIER_PHASE, [])
            payload["phases"] = {phases[0]: chains.get(phases[0], fallback)}
        _emit_json({"command": "tiers", **payload})
        return 0

    renderer = _get_renderer(args)
    for phase in phases:
        rows = [
            [
                tier.tier_id,
                tier.binding.provider,
                tier.binding.model,
                str(tier.binding.max_tokens or "-"),
                f"{tier.binding.cost_per_1k_tokens_usd:.5f}",
            ]
            for tier in registry.tiers_for(phase)
        ]
        renderer.table(
            ["tier", "provider", "model", "max_tokens", "usd/1k"], rows, title=f"Phase {phase}:"
        )
    if registry.emergency is not None:
        renderer.section("Emergency fallback:")
        renderer.text(f"  {registry.emergency.provider}/{registry.emergency.label}")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = args.profile.strip() if isinstance(args.profile, str) else None

    if args.json:
        _emit_json({"command": "config", "active_profile": profile, "config": redact_config(config)})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=bool(args.no_color), verbose=bool(args.verbose))


def _render_result(
    renderer: CLIRenderer,
    result: RegenerationResult,
    *,
    run_id: str,
    output: str | None,
) -> None:
    metadata = result.metadata
    if result.success and not metadata.validated:
        renderer.warn(f"accepted unvalidated output via {metadata.layer_used}")
    elif result.success:
        renderer.ok(f"recovered via {metadata.layer_used}")
    else:
        renderer.fail("regeneration failed")
        renderer.text(f"  {result.error}")
    renderer.kv("Run", run_id)
    renderer.kv("Retries", metadata.retry_count)
    renderer.kv("Tokens", metadata.token_cost)
    renderer.kv("Duration (ms)", metadata.duration_ms)
    if metadata.estimated_cost_usd:
        renderer.kv("Estimated cost (USD)", f"{metadata.estimated_cost_usd:.6f}")
    if metadata.regenerated_fields:
        renderer.kv("Regenerated fields", ", ".join(metadata.regenerated_fields))

    rows = [
        [
            attempt.layer.value,
            attempt.status.value,
            str(attempt.retry_count),
            str(attempt.token_cost),
            attempt.failure_kind.value if attempt.failure_kind is not None else "",
        ]
        for attempt in metadata.attempts
    ]
    renderer.table(["layer", "status", "calls", "tokens", "failure"], rows, title="Layers:")
    if renderer.verbose:
        for attempt in metadata.attempts:
            if attempt.message:
                renderer.text(f"  {attempt.layer.value}: {attempt.message}")

    if result.success:
        if output:
            renderer.kv("Wrote", output)
        else:
            renderer.section("Data:")
            renderer.text(json.dumps(result.data, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Helpers: config, files
# ---------------------------------------------------------------------------


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    try:
        return load_config(args.config_path, profile=args.profile, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_schema(path: str) -> SchemaContract:
    try:
        return SchemaContract.from_file(path)
    except ConfigurationError as exc:
        raise CLIError(exc.detail, exit_code=2) from exc


def _load_tiers(path: str | None) -> ModelTierRegistry:
    try:
        return load_tier_registry(path)
    except ConfigurationError as exc:
        raise CLIError(exc.detail, exit_code=2) from exc


def _read_text(path: str, label: str) -> str:
    candidate = Path(path).expanduser()
    try:
        return candidate.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"unable to read {label} file {candidate}: {exc}", exit_code=2) from exc


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
