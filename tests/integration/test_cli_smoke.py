"""
regen-orchestrator — CLI smoke contracts

File: tests/integration/test_cli_smoke.py
Last updated: 2026-10-19

Purpose
- Enforce CLI behavior for `python -m regen_orchestrator` validate/repair/tiers/config.
- Verify exit codes, deterministic JSON output, and per-run log side effects.

What this test file should cover
- `validate` with and without deterministic repair.
- `repair` restricted to the offline auto-repair layer, writing data and JSON-lines logs.
- `tiers` and `config` output, including secret redaction.
- `repair --allow-warning-fallback` and `--min-completeness`.
- Exit-code routing for bad arguments, config errors, and wrapped provider errors.

Functional requirements
- Offline only; no provider SDK or API key is needed.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from regen_orchestrator.config import ConfigLoadError
from regen_orchestrator.domain.errors import GeneratorUnavailableError
from regen_orchestrator.main import ExitCode, classify_exception, cli_entrypoint
from regen_orchestrator.ui.cli import run_cli

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "count": {"type": "integer"},
        "active": {"type": "boolean"},
    },
    "required": ["name", "count", "active"],
    "additionalProperties": False,
}


def _run_module(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("REGEN_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, "-m", "regen_orchestrator", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _write(path: Path, contents: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("REGEN_"):
            monkeypatch.delenv(name)
    _write(tmp_path / "schema.json", json.dumps(_SCHEMA))
    return tmp_path


@pytest.mark.integration
def test_validate_reports_violations_and_repairs(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    broken = _write(workspace / "out.json", '```json\n{"Name": "lamp", "count": "2", "active": true,}\n```')

    assert run_cli(["validate", str(broken), "-s", "schema.json", "--json"]) == 1
    unrepaired = json.loads(capsys.readouterr().out)
    assert unrepaired["valid"] is False
    assert "syntax_error" in unrepaired

    assert run_cli(["validate", str(broken), "-s", "schema.json", "--repair", "--json"]) == 1
    repaired = json.loads(capsys.readouterr().out)
    assert repaired["valid"] is False
    assert "normalize_keys" in repaired["repairs"]
    assert [error["path"] for error in repaired["errors"]] == ["count"]

    fixed = _write(workspace / "ok.json", '{"name": "lamp", "count": 2, "active": true}')
    assert run_cli(["validate", str(fixed), "-s", "schema.json", "--no-color"]) == 0
    assert "OK  " in capsys.readouterr().out


@pytest.mark.integration
def test_repair_with_auto_repair_only_writes_output_and_logs(
    workspace: Path, capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    raw = _write(workspace / "raw.txt", '{"name": "lamp", "count": 2, "active": true,}')

    exit_code = run_cli(
        [
            "repair",
            str(raw),
            "-s",
            "schema.json",
            "-p",
            "Describe a lamp as JSON.",
            "--layers",
            "auto-repair",
            "--stage",
            "inventory",
            "--log-dir",
            str(workspace / "logs"),
            "--output",
            str(workspace / "data.json"),
            "--json",
        ]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["command"] == "repair"
    assert payload["success"] is True
    assert payload["data"] == {"name": "lamp", "count": 2, "active": True}
    assert payload["metadata"]["layer_used"] == "auto-repair"
    assert payload["metadata"]["retry_count"] == 0
    assert json.loads((workspace / "data.json").read_text(encoding="utf-8")) == payload["data"]

    log_path = workspace / "logs" / payload["run_id"] / "regeneration.jsonl"
    events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert {event["run_id"] for event in events} == {payload["run_id"]}
    assert "regeneration_layer_succeeded" in [event["message"] for event in events]
    assert all(event.get("stage") == "inventory" for event in events)


@pytest.mark.integration
def test_repair_failure_exits_one_with_layer_table(
    workspace: Path, capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    raw = _write(workspace / "raw.txt", "I could not produce JSON, sorry.")

    exit_code = run_cli(
        [
            "repair",
            str(raw),
            "-s",
            "schema.json",
            "-p",
            "Describe a lamp.",
            "--layers",
            "auto-repair",
            "--log-dir",
            str(workspace / "logs"),
            "--no-color",
        ]
    )

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "FAIL  regeneration failed" in out
    assert "auto-repair" in out
    assert "syntax_error" in out


@pytest.mark.integration
def test_repair_warning_fallback_flag_accepts_unvalidated_output(
    workspace: Path, capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    raw = _write(workspace / "raw.txt", '{"name": "lamp", "count": "two", "active": true}')
    args = [
        "repair",
        str(raw),
        "-s",
        "schema.json",
        "-p",
        "Describe a lamp.",
        "--layers",
        "auto-repair",
        "--log-dir",
        str(workspace / "logs"),
        "--no-color",
    ]

    assert run_cli(args) == 1
    assert "FAIL  regeneration failed" in capsys.readouterr().out

    assert run_cli([*args, "--allow-warning-fallback"]) == 0
    out = capsys.readouterr().out
    assert "WARN  accepted unvalidated output via warning_fallback" in out
    assert "schema_violation" in out


@pytest.mark.integration
def test_repair_min_completeness_rejects_sparse_output(
    workspace: Path, capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    raw = _write(workspace / "raw.txt", '{"name": "", "count": 0, "active": false}')
    args = [
        "repair",
        str(raw),
        "-s",
        "schema.json",
        "-p",
        "Describe a lamp.",
        "--layers",
        "auto-repair",
        "--log-dir",
        str(workspace / "logs"),
        "--json",
    ]

    assert run_cli([*args, "--min-completeness", "0.6"]) == 0
    assert json.loads(capsys.readouterr().out)["metadata"]["quality_passed"] is True

    assert run_cli([*args, "--min-completeness", "0.9"]) == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["metadata"]["quality_passed"] is False
    assert payload["metadata"]["attempts"][0]["failure_kind"] == "quality_rejected"

    assert run_cli([*args, "--min-completeness", "2"]) == 2


@pytest.mark.integration
def test_tiers_and_config_commands(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["tiers", "--json", "--phase", "unknown_phase"]) == 0
    tiers = json.loads(capsys.readouterr().out)
    assert tiers["command"] == "tiers"
    assert [tier["tier"] for tier in tiers["phases"]["unknown_phase"]] == ["standard", "extended"]

    assert run_cli(["tiers", "--no-color"]) == 0
    text = capsys.readouterr().out
    assert "Phase section_generation:" in text
    assert "Emergency fallback:" in text

    assert run_cli(["config", "--json", "--profile", "offline"]) == 0
    config = json.loads(capsys.readouterr().out)
    assert config["active_profile"] == "offline"
    assert config["config"]["layers"]["enabled"] == ["auto-repair"]
    assert config["config"]["providers"]["openai"]["api_key_env"] == "<redacted>"


@pytest.mark.integration
def test_config_errors_exit_two(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(workspace / "regenerator.toml", "[layers]\nmax_retries = -3\n")

    assert run_cli(["config"]) == 2
    assert "layers.max_retries" in capsys.readouterr().err

    assert run_cli(["validate", "missing.json", "-s", "schema.json"]) == 2
    assert "unable to read input file" in capsys.readouterr().err


@pytest.mark.integration
def test_cli_entrypoint_normalizes_exit_codes(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli_entrypoint(["config", "--json"]) == ExitCode.SUCCESS
    capsys.readouterr()

    assert cli_entrypoint(["no-such-command"]) == ExitCode.CONFIG_ERROR
    assert "invalid choice" in capsys.readouterr().err

    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS


@pytest.mark.integration
def test_exit_code_follows_the_exception_cause_chain() -> None:
    try:
        try:
            raise GeneratorUnavailableError("sdk missing", provider="openai")
        except GeneratorUnavailableError as exc:
            raise RuntimeError("wiring failed") from exc
    except RuntimeError as wrapped:
        assert classify_exception(wrapped) is ExitCode.PROVIDER_ERROR

    assert classify_exception(ConfigLoadError("bad file")) is ExitCode.CONFIG_ERROR
    assert classify_exception(ModuleNotFoundError("x", name="anthropic")) is ExitCode.PROVIDER_ERROR
    assert classify_exception(KeyError("boom")) is ExitCode.INTERNAL_ERROR


@pytest.mark.integration
def test_module_entrypoint_runs_in_subprocess(tmp_path: Path) -> None:
    _write(tmp_path / "schema.json", json.dumps(_SCHEMA))
    _write(tmp_path / "ok.json", '{"name": "lamp", "count": 2, "active": true}')

    completed = _run_module(tmp_path, "validate", "ok.json", "-s", "schema.json", "--json")

    assert completed.returncode == 0, completed.stderr
    assert json.loads(completed.stdout) == {
        "command": "validate",
        "valid": True,
        "repairs": [],
        "errors": [],
    }
