"""Process entrypoint for ``regen`` and ``python -m regen_orchestrator``.

Maps every outcome onto the ``ExitCode`` contract: argparse exits pass through,
typed errors anywhere in the exception chain pick the code, and anything else
is an internal error reported with a traceback.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    RECOVERY_FAILED = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


_PROVIDER_SDKS = frozenset({"openai", "anthropic"})


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    try:
        from regen_orchestrator.ui.cli import run_cli

        return _exit_code_for(run_cli(argv))
    except SystemExit as exc:
        return _exit_code_for(exc.code)
    except Exception as exc:  # noqa: BLE001
        code = classify_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return int(code)


def classify_exception(exc: BaseException) -> ExitCode:
    """Exit code for the first recognised error in ``exc``'s cause/context chain."""

    from regen_orchestrator.config import ConfigLoadError, ConfigValidationError
    from regen_orchestrator.domain.errors import ConfigurationError, GeneratorError

    for item in _chain(exc):
        if isinstance(item, (ConfigLoadError, ConfigValidationError, ConfigurationError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, GeneratorError):
            return ExitCode.PROVIDER_ERROR
        if isinstance(item, ModuleNotFoundError) and item.name in _PROVIDER_SDKS:
            return ExitCode.PROVIDER_ERROR
        if isinstance(item, (OSError, ValueError)):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _exit_code_for(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in ExitCode._value2member_map_:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
