"""Plain-text output for the regen CLI.

File: src/regen_orchestrator/ui/render.py
Last updated: 2026-10-19

Purpose
- Status lines, key/value pairs and the per-layer attempt table.
- Respect NO_COLOR and --no-color; colour only when writing to a terminal.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_STATUS_COLOURS: Final[dict[str, str]] = {"OK": "32", "WARN": "33", "FAIL": "31"}


class CLIRenderer:
    """Deterministic line-oriented renderer."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = (
            not no_color
            and not os.environ.get("NO_COLOR")
            and bool(getattr(self._stream, "isatty", lambda: False)())
        )

    def text(self, line: str) -> None:
        print(line, file=self._stream)

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def section(self, title: str) -> None:
        self.text(f"\n{title}")

    def items(self, entries: Sequence[str]) -> None:
        for entry in entries:
            self.text(f"  - {entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Left-aligned columns separated by two spaces; nothing is printed without rows."""

        if not rows:
            return
        widths = [
            max(len(str(cell)) for cell in column)
            for column in zip(headers, *rows, strict=False)
        ]
        if title:
            self.section(title)
        for cells in (headers, ["-" * width for width in widths], *rows):
            line = "  ".join(str(cell).ljust(width) for cell, width in zip(cells, widths))
            self.text(f"  {line.rstrip()}")

    def ok(self, label: str) -> None:
        self._status("OK", label)

    def warn(self, label: str) -> None:
        self._status("WARN", label)

    def fail(self, label: str) -> None:
        self._status("FAIL", label)

    def _status(self, status: str, label: str) -> None:
        line = f"  {status}  {label}"
        if self._color:
            line = f"\033[{_STATUS_COLOURS[status]}m{line}\033[0m"
        self.text(line)


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
