"""Utility exports for concurrency helpers."""

from regen_orchestrator.utils.concurrency import (
    CancellationToken,
    gather_bounded,
    run_with_timeout,
)

__all__ = [
    "CancellationToken",
    "gather_bounded",
    "run_with_timeout",
]
