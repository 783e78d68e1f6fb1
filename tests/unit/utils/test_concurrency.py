"""Regression tests for concurrency utility edge cases."""

from __future__ import annotations

import asyncio
import gc
import sys
import warnings
from contextlib import contextmanager
from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest

from regen_orchestrator.utils.concurrency import (
    CancellationToken,
    gather_bounded,
    run_with_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextmanager
def _capture_unraisable() -> Iterator[list[SimpleNamespace]]:
    captured: list[SimpleNamespace] = []
    original = sys.unraisablehook

    def hook(unraisable: object) -> None:
        captured.append(cast_unraisable(unraisable))

    sys.unraisablehook = hook
    try:
        yield captured
    finally:
        sys.unraisablehook = original


def cast_unraisable(unraisable: object) -> SimpleNamespace:
    if isinstance(unraisable, SimpleNamespace):
        return unraisable

    return SimpleNamespace(
        exc_type=getattr(unraisable, "exc_type", None),
        exc_value=getattr(unraisable, "exc_value", None),
        err_msg=getattr(unraisable, "err_msg", None),
        object=getattr(unraisable, "object", None),
    )


async def _slow() -> int:
    await asyncio.sleep(0.01)
    return 1


async def _slower() -> int:
    await asyncio.sleep(0.05)
    return 1


async def test_run_with_timeout_does_not_leak_coroutine_on_early_cancel() -> None:
    token = CancellationToken()
    token.cancel()

    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        coro = _slow()
        with pytest.raises(asyncio.CancelledError):
            await run_with_timeout(coro, 1.0, token)
        del coro
        gc.collect()

    assert leaked == []


async def test_run_with_timeout_timeout_path_does_not_leak_coroutine() -> None:
    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(TimeoutError):
            await run_with_timeout(_slower(), 0.001, None)
        gc.collect()

    assert leaked == []


async def test_run_with_timeout_returns_value_and_rejects_bad_deadline() -> None:
    assert await run_with_timeout(_slow(), 1.0) == 1

    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_with_timeout(_slow(), 0)


async def test_cancellation_token_keeps_first_reason() -> None:
    token = CancellationToken()
    assert token.reason == "operation cancelled"

    token.cancel("first")
    token.cancel("second")

    assert token.is_cancelled
    assert token.reason == "first"
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()


async def test_run_with_timeout_stops_when_token_fires() -> None:
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(asyncio.sleep(1.0), 5.0, token)


async def test_gather_bounded_preserves_order_and_limit() -> None:
    in_flight = 0
    peak = 0

    def make(value: int, delay: float):  # type: ignore[no-untyped-def]
        async def _run() -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(delay)
            in_flight -= 1
            return value

        return _run

    results = await gather_bounded(
        [make(index, 0.02 - index * 0.004) for index in range(5)],
        max_concurrency=2,
    )

    assert results == [0, 1, 2, 3, 4]
    assert peak == 2
    assert in_flight == 0


async def test_gather_bounded_cancels_siblings_on_failure() -> None:
    finished: list[str] = []

    async def boom() -> str:
        raise RuntimeError("boom")

    async def slow() -> str:
        await asyncio.sleep(0.5)
        finished.append("slow")
        return "slow"

    with pytest.raises(RuntimeError, match="boom"):
        await gather_bounded([slow, boom], max_concurrency=2)

    assert finished == []


async def test_gather_bounded_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        await gather_bounded([], max_concurrency=0)
