"""Retry, pacing and wall-clock budget helpers for the scheduled jobs."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from sds_lifecycle.core.exceptions import TransientExternalError

logger = structlog.get_logger()

T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 2,
    delay_s: float = 0.0,
    label: str = "external_call",
) -> T:
    """Run *operation*, retrying only on TransientExternalError.

    With the default of two attempts a transient failure is retried exactly
    once; the second failure propagates so the caller can defer the item.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except TransientExternalError as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "transient_error_retrying",
                label=label,
                attempt=attempt,
                service=exc.service,
                error=str(exc),
            )
            if delay_s > 0:
                await asyncio.sleep(delay_s)
    raise AssertionError("unreachable")  # pragma: no cover


class RateLimiter:
    """Enforces a minimum spacing between consecutive external calls."""

    def __init__(self, min_interval_s: float) -> None:
        self.min_interval_s = min_interval_s
        self._last_call: float | None = None

    async def wait(self) -> None:
        now = time.monotonic()
        if self._last_call is not None and self.min_interval_s > 0:
            remaining = self.min_interval_s - (now - self._last_call)
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last_call = time.monotonic()


class JobBudget:
    """Wall-clock budget for one job invocation."""

    def __init__(self, budget_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._deadline = clock() + budget_s

    @property
    def exhausted(self) -> bool:
        return self._clock() >= self._deadline

    @property
    def remaining_s(self) -> float:
        return max(0.0, self._deadline - self._clock())


class StopSignal:
    """Cooperative stop request, honoured between tenants."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def request_stop(self) -> None:
        self._event.set()

    @property
    def requested(self) -> bool:
        return self._event.is_set()
