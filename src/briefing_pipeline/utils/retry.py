from __future__ import annotations

import random
import time
from collections.abc import Callable
from contextlib import suppress
from typing import TypeVar

T = TypeVar("T")


def backoff_delay(retry: int, *, base: float, cap: float, jitter: bool) -> float:
    """Wait before retry number `retry` (0-based): base * 2**retry, jittered, never above cap."""
    delay = float(base) * (2 ** max(0, int(retry)))
    if jitter:
        delay *= random.uniform(0.5, 1.5)
    return max(0.0, min(float(cap), delay))


def retry_call(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    base: float = 0.5,
    cap: float = 8.0,
    jitter: bool = True,
    retry_if: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[int, float, BaseException], None] | None = None,
) -> T:
    """
    Call fn() up to `attempts` times in total.

    Exceptions rejected by `retry_if` propagate at once; the last failure propagates
    once attempts run out. `on_retry(attempt, delay, ex)` fires before each wait.
    """
    total = max(1, int(attempts))
    for attempt in range(1, total + 1):
        try:
            return fn()
        except Exception as ex:
            if attempt == total or (retry_if is not None and not retry_if(ex)):
                raise
            delay = backoff_delay(attempt - 1, base=base, cap=cap, jitter=jitter)
            if on_retry is not None:
                # hook errors never abort the retry loop
                with suppress(Exception):
                    on_retry(attempt, delay, ex)
            time.sleep(delay)
    raise AssertionError("unreachable")
