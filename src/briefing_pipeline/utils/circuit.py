from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum

from briefing_pipeline.ops.metrics import breaker_state


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_GAUGE_VALUE = {BreakerState.CLOSED: 0, BreakerState.HALF_OPEN: 1, BreakerState.OPEN: 2}


@dataclass(frozen=True, slots=True)
class CircuitState:
    state: str
    failures: int
    retry_after_s: float
    last_error: str


class Circuit:
    """
    Per-model breaker shared by every job in the process.

    `threshold` consecutive transient failures open it; after `cooldown_s` exactly one
    trial call is let through. Content failures never count: the service did answer.
    """

    _registry: dict[str, Circuit] = {}
    _reg_lock = threading.Lock()

    def __init__(self, name: str, *, threshold: int = 5, cooldown_s: float = 60.0) -> None:
        self.name = str(name)
        self.threshold = max(1, int(threshold))
        self.cooldown_s = max(0.0, float(cooldown_s))
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_out = False
        self._last_error = ""

    @classmethod
    def get(cls, name: str, *, threshold: int = 5, cooldown_s: float = 60.0) -> Circuit:
        """Registry lookup; settings passed after the first call for `name` are ignored."""
        with cls._reg_lock:
            if name not in cls._registry:
                cls._registry[name] = cls(name, threshold=threshold, cooldown_s=cooldown_s)
            return cls._registry[name]

    @classmethod
    def reset_all(cls) -> None:
        with cls._reg_lock:
            cls._registry.clear()

    def _move(self, state: BreakerState) -> None:
        self._state = state
        if state is BreakerState.OPEN:
            self._opened_at = time.monotonic()
        self._trial_out = False
        breaker_state.labels(name=self.name).set(_GAUGE_VALUE[state])

    def _retry_after(self) -> float:
        if self._state is not BreakerState.OPEN:
            return 0.0
        return max(0.0, self.cooldown_s - (time.monotonic() - self._opened_at))

    def snapshot(self) -> CircuitState:
        with self._lock:
            return CircuitState(
                state=self._state.value,
                failures=self._failures,
                retry_after_s=self._retry_after(),
                last_error=self._last_error,
            )

    def allow(self) -> bool:
        with self._lock:
            if self._state is BreakerState.OPEN and self._retry_after() <= 0.0:
                self._move(BreakerState.HALF_OPEN)
            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.HALF_OPEN and not self._trial_out:
                self._trial_out = True
                return True
            return False

    def mark_success(self) -> None:
        with self._lock:
            self._failures = 0
            if self._state is not BreakerState.CLOSED:
                self._move(BreakerState.CLOSED)

    def mark_failure(self, reason: str = "") -> None:
        with self._lock:
            self._failures += 1
            self._last_error = str(reason)[:200]
            if self._state is BreakerState.HALF_OPEN or self._failures >= self.threshold:
                self._move(BreakerState.OPEN)
