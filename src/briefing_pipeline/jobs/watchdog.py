from __future__ import annotations

import time
from dataclasses import dataclass, field

from briefing_pipeline.errors import JobTimeout


@dataclass(slots=True)
class Deadline:
    """
    Whole-job wall-clock ceiling.

    The runner checks it between stages and hands `remaining()` to every external
    call as an upper bound on that call's own timeout.
    """

    timeout_s: float
    started_at: float = field(default_factory=time.monotonic)

    def remaining(self) -> float:
        return max(0.0, float(self.timeout_s) - (time.monotonic() - self.started_at))

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, where: str) -> None:
        if self.expired():
            raise JobTimeout(f"job exceeded its {self.timeout_s:.0f}s ceiling during {where}")

    def cap(self, timeout_s: float) -> float:
        """Clamp a per-call timeout to what is left of the job budget."""
        left = self.remaining()
        if left <= 0.0:
            raise JobTimeout(f"job exceeded its {self.timeout_s:.0f}s ceiling")
        return max(0.001, min(float(timeout_s), left))


def unbounded() -> Deadline:
    return Deadline(timeout_s=float("inf"))
