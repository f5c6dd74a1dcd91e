from __future__ import annotations

import time
from collections.abc import Callable


class RunDeadline:
    """Time budget of one invocation; new work starts only while enough budget remains."""

    def __init__(
        self,
        budget_seconds: float,
        *,
        min_remaining_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = clock() + max(0.0, budget_seconds)
        self.min_remaining_seconds = max(0.0, min_remaining_seconds)
        self.reached = False

    @classmethod
    def from_budget(
        cls,
        run_deadline_seconds: float,
        safety_margin_seconds: float,
        min_remaining_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> RunDeadline:
        return cls(
            run_deadline_seconds - safety_margin_seconds,
            min_remaining_seconds=min_remaining_seconds,
            clock=clock,
        )

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def can_start(self) -> bool:
        if self.remaining() < self.min_remaining_seconds or self.remaining() <= 0.0:
            self.reached = True
            return False
        return True

    def bound(self, timeout_seconds: float) -> float:
        return max(0.0, min(timeout_seconds, self.remaining()))
