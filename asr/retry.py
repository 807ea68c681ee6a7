from __future__ import annotations

import random
import time
from typing import Callable, TypeVar

from .errors import Conflict
from .settings import settings

T = TypeVar("T")


class ConflictRetryer:
    """Runs a write, retrying it while the store reports a version conflict.

    The mutation must re-read the object it writes on every call, so each
    attempt applies the change on top of the latest server-side version.
    Anything other than ``Conflict`` propagates on the first occurrence.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay_s: float | None = None,
        factor: float = 1.0,
        jitter: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max(1, int(max_attempts if max_attempts is not None else settings.retry_attempts))
        self.base_delay_s = max(0.0, float(base_delay_s if base_delay_s is not None else settings.retry_base_delay_s))
        if factor < 1.0:
            raise ValueError(f"factor must be >= 1.0, got {factor}")
        self.factor = float(factor)
        self.jitter = max(0.0, float(jitter))
        self._sleep = sleep

    def delays(self) -> list[float]:
        """Un-jittered waits between attempts."""
        return [self.base_delay_s * self.factor**i for i in range(self.max_attempts - 1)]

    def apply(self, mutation: Callable[[], T]) -> T:
        for delay in self.delays():
            try:
                return mutation()
            except Conflict:
                if self.jitter:
                    delay += random.uniform(0, delay * self.jitter)
                self._sleep(delay)
        # Final attempt: its Conflict is the one surfaced.
        return mutation()
