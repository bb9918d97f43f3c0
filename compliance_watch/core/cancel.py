"""Cooperative cancellation for one monitoring run."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class CancelToken:
    deadline: float | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _cancelled: bool = field(default=False, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float | None, *, clock: Callable[[], float] = time.monotonic) -> "CancelToken":
        if seconds is None:
            return cls(clock=clock)
        return cls(deadline=clock() + float(seconds), clock=clock)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self.deadline is not None and self.clock() >= self.deadline:
            self._cancelled = True
        return self._cancelled
