from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable


class RateGate:
    """Single-file queue enforcing a minimum spacing between request starts.

    Only one caller holds the gate at a time; the next start is delayed until
    ``min_interval_s`` has elapsed since the previous one. Clock and sleep are
    injectable so tests can run on a fake timeline.
    """

    def __init__(
        self,
        min_interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval_s = float(min_interval_s)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    async def _space(self) -> None:
        if self._last_start is not None:
            remaining = self.min_interval_s - (self._clock() - self._last_start)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_start = self._clock()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._lock:
            await self._space()
            yield

    async def cool_down(self, seconds: float) -> None:
        """Pause while holding a slot, then re-arm spacing for the retry."""
        await self._sleep(seconds)
        await self._space()
