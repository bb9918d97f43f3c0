from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class JobLockError(RuntimeError):
    pass


class JobLock:
    """Non-blocking in-process lock: a second run fails fast instead of queueing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, job_name: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise JobLockError(f"Job '{self.holder}' is already running")
        self.holder = job_name
        try:
            yield
        finally:
            self.holder = None
            self._lock.release()


MONITORING_LOCK = JobLock()
