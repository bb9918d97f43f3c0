"""Shared connector contract and the JSON-over-HTTP helper every source uses."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import CanonicalRecord, SearchCriteria


class SourceRequestError(RuntimeError):
    """One request to a source failed (network, non-2xx, or unparsable body)."""


class RateLimited(SourceRequestError):
    pass


@dataclass
class SourceBatch:
    source: str
    records: list[Any] = field(default_factory=list)
    requests_attempted: int = 0
    requests_failed: int = 0
    disabled: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def reachable(self) -> bool:
        if self.disabled or self.requests_attempted == 0:
            return False
        return self.requests_failed < self.requests_attempted

    def record_failure(self, message: str) -> None:
        self.requests_failed += 1
        self.errors.append(message)

    def summary(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "records": len(self.records),
            "requests_attempted": self.requests_attempted,
            "requests_failed": self.requests_failed,
            "disabled": self.disabled,
            "errors": list(self.errors),
        }


class Connector(Protocol):
    name: str
    source_kind: str

    async def search(
        self,
        session: aiohttp.ClientSession,
        criteria: SearchCriteria,
        cancel: CancelToken,
    ) -> SourceBatch:
        ...

    def is_relevant(self, raw: Any) -> bool:
        ...

    def to_canonical(self, raw: Any) -> CanonicalRecord:
        ...


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: list[tuple[str, str]] | None = None,
    headers: dict[str, str] | None = None,
    timeout_s: float = 30.0,
) -> Any:
    """GET ``url`` and decode the body as JSON.

    Every failure surfaces as ``SourceRequestError``; HTTP 429 as its
    ``RateLimited`` subclass so callers can apply a cool-down.
    """
    timeout = aiohttp.ClientTimeout(total=timeout_s)
    try:
        async with session.get(url, params=params, headers=headers, timeout=timeout) as resp:
            if resp.status == 429:
                raise RateLimited("http_status_429")
            if resp.status >= 400:
                raise SourceRequestError(f"http_status_{resp.status}")
            return await resp.json(content_type=None)
    except SourceRequestError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise SourceRequestError(str(e) or type(e).__name__) from e
