"""Stage 1b: state bills from the Open States / Plural Policy API (v3).

The API allows roughly one request per second, so every request is
serialized through a single ``RateGate``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import aiohttp

from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import (
    FEDERAL_JURISDICTION,
    SOURCE_STATE_BILL,
    CanonicalRecord,
    SearchCriteria,
)
from compliance_watch.normalize.normalize import normalize_open_states_bill
from compliance_watch.sources.base import RateLimited, SourceBatch, SourceRequestError, fetch_json
from compliance_watch.sources.payloads import OpenStatesBill
from compliance_watch.sources.rate_gate import RateGate
from compliance_watch.utils.logging import log, warn
from compliance_watch.utils.text import combined_lower, matches_any

BASE_URL = "https://v3.openstates.org"

STATE_JURISDICTION_MAP = {
    code: f"ocd-jurisdiction/country:us/state:{code.lower()}/government"
    for code in ("UT", "TX", "ND", "SD", "NC", "OH", "MI", "ID", "WY", "CA", "VA", "NV", "AZ", "FL")
}

LANDLORD_TENANT_SEARCH_TERMS = [
    "landlord tenant",
    "rental property",
    "eviction",
    "lease agreement",
    "security deposit",
    "tenant rights",
    "housing rental",
    "residential lease",
]

RELEVANT_TERMS = [
    "housing",
    "landlord",
    "tenant",
    "rental",
    "eviction",
    "lease",
    "property",
    "security deposit",
    "fair housing",
    "residential",
]

INCLUDE = ["abstracts", "actions", "sources", "versions"]


@dataclass
class OpenStatesConnector:
    api_key: str | None = None
    search_terms: list[str] = field(default_factory=lambda: list(LANDLORD_TENANT_SEARCH_TERMS))
    per_page: int = 20
    max_pages: int = 1
    min_interval_s: float = 1.1
    cooldown_s: float = 60.0
    timeout_s: float = 30.0
    gate: RateGate | None = None
    base_url: str = BASE_URL
    name: str = "open_states"
    source_kind: str = SOURCE_STATE_BILL

    def __post_init__(self) -> None:
        self._gate = self.gate if self.gate is not None else RateGate(self.min_interval_s)

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "X-API-KEY": self.api_key or ""}

    def _params(self, jurisdiction: str, term: str, session_year: int, page: int) -> list[tuple[str, str]]:
        params = [
            ("jurisdiction", jurisdiction),
            ("q", term),
            ("session", str(session_year)),
            ("per_page", str(self.per_page)),
            ("page", str(page)),
        ]
        params += [("include", inc) for inc in INCLUDE]
        return params

    async def _request(self, session: aiohttp.ClientSession, params: list[tuple[str, str]]) -> Any:
        """One gated request; HTTP 429 earns a single cool-down and retry."""
        url = f"{self.base_url}/bills"
        async with self._gate.slot():
            try:
                return await fetch_json(session, url, params=params, headers=self._headers(), timeout_s=self.timeout_s)
            except RateLimited:
                warn(f"Open States rate limit hit; cooling down for {self.cooldown_s:g}s before one retry.")
            await self._gate.cool_down(self.cooldown_s)
            return await fetch_json(session, url, params=params, headers=self._headers(), timeout_s=self.timeout_s)

    async def search(
        self,
        session: aiohttp.ClientSession,
        criteria: SearchCriteria,
        cancel: CancelToken,
    ) -> SourceBatch:
        batch = SourceBatch(source=self.name)
        if not self.api_key:
            warn("PLURAL_POLICY_API_KEY not set; skipping state bill search for this run.")
            batch.disabled = True
            return batch

        seen: set[str] = set()
        for state in criteria.jurisdictions:
            if state == FEDERAL_JURISDICTION:
                continue
            jurisdiction = STATE_JURISDICTION_MAP.get(state)
            if jurisdiction is None:
                warn(f"No Open States jurisdiction mapping for {state}; skipping.")
                continue
            found = 0
            for term in self.search_terms:
                page = 1
                while page <= self.max_pages:
                    if cancel.cancelled:
                        log(f"Open States: cancelled after {batch.requests_attempted} requests.")
                        return batch
                    batch.requests_attempted += 1
                    try:
                        payload = await self._request(session, self._params(jurisdiction, term, criteria.session_year, page))
                    except SourceRequestError as e:
                        batch.record_failure(f"{state} '{term}' page {page}: {e}")
                        warn(f"Open States {state} '{term}' page {page} failed: {e}")
                        break
                    results = payload.get("results") if isinstance(payload, dict) else None
                    if not isinstance(results, list):
                        batch.record_failure(f"{state} '{term}' page {page}: malformed payload")
                        warn(f"Open States {state} '{term}' page {page}: malformed payload")
                        break
                    for item in results:
                        bill = OpenStatesBill.from_json(item, state)
                        if bill is None or bill.id in seen:
                            continue
                        seen.add(bill.id)
                        batch.records.append(bill)
                        found += 1
                    pagination = payload.get("pagination")
                    max_page = pagination.get("max_page") if isinstance(pagination, dict) else None
                    if not isinstance(max_page, int) or page >= max_page:
                        break
                    page += 1
            log(f"Open States: {found} bills for {state}.")
        return batch

    def is_relevant(self, raw: OpenStatesBill) -> bool:
        text = combined_lower(raw.title, raw.abstracts, raw.subjects)
        return matches_any(text, RELEVANT_TERMS)

    def to_canonical(self, raw: OpenStatesBill) -> CanonicalRecord:
        return normalize_open_states_bill(raw, raw.state)
