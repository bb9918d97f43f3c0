"""Stage 1c: state and federal appellate opinions from the CourtListener search API (v4).

Each mapped state is searched against its own courts plus the federal
circuit that covers it. Requests need an API token; without one the source
is disabled for the run.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import (
    FEDERAL_JURISDICTION,
    SOURCE_COURT_CASE,
    CanonicalRecord,
    SearchCriteria,
)
from compliance_watch.normalize.normalize import normalize_court_listener_case
from compliance_watch.sources.base import SourceBatch, SourceRequestError, fetch_json
from compliance_watch.sources.payloads import CourtListenerCase
from compliance_watch.utils.logging import log, warn
from compliance_watch.utils.text import combined_lower, matches_any

BASE_URL = "https://www.courtlistener.com/api/rest/v4"

# CourtListener court ids: supreme court, intermediate appellate court(s), federal circuit.
STATE_COURT_MAP: dict[str, list[str]] = {
    "UT": ["utah", "utahctapp", "ca10"],
    "TX": ["tex", "texapp", "ca5"],
    "ND": ["nd", "ndctapp", "ca8"],
    "SD": ["sd", "ca8"],
    "NC": ["nc", "ncctapp", "ca4"],
    "OH": ["ohio", "ohioctapp", "ca6"],
    "MI": ["mich", "michctapp", "ca6"],
    "ID": ["idaho", "idahoctapp", "ca9"],
    "WY": ["wyo", "ca10"],
    "CA": ["cal", "calctapp", "ca9"],
    "VA": ["va", "vactapp", "ca4"],
    "NV": ["nev", "nevapp", "ca9"],
    "AZ": ["ariz", "arizctapp", "ca9"],
    "FL": ["fla", "fladistctapp", "ca11"],
}

CASE_SEARCH_TERMS = ["landlord tenant", "eviction", "lease", "rental"]

RELEVANT_TERMS = [
    "landlord",
    "tenant",
    "lease",
    "eviction",
    "security deposit",
    "rental",
    "residential",
    "housing",
    "rent",
    "deposit",
    "notice",
    "occupancy",
]


@dataclass
class CourtListenerConnector:
    api_key: str | None = None
    search_terms: list[str] = field(default_factory=lambda: list(CASE_SEARCH_TERMS))
    max_pages: int = 1
    concurrency: int = 2
    timeout_s: float = 30.0
    base_url: str = BASE_URL
    name: str = "court_listener"
    source_kind: str = SOURCE_COURT_CASE

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Token {self.api_key or ''}"}

    def _params(self, state: str, criteria: SearchCriteria) -> list[tuple[str, str]]:
        return [
            ("q", " OR ".join(self.search_terms)),
            ("type", "o"),
            ("order_by", "dateFiled desc"),
            ("filed_after", criteria.date_from.isoformat()),
            ("filed_before", criteria.date_to.isoformat()),
            ("court", " ".join(STATE_COURT_MAP[state])),
        ]

    async def _search_state(
        self,
        session: aiohttp.ClientSession,
        state: str,
        criteria: SearchCriteria,
        sem: asyncio.Semaphore,
        cancel: CancelToken,
        batch: SourceBatch,
    ) -> list[CourtListenerCase]:
        cases: list[CourtListenerCase] = []
        url: str | None = f"{self.base_url}/search/"
        params: list[tuple[str, str]] | None = self._params(state, criteria)
        page = 1
        while url and page <= self.max_pages:
            if cancel.cancelled:
                break
            async with sem:
                batch.requests_attempted += 1
                try:
                    payload: Any = await fetch_json(
                        session, url, params=params, headers=self._headers(), timeout_s=self.timeout_s
                    )
                except SourceRequestError as e:
                    batch.record_failure(f"{state} page {page}: {e}")
                    warn(f"CourtListener {state} page {page} failed: {e}")
                    break
            results = payload.get("results") if isinstance(payload, dict) else None
            if not isinstance(results, list):
                batch.record_failure(f"{state} page {page}: malformed payload")
                warn(f"CourtListener {state} page {page}: malformed payload")
                break
            for item in results:
                case = CourtListenerCase.from_json(item, state)
                if case is not None:
                    cases.append(case)
            # The cursor URL already carries the query.
            next_url = payload.get("next")
            url = next_url if isinstance(next_url, str) and next_url else None
            params = None
            page += 1
        log(f"CourtListener: {len(cases)} cases for {state}.")
        return cases

    async def search(
        self,
        session: aiohttp.ClientSession,
        criteria: SearchCriteria,
        cancel: CancelToken,
    ) -> SourceBatch:
        batch = SourceBatch(source=self.name)
        if not self.api_key:
            warn("COURTLISTENER_API_KEY not set; skipping case law search for this run.")
            batch.disabled = True
            return batch

        states = []
        for state in criteria.jurisdictions:
            if state == FEDERAL_JURISDICTION:
                continue
            if state not in STATE_COURT_MAP:
                warn(f"No CourtListener court mapping for {state}; skipping.")
                continue
            states.append(state)
        if not states:
            return batch

        sem = asyncio.Semaphore(max(1, int(self.concurrency)))
        results = await asyncio.gather(
            *(self._search_state(session, s, criteria, sem, cancel, batch) for s in states)
        )

        # Circuit courts are shared between states; the first state listed keeps the case.
        seen: set[str] = set()
        for cases in results:
            for case in cases:
                if case.cluster_id in seen:
                    continue
                seen.add(case.cluster_id)
                batch.records.append(case)
        return batch

    def is_relevant(self, raw: CourtListenerCase) -> bool:
        text = combined_lower(raw.case_name, raw.case_name_full, raw.case_name_short, raw.nature_of_suit)
        return matches_any(text, RELEVANT_TERMS)

    def to_canonical(self, raw: CourtListenerCase) -> CanonicalRecord:
        return normalize_court_listener_case(raw, raw.state)
