"""Stage 1a: regulatory documents from the Federal Register API (v1)."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import aiohttp

from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import (
    FEDERAL_JURISDICTION,
    SOURCE_REGULATORY_DOCUMENT,
    CanonicalRecord,
    SearchCriteria,
)
from compliance_watch.normalize.normalize import normalize_federal_register
from compliance_watch.sources.base import SourceBatch, SourceRequestError, fetch_json
from compliance_watch.sources.payloads import FederalRegisterDocument
from compliance_watch.utils.logging import log, warn
from compliance_watch.utils.text import combined_lower, matches_any

BASE_URL = "https://www.federalregister.gov/api/v1"

HUD_AGENCY_SLUGS = ["housing-and-urban-development-department"]

HOUSING_SEARCH_TERMS = [
    "landlord",
    "tenant",
    "eviction",
    "rental housing",
    "fair housing",
    "lease",
    "security deposit",
    "housing discrimination",
    "Section 8",
    "public housing",
]

AGENCY_DOCUMENT_TYPES = ["RULE", "PRORULE", "NOTICE"]
TERM_DOCUMENT_TYPES = ["RULE", "PRORULE"]

FIELDS = [
    "title",
    "type",
    "abstract",
    "document_number",
    "html_url",
    "pdf_url",
    "publication_date",
    "agencies",
    "agency_names",
    "action",
    "effective_on",
    "significant",
    "topics",
    "excerpts",
]

RELEVANT_TERMS = [
    "landlord",
    "tenant",
    "eviction",
    "rental",
    "lease",
    "fair housing",
    "housing discrimination",
    "section 8",
    "voucher",
    "public housing",
    "security deposit",
    "habitability",
    "rent",
]


@dataclass(frozen=True)
class _Query:
    label: str
    params: list[tuple[str, str]]
    housing_agency_only: bool = False


@dataclass
class FederalRegisterConnector:
    api_key: str | None = None
    agency_slugs: list[str] = field(default_factory=lambda: list(HUD_AGENCY_SLUGS))
    search_terms: list[str] = field(default_factory=lambda: list(HOUSING_SEARCH_TERMS))
    term_limit: int = 5
    agency_per_page: int = 50
    term_per_page: int = 20
    max_pages: int = 1
    concurrency: int = 4
    timeout_s: float = 30.0
    base_url: str = BASE_URL
    name: str = "federal_register"
    source_kind: str = SOURCE_REGULATORY_DOCUMENT

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def _common_params(self, criteria: SearchCriteria, types: list[str], per_page: int) -> list[tuple[str, str]]:
        params = [("conditions[type][]", t) for t in types]
        params += [
            ("conditions[publication_date][gte]", criteria.date_from.isoformat()),
            ("conditions[publication_date][lte]", criteria.date_to.isoformat()),
            ("per_page", str(per_page)),
            ("order", "newest"),
        ]
        params += [("fields[]", f) for f in FIELDS]
        return params

    def build_queries(self, criteria: SearchCriteria) -> list[_Query]:
        if FEDERAL_JURISDICTION not in criteria.jurisdictions:
            return []
        queries: list[_Query] = []
        for slug in self.agency_slugs:
            params = [("conditions[agencies][]", slug)]
            params += self._common_params(criteria, AGENCY_DOCUMENT_TYPES, self.agency_per_page)
            queries.append(_Query(label=f"agency:{slug}", params=params))
        for term in self.search_terms[: max(0, self.term_limit)]:
            params = [("conditions[term]", term)]
            params += self._common_params(criteria, TERM_DOCUMENT_TYPES, self.term_per_page)
            queries.append(_Query(label=f"term:{term}", params=params, housing_agency_only=True))
        return queries

    async def _run_query(
        self,
        session: aiohttp.ClientSession,
        query: _Query,
        sem: asyncio.Semaphore,
        cancel: CancelToken,
        batch: SourceBatch,
    ) -> list[FederalRegisterDocument]:
        docs: list[FederalRegisterDocument] = []
        page = 1
        while page <= self.max_pages:
            if cancel.cancelled:
                break
            async with sem:
                batch.requests_attempted += 1
                try:
                    payload = await fetch_json(
                        session,
                        f"{self.base_url}/documents.json",
                        params=query.params + [("page", str(page))],
                        headers=self._headers(),
                        timeout_s=self.timeout_s,
                    )
                except SourceRequestError as e:
                    batch.record_failure(f"{query.label} page {page}: {e}")
                    warn(f"Federal Register {query.label} page {page} failed: {e}")
                    break
            if not isinstance(payload, dict) or not isinstance(payload.get("results", []), list):
                batch.record_failure(f"{query.label} page {page}: malformed payload")
                warn(f"Federal Register {query.label} page {page}: malformed payload")
                break
            for item in payload.get("results", []):
                doc = FederalRegisterDocument.from_json(item)
                if doc is None:
                    continue
                if query.housing_agency_only and not doc.from_housing_agency():
                    continue
                docs.append(doc)
            if not payload.get("next_page_url"):
                break
            page += 1
        return docs

    async def search(
        self,
        session: aiohttp.ClientSession,
        criteria: SearchCriteria,
        cancel: CancelToken,
    ) -> SourceBatch:
        batch = SourceBatch(source=self.name)
        queries = self.build_queries(criteria)
        if not queries:
            return batch
        if not self.api_key:
            warn("FEDERAL_REGISTER_API_KEY not set; querying the Federal Register anonymously.")

        sem = asyncio.Semaphore(max(1, int(self.concurrency)))
        results = await asyncio.gather(*(self._run_query(session, q, sem, cancel, batch) for q in queries))

        seen: set[str] = set()
        for docs in results:
            for doc in docs:
                if doc.document_number in seen:
                    continue
                seen.add(doc.document_number)
                batch.records.append(doc)

        log(
            f"Federal Register: {len(batch.records)} unique documents from {len(queries)} queries "
            f"({batch.requests_failed}/{batch.requests_attempted} requests failed)."
        )
        return batch

    def is_relevant(self, raw: FederalRegisterDocument) -> bool:
        text = combined_lower(raw.title, raw.abstract, raw.topics)
        return matches_any(text, RELEVANT_TERMS)

    def to_canonical(self, raw: FederalRegisterDocument) -> CanonicalRecord:
        return normalize_federal_register(raw)
