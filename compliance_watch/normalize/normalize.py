"""Stage 2: normalize per-source raw records into ``CanonicalRecord``.

All functions here are pure and total: any field a source may omit has a
fallback, so normalization never raises on a parsed raw record.
"""
from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING, Iterable

from compliance_watch.core.models import (
    FEDERAL_JURISDICTION,
    SOURCE_COURT_CASE,
    SOURCE_REGULATORY_DOCUMENT,
    SOURCE_STATE_BILL,
    CanonicalRecord,
)

if TYPE_CHECKING:
    from compliance_watch.sources.payloads import (
        CourtListenerCase,
        FederalRegisterDocument,
        OpenStatesAction,
        OpenStatesBill,
    )

FEDERAL_REGISTER_PREFIX = "fr"
OPEN_STATES_PREFIX = "pp"
OPEN_STATES_FALLBACK_URL = "https://open.pluralpolicy.com/"
COURT_LISTENER_PREFIX = "cl"
COURT_LISTENER_SITE = "https://www.courtlistener.com"

FEDERAL_REGISTER_STATUS = {
    "Rule": "Final Rule",
    "Proposed Rule": "Proposed Rule",
    "Notice": "Notice",
    "Presidential Document": "Executive Order",
}

# Checked in order; the first classification on the last action that maps wins.
OPEN_STATES_STATUS = {
    "became-law": "Enacted",
    "executive-signature": "Signed by Governor",
    "executive-veto": "Vetoed",
    "executive-veto-line-item": "Vetoed",
    "veto-override-passage": "Veto Overridden",
    "passage": "Passed Chamber",
    "failure": "Failed",
    "committee-passage": "Passed Committee",
    "committee-passage-favorable": "Passed Committee",
    "committee-passage-unfavorable": "Passed Committee",
    "committee-failure": "Failed in Committee",
    "referral-committee": "Referred to Committee",
    "reading-3": "Third Reading",
    "reading-2": "Second Reading",
    "reading-1": "First Reading",
    "introduction": "Introduced",
    "filing": "Filed",
    "amendment-passage": "Amended",
    "withdrawal": "Withdrawn",
    "executive-receipt": "Sent to Governor",
}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_TAG = re.compile(r"<[^>]+>")
_WS = re.compile(r"\s+")


def parse_date(value: str | None) -> date | None:
    """Parse the ISO date prefix of ``value`` (``2024-03-01`` or a full timestamp)."""
    if not value:
        return None
    m = _ISO_DATE.match(value.strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def _clean(text: str | None) -> str:
    if not text:
        return ""
    return _WS.sub(" ", _TAG.sub(" ", text)).strip()


def latest_action(actions: Iterable["OpenStatesAction"]) -> "OpenStatesAction | None":
    """Pick the action with the highest ``order``; on equal order the first one listed wins."""
    best = None
    for action in actions:
        if best is None or action.order > best.order:
            best = action
    return best


def open_states_status(action: "OpenStatesAction | None") -> str:
    if action is None:
        return "Unknown"
    for label in action.classification:
        mapped = OPEN_STATES_STATUS.get(label)
        if mapped:
            return mapped
    return action.description or "Unknown"


def normalize_federal_register(doc: "FederalRegisterDocument") -> CanonicalRecord:
    title = doc.title or doc.document_number
    published = doc.publication_date
    if doc.action:
        last_action_text = doc.action
    elif published:
        last_action_text = f"Published: {published}"
    else:
        last_action_text = None
    return CanonicalRecord(
        external_id=f"{FEDERAL_REGISTER_PREFIX}_{doc.document_number}",
        jurisdiction=FEDERAL_JURISDICTION,
        native_number=doc.document_number,
        title=title,
        description=_clean(doc.abstract) or title,
        source_kind=SOURCE_REGULATORY_DOCUMENT,
        status_label=FEDERAL_REGISTER_STATUS.get(doc.type, doc.type or "Unknown"),
        last_action_date=parse_date(published),
        last_action_text=last_action_text,
        source_url=doc.html_url,
        excerpt=_clean(" ".join(p for p in (doc.excerpts, "; ".join(doc.topics)) if p)),
        text_url=doc.pdf_url,
    )


def normalize_open_states_bill(bill: "OpenStatesBill", jurisdiction: str) -> CanonicalRecord:
    title = bill.title or bill.identifier or bill.id
    last = latest_action(bill.actions)

    text_url = None
    latest_version_date = ""
    for version in bill.versions:
        if version.url and (version.date or "") >= latest_version_date:
            latest_version_date = version.date or ""
            text_url = version.url

    excerpt_parts = list(bill.abstracts[1:])
    if bill.subjects:
        excerpt_parts.append("Subjects: " + ", ".join(bill.subjects))

    return CanonicalRecord(
        external_id=f"{OPEN_STATES_PREFIX}_{bill.id}",
        jurisdiction=jurisdiction,
        native_number=bill.identifier,
        title=title,
        description=(bill.abstracts[0].strip() if bill.abstracts else "") or title,
        source_kind=SOURCE_STATE_BILL,
        status_label=open_states_status(last),
        last_action_date=parse_date(last.date) if last else None,
        last_action_text=(last.description or None) if last else None,
        source_url=bill.openstates_url or (bill.source_urls[0] if bill.source_urls else OPEN_STATES_FALLBACK_URL),
        excerpt=_clean(" ".join(excerpt_parts)),
        text_url=text_url,
    )


def case_citation(case: "CourtListenerCase") -> str:
    """First reporter citation, else the docket number, else the cluster id."""
    if case.citations:
        return case.citations[0]
    if case.docket_number:
        return case.docket_number
    return f"Cluster ID: {case.cluster_id}"


def normalize_court_listener_case(case: "CourtListenerCase", jurisdiction: str) -> CanonicalRecord:
    title = case.case_name or case.case_name_full or case.case_name_short or f"Case {case.cluster_id}"
    url = case.absolute_url or "/"
    if not url.startswith("http"):
        url = COURT_LISTENER_SITE + (url if url.startswith("/") else "/" + url)
    return CanonicalRecord(
        external_id=f"{COURT_LISTENER_PREFIX}_{case.cluster_id}",
        jurisdiction=jurisdiction,
        native_number=case_citation(case),
        title=title,
        description=case.case_name_full or title,
        source_kind=SOURCE_COURT_CASE,
        status_label=case.precedential_status or "Unknown",
        last_action_date=parse_date(case.date_filed),
        last_action_text=f"Filed: {case.date_filed}" if case.date_filed else None,
        source_url=url,
        excerpt=_clean(case.snippet),
    )


def dedupe_records(records: Iterable[CanonicalRecord]) -> list[CanonicalRecord]:
    """Drop repeated ``external_id``s, keeping the first occurrence and input order."""
    seen: set[str] = set()
    out: list[CanonicalRecord] = []
    for rec in records:
        if rec.external_id in seen:
            continue
        seen.add(rec.external_id)
        out.append(rec)
    return out
