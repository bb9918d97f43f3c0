"""Shared data contracts for the legislative monitoring pipeline.

Each stage hands the next one a small, frozen record:
- connectors emit source-specific raw dataclasses (see ``compliance_watch.sources``)
- the normalizer turns them into ``CanonicalRecord``
- the classifier attaches a ``ClassificationResult``
- the impact mapper only ever narrows that result
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

SOURCE_REGULATORY_DOCUMENT = "regulatory_document"
SOURCE_STATE_BILL = "state_bill"
SOURCE_COURT_CASE = "court_case"
SOURCE_KINDS = (SOURCE_REGULATORY_DOCUMENT, SOURCE_STATE_BILL, SOURCE_COURT_CASE)

FEDERAL_JURISDICTION = "FED"

RELEVANCE_LEVELS = ("high", "medium", "low", "dismissed")
VISIBLE_LEVELS = frozenset({"high", "medium"})

COMPLIANCE_CATEGORIES = (
    "deposits",
    "disclosures",
    "evictions",
    "fair_housing",
    "rent_increases",
)

COMPLIANCE_RULE_TYPES = (
    "acknowledgment",
    "disclosure",
    "authorization",
    "document_required",
    "link_required",
)


@dataclass(frozen=True)
class CanonicalRecord:
    external_id: str
    jurisdiction: str
    native_number: str
    title: str
    description: str
    source_kind: str  # regulatory_document|state_bill|court_case
    status_label: str
    last_action_date: date | None
    last_action_text: str | None
    source_url: str
    excerpt: str = ""
    text_url: str | None = None


@dataclass(frozen=True)
class TemplateRef:
    """One active document template as seen by the classifier."""

    id: str
    title: str
    template_type: str
    jurisdiction: str


@dataclass(frozen=True)
class ClassificationResult:
    relevance_level: str  # high|medium|low|dismissed
    rationale: str
    affected_template_ids: tuple[str, ...] = ()
    affected_compliance_categories: tuple[str, ...] = ()
    recommended_changes: str = ""
    method: str = "fallback"  # llm|fallback

    @property
    def is_visible(self) -> bool:
        return self.relevance_level in VISIBLE_LEVELS

    def narrowed(self, template_ids: tuple[str, ...], categories: tuple[str, ...]) -> "ClassificationResult":
        return replace(self, affected_template_ids=template_ids, affected_compliance_categories=categories)


@dataclass(frozen=True)
class ApplicationImpact:
    affects_applications: bool
    rule_type: str | None
    explanation: str
    suggested_rule_key: str | None = None
    suggested_title: str | None = None
    suggested_checkbox_label: str | None = None
    suggested_disclosure_text: str | None = None
    statute_reference: str | None = None
    method: str = "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "affects_applications": self.affects_applications,
            "rule_type": self.rule_type,
            "explanation": self.explanation,
            "suggested_rule_key": self.suggested_rule_key,
            "suggested_title": self.suggested_title,
            "suggested_checkbox_label": self.suggested_checkbox_label,
            "suggested_disclosure_text": self.suggested_disclosure_text,
            "statute_reference": self.statute_reference,
            "method": self.method,
        }


@dataclass(frozen=True)
class SearchCriteria:
    jurisdictions: list[str]
    date_from: date
    date_to: date
    session_year: int


@dataclass(frozen=True)
class ClassifiedRecord:
    record: CanonicalRecord
    classification: ClassificationResult
    application_impact: ApplicationImpact | None = None


@dataclass
class WriteTally:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0
    error_details: list[dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> int:
        return self.inserted + self.updated + self.unchanged

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "errors": self.errors,
            "error_details": list(self.error_details),
        }
