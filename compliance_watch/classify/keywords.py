"""Deterministic keyword fallback for the relevance and application-impact classifiers.

Used whenever no language-model backend is configured or its answer is
unusable. Conservative by construction: it never claims template impact.
"""
from __future__ import annotations

from compliance_watch.core.models import (
    SOURCE_COURT_CASE,
    SOURCE_REGULATORY_DOCUMENT,
    ApplicationImpact,
    CanonicalRecord,
    ClassificationResult,
)
from compliance_watch.utils.text import combined_lower, matches_any

HIGH_RELEVANCE_KEYWORDS = [
    "eviction",
    "security deposit",
    "lease termination",
    "notice requirement",
    "habitability",
    "rent increase",
    "rent control",
    "rent cap",
    "rent limit",
    "tenant protection",
    "rent stabilization",
    "just cause eviction",
]

MEDIUM_RELEVANCE_KEYWORDS = ["landlord", "tenant", "rental", "lease", "housing"]

# Kept separate from the prompt's category guide; the two may diverge.
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "rent_increases": [
        "rent increase",
        "rent control",
        "rent cap",
        "rent stabilization",
        "rent limit",
        "rental increase",
        "rent notice",
        "rent raise",
        "tenant protection act",
        "just cause",
        "rent regulation",
    ],
    "deposits": ["security deposit", "deposit return", "deposit limit", "deposit refund"],
    "evictions": [
        "eviction",
        "unlawful detainer",
        "lease termination",
        "notice to quit",
        "eviction moratorium",
        "eviction protection",
    ],
    "disclosures": ["disclosure", "lead paint", "mold disclosure", "bed bug"],
    "fair_housing": [
        "fair housing",
        "discrimination",
        "protected class",
        "source of income",
        "housing discrimination",
        "reasonable accommodation",
    ],
}

APPLICATION_KEYWORDS = [
    "application",
    "screening",
    "tenant selection",
    "background check",
    "credit check",
    "criminal history",
    "prospective tenant",
    "applicant",
    "application fee",
]

HIGH_RATIONALE = (
    "This {noun} contains keywords indicating it directly affects landlord-tenant law. Manual review required."
)
HIGH_RECOMMENDED_CHANGES = "Manual review needed to determine specific changes."
MEDIUM_RATIONALE = "This {noun} may be related to landlord-tenant law. Review recommended."
LOW_RATIONALE = "This {noun} does not appear to be directly related to landlord-tenant law."

APPLICATION_MATCH_EXPLANATION = (
    "This bill contains application-related keywords. "
    "Manual review required to determine specific compliance requirements."
)
APPLICATION_NO_MATCH_EXPLANATION = "This bill does not appear to affect rental application requirements."


_NOUNS = {SOURCE_REGULATORY_DOCUMENT: "rule", SOURCE_COURT_CASE: "case"}


def _record_text(record: CanonicalRecord) -> str:
    return combined_lower(record.title, record.description)


def fallback_categories(text: str) -> tuple[str, ...]:
    return tuple(cat for cat, words in CATEGORY_KEYWORDS.items() if matches_any(text, words))


def fallback_classification(record: CanonicalRecord) -> ClassificationResult:
    text = _record_text(record)
    categories = fallback_categories(text)
    noun = _NOUNS.get(record.source_kind, "bill")
    if matches_any(text, HIGH_RELEVANCE_KEYWORDS):
        return ClassificationResult(
            relevance_level="high",
            rationale=HIGH_RATIONALE.format(noun=noun),
            affected_compliance_categories=categories,
            recommended_changes=HIGH_RECOMMENDED_CHANGES,
        )
    if matches_any(text, MEDIUM_RELEVANCE_KEYWORDS):
        return ClassificationResult(
            relevance_level="medium",
            rationale=MEDIUM_RATIONALE.format(noun=noun),
            affected_compliance_categories=categories,
        )
    return ClassificationResult(
        relevance_level="low",
        rationale=LOW_RATIONALE.format(noun=noun),
        affected_compliance_categories=categories,
    )


def fallback_application_impact(record: CanonicalRecord) -> ApplicationImpact:
    if matches_any(_record_text(record), APPLICATION_KEYWORDS):
        return ApplicationImpact(
            affects_applications=True,
            rule_type="disclosure",
            explanation=APPLICATION_MATCH_EXPLANATION,
        )
    return ApplicationImpact(affects_applications=False, rule_type=None, explanation=APPLICATION_NO_MATCH_EXPLANATION)
