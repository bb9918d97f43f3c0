"""Core shared models for compliance_watch."""

from .cancel import CancelToken
from .models import (
    COMPLIANCE_CATEGORIES,
    COMPLIANCE_RULE_TYPES,
    FEDERAL_JURISDICTION,
    RELEVANCE_LEVELS,
    SOURCE_COURT_CASE,
    SOURCE_KINDS,
    SOURCE_REGULATORY_DOCUMENT,
    SOURCE_STATE_BILL,
    VISIBLE_LEVELS,
    ApplicationImpact,
    CanonicalRecord,
    ClassificationResult,
    ClassifiedRecord,
    SearchCriteria,
    TemplateRef,
    WriteTally,
)

__all__ = [
    "COMPLIANCE_CATEGORIES",
    "COMPLIANCE_RULE_TYPES",
    "FEDERAL_JURISDICTION",
    "RELEVANCE_LEVELS",
    "SOURCE_COURT_CASE",
    "SOURCE_KINDS",
    "SOURCE_REGULATORY_DOCUMENT",
    "SOURCE_STATE_BILL",
    "VISIBLE_LEVELS",
    "ApplicationImpact",
    "CancelToken",
    "CanonicalRecord",
    "ClassificationResult",
    "ClassifiedRecord",
    "SearchCriteria",
    "TemplateRef",
    "WriteTally",
]
