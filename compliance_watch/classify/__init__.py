"""Relevance and application-impact classification."""

from .classifier import (
    ApplicationBackend,
    RelevanceBackend,
    analyze_application_impact,
    analyze_application_impact_with_timeout,
    classify,
    classify_with_timeout,
    parse_application_impact,
    parse_classification,
)
from .keywords import CATEGORY_KEYWORDS, fallback_application_impact, fallback_classification
from .openai_backend import CATEGORY_GUIDE, OpenAIApplicationBackend, OpenAICaseBackend, OpenAIRelevanceBackend

__all__ = [
    "ApplicationBackend",
    "CATEGORY_GUIDE",
    "CATEGORY_KEYWORDS",
    "OpenAIApplicationBackend",
    "OpenAICaseBackend",
    "OpenAIRelevanceBackend",
    "RelevanceBackend",
    "analyze_application_impact",
    "analyze_application_impact_with_timeout",
    "classify",
    "classify_with_timeout",
    "fallback_application_impact",
    "fallback_classification",
    "parse_application_impact",
    "parse_classification",
]
