"""Stage 3: relevance classification with a language-model primary path.

Every record gets a result: when the backend is missing, raises, times out,
or answers with an unusable shape, the keyword fallback answers instead.
"""
from __future__ import annotations

import asyncio
from typing import Any, Protocol

from compliance_watch.classify.keywords import fallback_application_impact, fallback_classification
from compliance_watch.core.models import (
    COMPLIANCE_RULE_TYPES,
    RELEVANCE_LEVELS,
    ApplicationImpact,
    CanonicalRecord,
    ClassificationResult,
    TemplateRef,
)
from compliance_watch.utils.logging import warn


class RelevanceBackend(Protocol):
    def __call__(self, *, record: CanonicalRecord, templates: list[TemplateRef]) -> dict[str, Any]:
        ...


class ApplicationBackend(Protocol):
    def __call__(self, *, record: CanonicalRecord) -> dict[str, Any]:
        ...


def _str_list(value: Any) -> tuple[str, ...] | None:
    """Missing -> empty; present but not a list -> None (unusable)."""
    if value is None:
        return ()
    if not isinstance(value, list):
        return None
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_classification(raw: Any) -> ClassificationResult | None:
    if not isinstance(raw, dict):
        return None
    level = raw.get("relevanceLevel")
    if not isinstance(level, str) or level.strip().lower() not in RELEVANCE_LEVELS:
        return None
    rationale = _opt_str(raw.get("analysis"))
    if rationale is None:
        return None
    template_ids = _str_list(raw.get("affectedTemplateIds"))
    categories = _str_list(raw.get("affectedComplianceCategories"))
    if template_ids is None or categories is None:
        return None
    changes = raw.get("recommendedChanges")
    return ClassificationResult(
        relevance_level=level.strip().lower(),
        rationale=rationale,
        affected_template_ids=template_ids,
        affected_compliance_categories=categories,
        recommended_changes=changes.strip() if isinstance(changes, str) else "",
        method="llm",
    )


def parse_application_impact(raw: Any) -> ApplicationImpact | None:
    if not isinstance(raw, dict):
        return None
    affects = raw.get("affectsApplications")
    if not isinstance(affects, bool):
        return None
    rule_type = raw.get("complianceRuleType")
    if rule_type is not None and rule_type not in COMPLIANCE_RULE_TYPES:
        return None
    if affects and rule_type is None:
        return None
    return ApplicationImpact(
        affects_applications=affects,
        rule_type=rule_type if affects else None,
        explanation=_opt_str(raw.get("explanation")) or "",
        suggested_rule_key=_opt_str(raw.get("suggestedRuleKey")),
        suggested_title=_opt_str(raw.get("suggestedTitle")),
        suggested_checkbox_label=_opt_str(raw.get("suggestedCheckboxLabel")),
        suggested_disclosure_text=_opt_str(raw.get("suggestedDisclosureText")),
        statute_reference=_opt_str(raw.get("statuteReference")),
        method="llm",
    )


def classify(
    record: CanonicalRecord,
    templates: list[TemplateRef],
    *,
    backend: RelevanceBackend | None = None,
) -> ClassificationResult:
    """Classify one record; never raises."""
    if backend is None:
        return fallback_classification(record)
    try:
        raw = backend(record=record, templates=templates)
    except Exception as e:
        warn(f"Classifier failed for {record.external_id}, using keyword fallback: {e}")
        return fallback_classification(record)
    parsed = parse_classification(raw)
    if parsed is None:
        warn(f"Classifier returned an unusable answer for {record.external_id}, using keyword fallback.")
        return fallback_classification(record)
    return parsed


def analyze_application_impact(
    record: CanonicalRecord,
    *,
    backend: ApplicationBackend | None = None,
) -> ApplicationImpact:
    if backend is None:
        return fallback_application_impact(record)
    try:
        raw = backend(record=record)
    except Exception as e:
        warn(f"Application-impact analysis failed for {record.external_id}, using keyword fallback: {e}")
        return fallback_application_impact(record)
    parsed = parse_application_impact(raw)
    if parsed is None:
        warn(f"Application-impact analysis unusable for {record.external_id}, using keyword fallback.")
        return fallback_application_impact(record)
    return parsed


async def classify_with_timeout(
    record: CanonicalRecord,
    templates: list[TemplateRef],
    *,
    backend: RelevanceBackend | None,
    timeout_s: float,
) -> ClassificationResult:
    """Run ``classify`` in a worker thread; a timeout yields the fallback."""
    if backend is None:
        return fallback_classification(record)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(classify, record, templates, backend=backend),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        warn(f"Classifier timed out after {timeout_s:g}s for {record.external_id}, using keyword fallback.")
        return fallback_classification(record)


async def analyze_application_impact_with_timeout(
    record: CanonicalRecord,
    *,
    backend: ApplicationBackend | None,
    timeout_s: float,
) -> ApplicationImpact:
    if backend is None:
        return fallback_application_impact(record)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(analyze_application_impact, record, backend=backend),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        warn(f"Application-impact analysis timed out for {record.external_id}, using keyword fallback.")
        return fallback_application_impact(record)
