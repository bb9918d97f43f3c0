"""Stage 4: narrow classifier output to ids and categories that actually exist.

Unknown template ids, templates from another jurisdiction, and category
names outside the fixed set are dropped silently; this is data hygiene,
not an error.
"""
from __future__ import annotations

from typing import Iterable

from compliance_watch.core.models import COMPLIANCE_CATEGORIES, ClassificationResult, TemplateRef


def _ordered_subset(values: Iterable[str], allowed: set[str] | frozenset[str]) -> tuple[str, ...]:
    out: list[str] = []
    for value in values:
        if value in allowed and value not in out:
            out.append(value)
    return tuple(out)


def active_template_ids(templates: Iterable[TemplateRef], jurisdiction: str) -> set[str]:
    return {t.id for t in templates if t.jurisdiction == jurisdiction}


def map_impact(result: ClassificationResult, templates: Iterable[TemplateRef], jurisdiction: str) -> ClassificationResult:
    allowed_ids = active_template_ids(templates, jurisdiction)
    return result.narrowed(
        _ordered_subset(result.affected_template_ids, allowed_ids),
        _ordered_subset(result.affected_compliance_categories, frozenset(COMPLIANCE_CATEGORIES)),
    )
