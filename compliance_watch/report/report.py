"""Stage 6: render machine + human run summaries."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from compliance_watch.core.models import ClassifiedRecord, SearchCriteria, WriteTally
from compliance_watch.sources.base import SourceBatch

_LEVEL_ORDER = {"high": 0, "medium": 1, "low": 2, "dismissed": 3}


def _classified_to_dict(item: ClassifiedRecord) -> dict[str, Any]:
    rec, cls = item.record, item.classification
    return {
        "external_id": rec.external_id,
        "jurisdiction": rec.jurisdiction,
        "number": rec.native_number,
        "title": rec.title,
        "source_kind": rec.source_kind,
        "status": rec.status_label,
        "last_action_date": rec.last_action_date.isoformat() if rec.last_action_date else None,
        "source_url": rec.source_url,
        "relevance_level": cls.relevance_level,
        "visible": cls.is_visible,
        "method": cls.method,
        "rationale": cls.rationale,
        "affected_template_ids": list(cls.affected_template_ids),
        "affected_compliance_categories": list(cls.affected_compliance_categories),
        "recommended_changes": cls.recommended_changes,
        "application_impact": item.application_impact.to_dict() if item.application_impact else None,
    }


def build_machine_report(
    *,
    status: str,
    criteria: SearchCriteria,
    batches: list[SourceBatch],
    classified: list[ClassifiedRecord],
    tally: WriteTally,
    started_at: datetime,
    finished_at: datetime,
    run_id: int | None = None,
    error_message: str | None = None,
) -> dict[str, Any]:
    level_counts = {level: 0 for level in _LEVEL_ORDER}
    for item in classified:
        level_counts[item.classification.relevance_level] += 1
    return {
        "run_id": run_id,
        "status": status,
        "started_at": started_at.isoformat(timespec="seconds"),
        "finished_at": finished_at.isoformat(timespec="seconds"),
        "criteria": {
            "jurisdictions": list(criteria.jurisdictions),
            "date_from": criteria.date_from.isoformat(),
            "date_to": criteria.date_to.isoformat(),
            "session_year": criteria.session_year,
        },
        "sources": [b.summary() for b in batches],
        "records_classified": len(classified),
        "relevance_counts": level_counts,
        "llm_classified": sum(1 for c in classified if c.classification.method == "llm"),
        "writes": tally.to_dict(),
        "error_message": error_message,
        "records": [_classified_to_dict(c) for c in classified],
    }


def build_human_report(classified: list[ClassifiedRecord], *, status: str) -> str:
    """Short reviewer-facing list of visible records, most relevant first."""
    visible = [c for c in classified if c.classification.is_visible]
    header = f"Monitoring run {status}: {len(classified)} records classified, {len(visible)} visible."
    if not visible:
        return header + "\nNo relevant legislation found."

    visible.sort(key=lambda c: (_LEVEL_ORDER[c.classification.relevance_level], c.record.jurisdiction, c.record.external_id))
    lines = [header]
    for idx, item in enumerate(visible, start=1):
        rec, cls = item.record, item.classification
        number = f"{rec.native_number} " if rec.native_number else ""
        lines.append(f"{idx}. [{cls.relevance_level.upper()}] {rec.jurisdiction} {number}{rec.title}")
        lines.append(f"   - Status: {rec.status_label}")
        if cls.affected_compliance_categories:
            lines.append(f"   - Categories: {', '.join(cls.affected_compliance_categories)}")
        if cls.affected_template_ids:
            lines.append(f"   - Templates: {', '.join(cls.affected_template_ids)}")
        lines.append(f"   - Why: {cls.rationale[:240]}")
        if cls.recommended_changes:
            lines.append(f"   - Changes: {cls.recommended_changes[:240]}")
        if item.application_impact and item.application_impact.affects_applications:
            lines.append(f"   - Application rule: {item.application_impact.rule_type}")
        lines.append(f"   - Link: {rec.source_url}")
    return "\n".join(lines)
