"""Orchestrates one monitoring run end-to-end.

Stages:
1 fetch (all connectors concurrently) -> prefilter -> 2 normalize + dedupe
3 classify (bounded, with timeout; court cases go to the case backend)
4 impact mapping -> 5 persist
6 run log + reports

All fetching and classification finish before the first write.
"""
from __future__ import annotations

import asyncio
from datetime import date, timedelta
from pathlib import Path
from typing import Any

import aiohttp
from sqlalchemy.exc import SQLAlchemyError

from compliance_watch.classify.classifier import (
    ApplicationBackend,
    RelevanceBackend,
    analyze_application_impact_with_timeout,
    classify_with_timeout,
)
from compliance_watch.classify.openai_backend import (
    OpenAIApplicationBackend,
    OpenAICaseBackend,
    OpenAIRelevanceBackend,
)
from compliance_watch.config import PipelineConfig
from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import (
    SOURCE_COURT_CASE,
    SOURCE_STATE_BILL,
    CanonicalRecord,
    ClassifiedRecord,
    SearchCriteria,
    TemplateRef,
    WriteTally,
)
from compliance_watch.normalize.normalize import dedupe_records
from compliance_watch.pipeline.lock import MONITORING_LOCK, JobLock
from compliance_watch.report.report import build_human_report, build_machine_report
from compliance_watch.sources.base import Connector, SourceBatch
from compliance_watch.sources.court_listener import CourtListenerConnector
from compliance_watch.sources.federal_register import FederalRegisterConnector
from compliance_watch.sources.open_states import OpenStatesConnector
from compliance_watch.store.database import DatabaseManager
from compliance_watch.store.models import utcnow
from compliance_watch.store.writer import StoreWriter
from compliance_watch.utils.io import write_json, write_text
from compliance_watch.utils.logging import error, log, warn
from compliance_watch.validate.impact import map_impact

USER_AGENT = "compliance-watch/0.1 (legislative monitoring)"

RUN_SUCCESS = "success"
RUN_PARTIAL = "partial"
RUN_FAILED = "failed"
RUN_CANCELLED = "cancelled"


def run_status(batches: list[SourceBatch], tally: WriteTally, cancel: CancelToken) -> str:
    if cancel.cancelled:
        return RUN_CANCELLED
    if not any(b.reachable for b in batches):
        return RUN_FAILED
    if tally.errors or any(b.requests_failed for b in batches):
        return RUN_PARTIAL
    return RUN_SUCCESS


async def _fetch_all(
    connectors: list[Connector],
    criteria: SearchCriteria,
    cancel: CancelToken,
    session: aiohttp.ClientSession | None,
) -> list[SourceBatch]:
    if session is not None:
        return list(await asyncio.gather(*(c.search(session, criteria, cancel) for c in connectors)))
    async with aiohttp.ClientSession(headers={"User-Agent": USER_AGENT}) as own:
        return list(await asyncio.gather(*(c.search(own, criteria, cancel) for c in connectors)))


def _canonicalize(connectors: list[Connector], batches: list[SourceBatch]) -> tuple[list[CanonicalRecord], int]:
    records: list[CanonicalRecord] = []
    found = 0
    for connector, batch in zip(connectors, batches):
        found += len(batch.records)
        relevant = [raw for raw in batch.records if connector.is_relevant(raw)]
        log(f"{connector.name}: {len(relevant)}/{len(batch.records)} records pass the relevance prefilter.")
        records.extend(connector.to_canonical(raw) for raw in relevant)
    return dedupe_records(records), found


async def _classify_all(
    records: list[CanonicalRecord],
    templates: list[TemplateRef],
    *,
    backend: RelevanceBackend | None,
    case_backend: RelevanceBackend | None,
    application_backend: ApplicationBackend | None,
    application_impact: bool,
    cancel: CancelToken,
    llm_concurrency: int,
    llm_timeout_s: float,
) -> list[ClassifiedRecord]:
    sem = asyncio.Semaphore(max(1, int(llm_concurrency)))
    by_jurisdiction: dict[str, list[TemplateRef]] = {}
    for t in templates:
        by_jurisdiction.setdefault(t.jurisdiction, []).append(t)

    async def classify_one(rec: CanonicalRecord) -> ClassifiedRecord | None:
        async with sem:
            if cancel.cancelled:
                return None
            scoped = by_jurisdiction.get(rec.jurisdiction, [])
            chosen = case_backend if rec.source_kind == SOURCE_COURT_CASE else backend
            result = await classify_with_timeout(rec, scoped, backend=chosen, timeout_s=llm_timeout_s)
            result = map_impact(result, scoped, rec.jurisdiction)
            impact = None
            if application_impact and rec.source_kind == SOURCE_STATE_BILL and result.is_visible:
                impact = await analyze_application_impact_with_timeout(
                    rec, backend=application_backend, timeout_s=llm_timeout_s
                )
            return ClassifiedRecord(record=rec, classification=result, application_impact=impact)

    results = await asyncio.gather(*(classify_one(r) for r in records))
    return [r for r in results if r is not None]


async def run_pipeline(
    *,
    criteria: SearchCriteria,
    connectors: list[Connector],
    writer: StoreWriter,
    backend: RelevanceBackend | None = None,
    case_backend: RelevanceBackend | None = None,
    application_backend: ApplicationBackend | None = None,
    application_impact: bool = True,
    cancel: CancelToken | None = None,
    session: aiohttp.ClientSession | None = None,
    llm_concurrency: int = 3,
    llm_timeout_s: float = 60.0,
    output_dir: str | None = None,
    job_lock: JobLock = MONITORING_LOCK,
) -> dict[str, Any]:
    """Run one monitoring pass; raises ``JobLockError`` if one is already running."""
    cancel = cancel or CancelToken()
    with job_lock.hold("legislative_monitoring"):
        started_at = utcnow()
        log(f"Monitoring run started for {', '.join(criteria.jurisdictions)} ({criteria.date_from} to {criteria.date_to}).")

        try:
            templates = writer.active_templates(criteria.jurisdictions)
        except SQLAlchemyError as e:
            warn(f"Could not load active templates, classifying without them: {e}")
            templates = []

        batches = await _fetch_all(connectors, criteria, cancel, session)
        records, found = _canonicalize(connectors, batches)

        classified = await _classify_all(
            records,
            templates,
            backend=backend,
            case_backend=case_backend,
            application_backend=application_backend,
            application_impact=application_impact,
            cancel=cancel,
            llm_concurrency=llm_concurrency,
            llm_timeout_s=llm_timeout_s,
        )

        # Records classified before a cancellation are still flushed; a cancel
        # that arrives during the write phase stops it between rows.
        write_cancel = None if cancel.cancelled else cancel
        tally = await asyncio.to_thread(writer.write_batch, classified, write_cancel)

        status = run_status(batches, tally, cancel)
        error_message = None
        if status == RUN_FAILED:
            error_message = "No legislative source could be reached; nothing was fetched."
            error(error_message)
        elif status == RUN_CANCELLED:
            error_message = f"Run cancelled after classifying {len(classified)}/{len(records)} records."
            warn(error_message)
        elif status == RUN_PARTIAL:
            failed = sum(b.requests_failed for b in batches)
            error_message = f"{failed} source requests and {tally.errors} writes failed."
        finished_at = utcnow()

        visible = sum(1 for c in classified if c.classification.is_visible)
        run_id = None
        try:
            run_id = writer.record_run(
                started_at=started_at,
                finished_at=finished_at,
                status=status,
                jurisdictions_checked=list(criteria.jurisdictions),
                records_found=found,
                relevant_records=visible,
                records_written=tally.ok,
                write_errors=tally.errors,
                error_message=error_message,
                summary={"sources": [b.summary() for b in batches], "writes": tally.to_dict()},
            )
        except SQLAlchemyError as e:
            warn(f"Could not record monitoring run: {e}")

        machine_report = build_machine_report(
            status=status,
            criteria=criteria,
            batches=batches,
            classified=classified,
            tally=tally,
            started_at=started_at,
            finished_at=finished_at,
            run_id=run_id,
            error_message=error_message,
        )
        human_report = build_human_report(classified, status=status)

        if output_dir:
            out = Path(output_dir)
            write_json(out / "report.machine.json", machine_report)
            write_text(out / "report.human.txt", human_report)

        log(
            f"Monitoring run {status}: {found} fetched, {len(classified)} classified, {visible} visible, "
            f"{tally.inserted} inserted, {tally.updated} updated, {tally.unchanged} unchanged, {tally.errors} errors."
        )
        return {
            "status": status,
            "run_id": run_id,
            "classified": classified,
            "batches": batches,
            "tally": tally,
            "machine_report": machine_report,
            "human_report": human_report,
        }


def build_criteria(cfg: PipelineConfig, *, today: date | None = None) -> SearchCriteria:
    today = today or date.today()
    return SearchCriteria(
        jurisdictions=list(cfg.jurisdictions),
        date_from=today - timedelta(days=cfg.lookback_days),
        date_to=today,
        session_year=cfg.resolved_session_year(today),
    )


def build_connectors(cfg: PipelineConfig) -> list[Connector]:
    connectors: list[Connector] = [
        FederalRegisterConnector(
            api_key=cfg.federal_register_api_key,
            agency_slugs=list(cfg.fr_agency_slugs),
            search_terms=list(cfg.fr_search_terms),
            term_limit=cfg.fr_term_limit,
            agency_per_page=cfg.fr_agency_per_page,
            term_per_page=cfg.fr_term_per_page,
            max_pages=cfg.fr_max_pages,
            concurrency=cfg.fr_concurrency,
            timeout_s=cfg.http_timeout_s,
        ),
        OpenStatesConnector(
            api_key=cfg.plural_policy_api_key,
            search_terms=list(cfg.os_search_terms),
            per_page=cfg.os_per_page,
            max_pages=cfg.os_max_pages,
            min_interval_s=cfg.os_min_interval_s,
            cooldown_s=cfg.os_cooldown_s,
            timeout_s=cfg.http_timeout_s,
        ),
    ]
    if cfg.cl_enabled:
        connectors.append(
            CourtListenerConnector(
                api_key=cfg.courtlistener_api_key,
                search_terms=list(cfg.cl_search_terms),
                max_pages=cfg.cl_max_pages,
                concurrency=cfg.cl_concurrency,
                timeout_s=cfg.http_timeout_s,
            )
        )
    return connectors


def run_pipeline_openai(
    cfg: PipelineConfig,
    *,
    cancel: CancelToken | None = None,
    today: date | None = None,
    db: DatabaseManager | None = None,
) -> dict[str, Any]:
    """Config-driven run with OpenAI backends (keyword fallback when no key is set)."""
    backend = None
    case_backend = None
    application_backend = None
    if cfg.llm_enabled and cfg.openai_api_key:
        common = {
            "model": cfg.llm_model,
            "api_key": cfg.openai_api_key,
            "timeout_s": cfg.llm_timeout_s,
            "base_url": cfg.openai_base_url,
            "temperature": cfg.llm_temperature,
        }
        backend = OpenAIRelevanceBackend.from_defaults(**common)
        backend.excerpt_chars = cfg.excerpt_chars
        case_backend = OpenAICaseBackend.from_defaults(**common)
        case_backend.excerpt_chars = cfg.case_excerpt_chars
        application_backend = OpenAIApplicationBackend.from_defaults(**common)
        application_backend.excerpt_chars = cfg.excerpt_chars
    elif cfg.llm_enabled:
        warn("OPENAI_API_KEY not set; classifying with the keyword fallback only.")

    own_db = db is None
    db = db or DatabaseManager(cfg.database_url)
    db.init_database()
    try:
        return asyncio.run(
            run_pipeline(
                criteria=build_criteria(cfg, today=today),
                connectors=build_connectors(cfg),
                writer=StoreWriter(db),
                backend=backend,
                case_backend=case_backend,
                application_backend=application_backend,
                application_impact=cfg.application_impact,
                cancel=cancel or CancelToken.with_timeout(cfg.run_timeout_s),
                llm_concurrency=cfg.llm_concurrency,
                llm_timeout_s=cfg.llm_timeout_s,
                output_dir=cfg.output_dir,
            )
        )
    finally:
        if own_db:
            db.close()
