import asyncio
import json
from datetime import date
from pathlib import Path

import pytest
from fakes import FakeResponse, FakeSession, StaticBackend, cl_case, fr_doc
from sqlalchemy import select

from compliance_watch.core import CancelToken, SearchCriteria
from compliance_watch.pipeline import JobLock, JobLockError, run_pipeline
from compliance_watch.sources import CourtListenerConnector, FederalRegisterConnector, OpenStatesConnector
from compliance_watch.core.models import TemplateRef
from compliance_watch.store import (
    DatabaseManager,
    LegislativeRecordModel,
    MonitoringRunModel,
    StoreWriter,
    TemplateReviewModel,
)

CRITERIA = SearchCriteria(
    jurisdictions=["CA", "FED"],
    date_from=date(2024, 1, 1),
    date_to=date(2024, 1, 31),
    session_year=2024,
)


def _writer(tmp_path: Path) -> StoreWriter:
    db = DatabaseManager(f"sqlite:///{tmp_path / 'pipeline.db'}")
    db.init_database()
    return StoreWriter(db)


def _connectors():
    return [FederalRegisterConnector(term_limit=0), OpenStatesConnector(api_key=None)]


def _agency_docs(call):
    return FakeResponse(
        200,
        {
            "results": [
                fr_doc("2024-00001"),
                fr_doc("2024-00002", title="Security deposit handling for assisted housing"),
                fr_doc("2024-00003", title="Airport noise standards", abstract="Aircraft noise."),
            ]
        },
    )


def _run(tmp_path: Path, writer: StoreWriter, handler=_agency_docs, **kwargs):
    return asyncio.run(
        run_pipeline(
            criteria=CRITERIA,
            connectors=_connectors(),
            writer=writer,
            session=FakeSession(handler=handler),
            job_lock=JobLock(),
            **kwargs,
        )
    )


def _records(writer: StoreWriter):
    with writer.db.get_session() as session:
        rows = session.execute(select(LegislativeRecordModel).order_by(LegislativeRecordModel.external_id)).scalars()
        return [(r.external_id, r.relevance_level, r.updated_at) for r in rows]


def test_run_persists_records_and_writes_reports(tmp_path: Path):
    writer = _writer(tmp_path)
    out = tmp_path / "out"

    result = _run(tmp_path, writer, output_dir=str(out))

    assert result["status"] == "success"
    assert result["tally"].inserted == 2
    assert [r[:2] for r in _records(writer)] == [("fr_2024-00001", "medium"), ("fr_2024-00002", "high")]

    with writer.db.get_session() as session:
        run = session.execute(select(MonitoringRunModel)).scalar_one()
        assert run.id == result["run_id"]
        assert run.status == "success"
        assert run.records_found == 3
        assert run.relevant_records == 2
        assert run.jurisdictions_checked == ["CA", "FED"]

    machine = json.loads((out / "report.machine.json").read_text(encoding="utf-8"))
    assert machine["status"] == "success"
    assert machine["records_classified"] == 2
    assert {s["source"] for s in machine["sources"]} == {"federal_register", "open_states"}
    human = (out / "report.human.txt").read_text(encoding="utf-8")
    assert human.startswith("Monitoring run success")
    assert "Security deposit handling" in human


def test_rerun_with_same_data_changes_nothing(tmp_path: Path):
    writer = _writer(tmp_path)
    _run(tmp_path, writer)
    before = _records(writer)

    again = _run(tmp_path, writer)

    assert again["tally"].unchanged == 2
    assert again["tally"].inserted == 0
    assert _records(writer) == before


def test_all_sources_unreachable_is_a_failed_run(tmp_path: Path):
    writer = _writer(tmp_path)

    result = _run(tmp_path, writer, handler=lambda call: FakeResponse(500, None))

    assert result["status"] == "failed"
    assert result["machine_report"]["error_message"]
    assert _records(writer) == []
    assert "No relevant legislation found." in result["human_report"]


def test_cancel_before_start_fetches_nothing(tmp_path: Path):
    writer = _writer(tmp_path)
    cancel = CancelToken()
    cancel.cancel()
    session = FakeSession(handler=_agency_docs)

    result = asyncio.run(
        run_pipeline(
            criteria=CRITERIA,
            connectors=_connectors(),
            writer=writer,
            session=session,
            cancel=cancel,
            job_lock=JobLock(),
        )
    )

    assert result["status"] == "cancelled"
    assert session.calls == []
    assert _records(writer) == []


def test_cancel_during_classification_keeps_what_was_classified(tmp_path: Path):
    writer = _writer(tmp_path)
    cancel = CancelToken()

    def cancelling_backend(*, record, templates):
        cancel.cancel()
        return {"relevanceLevel": "high", "analysis": "Changes deposit handling."}

    result = _run(tmp_path, writer, backend=cancelling_backend, cancel=cancel, llm_concurrency=1)

    assert result["status"] == "cancelled"
    assert len(result["classified"]) == 1
    assert result["tally"].inserted == 1
    assert len(_records(writer)) == 1


def test_second_concurrent_run_is_rejected(tmp_path: Path):
    writer = _writer(tmp_path)
    lock = JobLock()

    with lock.hold("legislative_monitoring"):
        with pytest.raises(JobLockError):
            asyncio.run(
                run_pipeline(
                    criteria=CRITERIA,
                    connectors=_connectors(),
                    writer=writer,
                    session=FakeSession(handler=_agency_docs),
                    job_lock=lock,
                )
            )
    assert not lock.locked


def test_malformed_source_page_makes_the_run_partial(tmp_path: Path):
    writer = _writer(tmp_path)

    def handler(call):
        if call.param("page") == "2":
            return FakeResponse(200, {"results": 1})
        return FakeResponse(200, {"results": [fr_doc("2024-00001")], "next_page_url": "https://next"})

    result = asyncio.run(
        run_pipeline(
            criteria=CRITERIA,
            connectors=[FederalRegisterConnector(term_limit=0, max_pages=2), OpenStatesConnector(api_key=None)],
            writer=writer,
            session=FakeSession(handler=handler),
            job_lock=JobLock(),
        )
    )

    assert result["status"] == "partial"
    assert result["tally"].inserted == 1
    assert [r[0] for r in _records(writer)] == ["fr_2024-00001"]
    fr_batch = result["batches"][0]
    assert fr_batch.requests_failed == 1
    assert "malformed payload" in fr_batch.errors[0]


def test_court_cases_use_the_case_backend_and_queue_template_reviews(tmp_path: Path):
    writer = _writer(tmp_path)
    writer.upsert_template(
        TemplateRef(id="t1", title="California Residential Lease Agreement", template_type="lease", jurisdiction="CA")
    )
    rule_backend = StaticBackend(
        {"relevanceLevel": "medium", "analysis": "Touches assisted housing.", "affectedTemplateIds": []}
    )
    case_backend = StaticBackend(
        {
            "relevanceLevel": "high",
            "analysis": "Deposit deductions now need receipts.",
            "affectedTemplateIds": ["t1", "t404"],
            "recommendedChanges": "Add an itemized deductions clause.",
        }
    )

    def handler(call):
        if "courtlistener" in call.url:
            return FakeResponse(200, {"results": [cl_case(4321)]})
        return FakeResponse(200, {"results": [fr_doc("2024-00001")]})

    result = asyncio.run(
        run_pipeline(
            criteria=CRITERIA,
            connectors=[FederalRegisterConnector(term_limit=0), CourtListenerConnector(api_key="tok")],
            writer=writer,
            backend=rule_backend,
            case_backend=case_backend,
            session=FakeSession(handler=handler),
            job_lock=JobLock(),
        )
    )

    assert result["status"] == "success"
    assert rule_backend.calls == 1
    assert case_backend.calls == 1
    assert [r[:2] for r in _records(writer)] == [("cl_4321", "high"), ("fr_2024-00001", "medium")]
    with writer.db.get_session() as session:
        reviews = session.execute(select(TemplateReviewModel)).scalars().all()
        assert [(r.template_id, r.external_id, r.priority, r.status) for r in reviews] == [("t1", "cl_4321", 10, "pending")]
        assert reviews[0].reason == "Case 98 Cal. App. 5th 101: Smith v. Oakwood Apartments LLC"
