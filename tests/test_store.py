from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path

from fakes import make_record
from sqlalchemy import func, select

from compliance_watch.core.models import ApplicationImpact, ClassificationResult, ClassifiedRecord, TemplateRef
from compliance_watch.store import (
    ComplianceCardModel,
    DatabaseManager,
    LegalUpdateModel,
    LegislativeRecordModel,
    StoreWriter,
    TemplateModel,
    TemplateReviewModel,
    load_seed,
    seed_content,
)


def _writer(tmp_path: Path) -> StoreWriter:
    db = DatabaseManager(f"sqlite:///{tmp_path / 'store.db'}")
    db.init_database()
    return StoreWriter(db)


def _item(external_id: str = "pp_ocd-bill/1", level: str = "high", title: str = "Rent Stabilization Act") -> ClassifiedRecord:
    return ClassifiedRecord(
        record=make_record(title, external_id=external_id),
        classification=ClassificationResult(
            relevance_level=level,
            rationale="Manual review required.",
            affected_compliance_categories=("rent_increases",),
        ),
        application_impact=ApplicationImpact(affects_applications=False, rule_type=None, explanation="n/a"),
    )


def _rows(writer: StoreWriter, model):
    with writer.db.get_session() as session:
        rows = session.execute(select(model).order_by(model.id)).scalars().all()
        return [
            {c.name: getattr(r, c.name) for c in model.__table__.columns}
            for r in rows
        ]


def test_same_batch_twice_leaves_identical_rows(tmp_path: Path):
    writer = _writer(tmp_path)
    batch = [_item("pp_1", title="Rent Stabilization Act"), _item("pp_2", level="low", title="Park report")]

    assert writer.db.health_check()
    first = writer.write_batch(batch)
    records_after_first = _rows(writer, LegislativeRecordModel)
    updates_after_first = _rows(writer, LegalUpdateModel)
    second = writer.write_batch(batch)

    assert first.inserted == 2 and first.errors == 0
    assert second.unchanged == 2 and second.inserted == 0 and second.updated == 0
    assert _rows(writer, LegislativeRecordModel) == records_after_first
    assert _rows(writer, LegalUpdateModel) == updates_after_first
    assert len(updates_after_first) == 1


def test_changed_content_overwrites_but_keeps_identity(tmp_path: Path):
    writer = _writer(tmp_path)
    item = _item()
    writer.write_batch([item])
    before = _rows(writer, LegislativeRecordModel)[0]

    changed = replace(item, record=replace(item.record, status_label="Passed Committee"))
    tally = writer.write_batch([changed])
    after = _rows(writer, LegislativeRecordModel)[0]

    assert tally.updated == 1
    assert after["id"] == before["id"]
    assert after["created_at"] == before["created_at"]
    assert after["status_label"] == "Passed Committee"
    assert after["updated_at"] >= before["updated_at"]
    assert after["content_hash"] != before["content_hash"]


def test_legal_update_key_and_visibility(tmp_path: Path):
    writer = _writer(tmp_path)
    item = _item()
    writer.write_batch([item])

    updates = _rows(writer, LegalUpdateModel)
    assert len(updates) == 1
    assert updates[0]["key"] == "state_bill_ab_1_rent_stabilization_act"
    assert updates[0]["title"] == "AB 1: Rent Stabilization Act"
    assert updates[0]["is_visible"] is True

    dropped = replace(item, classification=replace(item.classification, relevance_level="dismissed"))
    writer.write_batch([dropped])

    updates = _rows(writer, LegalUpdateModel)
    assert len(updates) == 1
    assert updates[0]["is_visible"] is False
    assert _rows(writer, LegislativeRecordModel)[0]["is_visible"] is False


def test_concurrent_upserts_of_same_and_different_keys(tmp_path: Path):
    writer = _writer(tmp_path)
    items = [_item("pp_same")] * 6 + [_item(f"pp_{i}", title=f"Eviction bill {i}") for i in range(6)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(writer.upsert_record, items))

    assert outcomes.count("inserted") == 7
    with writer.db.get_session() as session:
        assert session.execute(select(func.count()).select_from(LegislativeRecordModel)).scalar_one() == 7


def test_write_errors_are_tallied_not_raised(tmp_path: Path):
    writer = _writer(tmp_path)
    bad = _item("pp_bad", level="urgent")

    tally = writer.write_batch([bad, _item("pp_good")])

    assert tally.errors == 1
    assert tally.inserted == 1
    assert tally.error_details[0]["external_id"] == "pp_bad"


def test_seed_is_idempotent_and_feeds_active_templates(tmp_path: Path):
    seed = tmp_path / "seed.yaml"
    seed.write_text(
        """
templates:
  - {id: t1, jurisdiction: CA, title: California Residential Lease Agreement, type: lease}
  - {id: t9, jurisdiction: CA, title: Retired Addendum, type: addendum, active: false}
compliance_cards:
  - {jurisdiction: CA, category: deposits, title: Security Deposit Limits, summary: One month max.}
  - {jurisdiction: CA, category: deposits}
communication_templates:
  - {jurisdiction: CA, type: rent_increase, title: Rent Increase Notice Letter, body: Hello}
""".strip(),
        encoding="utf-8",
    )
    writer = _writer(tmp_path)

    first = seed_content(writer, load_seed(seed))
    second = seed_content(writer, load_seed(seed))

    assert first["templates"].inserted == 2
    assert first["compliance_cards"].inserted == 1
    assert first["compliance_cards"].errors == 1
    assert second["templates"].unchanged == 2
    assert second["communication_templates"].unchanged == 1
    assert len(_rows(writer, ComplianceCardModel)) == 1
    assert _rows(writer, ComplianceCardModel)[0]["key"] == "deposits_security_deposit_limits"
    assert len(_rows(writer, TemplateModel)) == 2
    assert writer.active_templates(["CA"]) == [
        TemplateRef(id="t1", title="California Residential Lease Agreement", template_type="lease", jurisdiction="CA")
    ]
    assert writer.active_templates(["TX"]) == []


def test_title_change_retires_the_old_legal_update(tmp_path: Path):
    writer = _writer(tmp_path)
    item = _item()
    writer.write_batch([item])

    renamed = replace(item, record=replace(item.record, title="Rent Stabilization and Relocation Act"))
    writer.write_batch([renamed])

    updates = _rows(writer, LegalUpdateModel)
    visible = [u for u in updates if u["is_visible"]]
    assert len(updates) == 2
    assert [u["title"] for u in visible] == ["AB 1: Rent Stabilization and Relocation Act"]
    assert updates[0]["title"] == "AB 1: Rent Stabilization Act"
    assert updates[0]["is_visible"] is False

    writer.write_batch([renamed])
    assert [u["is_visible"] for u in _rows(writer, LegalUpdateModel)] == [False, True]

    dropped = replace(renamed, classification=replace(renamed.classification, relevance_level="low"))
    writer.write_batch([dropped])
    assert not any(u["is_visible"] for u in _rows(writer, LegalUpdateModel))


def test_template_reviews_are_queued_once_per_template_and_record(tmp_path: Path):
    writer = _writer(tmp_path)
    high = _item("pp_1")
    high = replace(
        high,
        classification=replace(
            high.classification,
            affected_template_ids=("ca-lease", "ca-notice"),
            recommended_changes="Update the rent cap clause.",
        ),
    )
    medium = _item("pp_2", level="medium", title="Deposit Return Timing")
    medium = replace(medium, classification=replace(medium.classification, affected_template_ids=("ca-lease",)))
    low = _item("pp_3", level="low", title="Park report")
    low = replace(low, classification=replace(low.classification, affected_template_ids=("ca-lease",)))

    writer.write_batch([high, medium, low])
    reviews = _rows(writer, TemplateReviewModel)

    assert [(r["template_id"], r["external_id"], r["priority"]) for r in reviews] == [
        ("ca-lease", "pp_1", 10),
        ("ca-notice", "pp_1", 10),
        ("ca-lease", "pp_2", 5),
    ]
    assert reviews[0]["reason"] == "Bill AB 1: Rent Stabilization Act"
    assert reviews[0]["recommended_changes"] == "Update the rent cap clause."
    assert {r["status"] for r in reviews} == {"pending"}

    with writer.db.get_session() as session:
        session.get(TemplateReviewModel, reviews[0]["id"]).status = "approved"
    writer.write_batch([high, medium, low])
    again = _rows(writer, TemplateReviewModel)

    assert len(again) == 3
    assert again[0]["status"] == "approved"
    assert again[1:] == reviews[1:]


def test_template_key_defaults_from_type_and_title(tmp_path: Path):
    writer = _writer(tmp_path)
    lease = TemplateRef(id="t1", title="California Residential Lease Agreement", template_type="lease", jurisdiction="CA")

    assert writer.upsert_template(lease) == "inserted"
    assert writer.upsert_template(lease) == "unchanged"
    assert writer.upsert_template(lease, active=False) == "updated"
    assert writer.upsert_template(
        TemplateRef(id="t2", title="Notice", template_type="notice", jurisdiction="CA"), key="ca_notice"
    ) == "inserted"

    rows = _rows(writer, TemplateModel)
    assert [(r["id"], r["key"], r["is_active"]) for r in sorted(rows, key=lambda r: r["id"])] == [
        ("t1", "lease_california_residential_lease_agreement", False),
        ("t2", "ca_notice", True),
    ]
    assert writer.active_templates(["CA"]) == [
        TemplateRef(id="t2", title="Notice", template_type="notice", jurisdiction="CA")
    ]
