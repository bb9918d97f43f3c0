"""Stage 5: idempotent writes.

Every write is an ``INSERT ... ON CONFLICT DO UPDATE`` on the row's natural
key, guarded by ``content_hash`` so re-writing identical content leaves the
row (including ``updated_at``) untouched. Surrogate ids and ``created_at``
are never overwritten.
"""
from __future__ import annotations

import json
import threading
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from compliance_watch.core.cancel import CancelToken
from compliance_watch.core.models import (
    SOURCE_COURT_CASE,
    SOURCE_REGULATORY_DOCUMENT,
    SOURCE_STATE_BILL,
    ClassifiedRecord,
    TemplateRef,
    WriteTally,
)
from compliance_watch.store.database import DatabaseManager
from compliance_watch.store.keys import content_hash, content_key
from compliance_watch.store.models import (
    CommunicationTemplateModel,
    ComplianceCardModel,
    LegalUpdateModel,
    LegislativeRecordModel,
    MonitoringRunModel,
    TemplateModel,
    TemplateReviewModel,
    utcnow,
)
from compliance_watch.utils.logging import log, warn

INSERTED = "inserted"
UPDATED = "updated"
UNCHANGED = "unchanged"

_SORT_ORDER = {"high": 0, "medium": 1}
_REVIEW_PRIORITY = {"high": 10, "medium": 5}
_REASON_LABEL = {
    SOURCE_STATE_BILL: "Bill",
    SOURCE_REGULATORY_DOCUMENT: "Rule",
    SOURCE_COURT_CASE: "Case",
}


class _KeyLocks:
    """One lock per natural key; unrelated keys never wait on each other."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[Any, ...], threading.Lock] = {}

    def get(self, key: tuple[Any, ...]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


def _hash_json(obj: Any) -> str:
    return content_hash(json.dumps(obj, sort_keys=True, default=str))


def legal_update_title(item: ClassifiedRecord) -> str:
    rec = item.record
    return f"{rec.native_number}: {rec.title}" if rec.native_number else rec.title


def review_reason(item: ClassifiedRecord) -> str:
    label = _REASON_LABEL.get(item.record.source_kind, "Record")
    return f"{label} {legal_update_title(item)}"


class StoreWriter:
    def __init__(self, db: DatabaseManager):
        self.db = db
        self._locks = _KeyLocks()

    def _insert(self, model):
        dialect = self.db.dialect_name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise ValueError(f"Upsert is not supported on dialect {dialect!r}")

    def _upsert(
        self,
        model,
        values: dict[str, Any],
        conflict_cols: tuple[str, ...],
        immutable_cols: tuple[str, ...] = (),
    ) -> str:
        lock_key = (model.__tablename__,) + tuple(values[c] for c in conflict_cols)
        now = utcnow()
        row = dict(values, created_at=now, updated_at=now)
        skip = set(conflict_cols) | set(immutable_cols) | {"created_at"}

        with self._locks.get(lock_key):
            with self.db.get_session() as session:
                existing = session.execute(
                    select(model.content_hash).where(*[getattr(model, c) == values[c] for c in conflict_cols])
                ).scalar_one_or_none()
                if existing == values["content_hash"]:
                    return UNCHANGED
                stmt = self._insert(model).values(**row)
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(conflict_cols),
                    set_={c: stmt.excluded[c] for c in row if c not in skip},
                    where=model.content_hash != stmt.excluded.content_hash,
                )
                session.execute(stmt)
        return INSERTED if existing is None else UPDATED

    # -- monitored records -------------------------------------------------

    def upsert_record(self, item: ClassifiedRecord) -> str:
        rec, cls = item.record, item.classification
        values: dict[str, Any] = {
            "external_id": rec.external_id,
            "jurisdiction": rec.jurisdiction,
            "native_number": rec.native_number,
            "source_kind": rec.source_kind,
            "title": rec.title,
            "description": rec.description,
            "status_label": rec.status_label,
            "last_action_date": rec.last_action_date,
            "last_action_text": rec.last_action_text,
            "source_url": rec.source_url,
            "text_url": rec.text_url,
            "relevance_level": cls.relevance_level,
            "rationale": cls.rationale,
            "affected_template_ids": list(cls.affected_template_ids),
            "affected_compliance_categories": list(cls.affected_compliance_categories),
            "recommended_changes": cls.recommended_changes,
            "classification_method": cls.method,
            "application_impact": item.application_impact.to_dict() if item.application_impact else None,
            "is_visible": cls.is_visible,
        }
        values["content_hash"] = _hash_json({k: v for k, v in values.items() if k != "external_id"})
        return self._upsert(
            LegislativeRecordModel,
            values,
            conflict_cols=("external_id",),
            immutable_cols=("source_kind",),
        )

    def upsert_legal_update(self, item: ClassifiedRecord) -> str:
        rec, cls = item.record, item.classification
        title = legal_update_title(item)
        content = {
            "external_id": rec.external_id,
            "number": rec.native_number,
            "status": rec.status_label,
            "last_action_date": rec.last_action_date.isoformat() if rec.last_action_date else None,
            "last_action_text": rec.last_action_text,
            "source_url": rec.source_url,
            "text_url": rec.text_url,
            "relevance_level": cls.relevance_level,
            "rationale": cls.rationale,
            "affected_template_ids": list(cls.affected_template_ids),
            "affected_compliance_categories": list(cls.affected_compliance_categories),
            "recommended_changes": cls.recommended_changes,
            "application_impact": item.application_impact.to_dict() if item.application_impact else None,
        }
        key = content_key(rec.source_kind, title)
        values = {
            "jurisdiction": rec.jurisdiction,
            "key": key,
            "external_id": rec.external_id,
            "category": rec.source_kind,
            "title": title,
            "summary": rec.description,
            "content": content,
            "sort_order": _SORT_ORDER.get(cls.relevance_level, 2),
            "is_visible": True,
        }
        values["content_hash"] = content_hash(title, rec.description, rec.status_label, _hash_json(content))
        with self._locks.get((LegalUpdateModel.__tablename__, "record", rec.external_id)):
            # A renamed record gets a new key; its update under the old key is retired.
            retired = self._hide_updates(rec.external_id, keep_key=key)
            if retired:
                log(f"Retired {retired} stale legal update(s) for {rec.external_id} after a title change.")
            return self._upsert(LegalUpdateModel, values, conflict_cols=("jurisdiction", "key"))

    def _hide_updates(self, external_id: str, *, keep_key: str | None = None) -> int:
        conditions = [LegalUpdateModel.external_id == external_id, LegalUpdateModel.is_visible.is_(True)]
        if keep_key is not None:
            conditions.append(LegalUpdateModel.key != keep_key)
        with self.db.get_session() as session:
            result = session.execute(
                update(LegalUpdateModel)
                .where(*conditions)
                .values(is_visible=False, content_hash="", updated_at=utcnow())
            )
            return int(result.rowcount or 0)

    def hide_legal_update(self, item: ClassifiedRecord) -> bool:
        """Withdraw previously visible updates after the record drops to low/dismissed."""
        external_id = item.record.external_id
        with self._locks.get((LegalUpdateModel.__tablename__, "record", external_id)):
            return self._hide_updates(external_id) > 0

    def upsert_template_reviews(self, item: ClassifiedRecord) -> list[str]:
        """Queue one pending review per affected template of a visible record.

        Keyed by ``(template_id, external_id)``; a reviewer's status is never
        overwritten by a later run.
        """
        cls = item.classification
        if not cls.is_visible:
            return []
        reason = review_reason(item)
        priority = _REVIEW_PRIORITY[cls.relevance_level]
        outcomes = []
        for template_id in cls.affected_template_ids:
            values = {
                "template_id": template_id,
                "external_id": item.record.external_id,
                "status": "pending",
                "priority": priority,
                "reason": reason,
                "recommended_changes": cls.recommended_changes,
            }
            values["content_hash"] = content_hash(priority, reason, cls.recommended_changes)
            outcomes.append(
                self._upsert(
                    TemplateReviewModel,
                    values,
                    conflict_cols=("template_id", "external_id"),
                    immutable_cols=("status",),
                )
            )
        return outcomes

    def write_batch(self, items: Iterable[ClassifiedRecord], cancel: CancelToken | None = None) -> WriteTally:
        """Persist a classified batch; one bad row never aborts the rest."""
        tally = WriteTally()
        for item in items:
            if cancel is not None and cancel.cancelled:
                warn("Store write cancelled; remaining records were not written.")
                break
            try:
                outcome = self.upsert_record(item)
                if item.classification.is_visible:
                    self.upsert_legal_update(item)
                    self.upsert_template_reviews(item)
                else:
                    self.hide_legal_update(item)
            except SQLAlchemyError as e:
                tally.errors += 1
                tally.error_details.append({"external_id": item.record.external_id, "error": str(e)})
                warn(f"Failed to write {item.record.external_id}: {e}")
                continue
            setattr(tally, outcome, getattr(tally, outcome) + 1)
        return tally

    # -- seeded content ----------------------------------------------------

    def upsert_template(self, template: TemplateRef, *, active: bool = True, key: str | None = None) -> str:
        """Upsert on ``(jurisdiction, key)``; the template id is fixed at first insert."""
        values = {
            "id": template.id,
            "jurisdiction": template.jurisdiction,
            "key": key or content_key(template.template_type, template.title),
            "title": template.title,
            "template_type": template.template_type,
            "is_active": active,
        }
        values["content_hash"] = content_hash(
            template.id, template.jurisdiction, template.title, template.template_type, active
        )
        return self._upsert(TemplateModel, values, conflict_cols=("jurisdiction", "key"), immutable_cols=("id",))

    def upsert_compliance_card(
        self,
        *,
        jurisdiction: str,
        category: str,
        title: str,
        summary: str = "",
        content: Any = None,
        sort_order: int = 0,
        key: str | None = None,
    ) -> str:
        values = {
            "jurisdiction": jurisdiction,
            "key": key or content_key(category, title),
            "category": category,
            "title": title,
            "summary": summary,
            "content": content if content is not None else {},
            "sort_order": sort_order,
        }
        values["content_hash"] = content_hash(title, summary, category, sort_order, _hash_json(values["content"]))
        return self._upsert(ComplianceCardModel, values, conflict_cols=("jurisdiction", "key"))

    def upsert_communication_template(
        self,
        *,
        jurisdiction: str,
        template_type: str,
        title: str,
        body: str = "",
        key: str | None = None,
    ) -> str:
        values = {
            "jurisdiction": jurisdiction,
            "key": key or content_key(template_type, title),
            "template_type": template_type,
            "title": title,
            "body": body,
        }
        values["content_hash"] = content_hash(title, body, template_type)
        return self._upsert(CommunicationTemplateModel, values, conflict_cols=("jurisdiction", "key"))

    # -- reads and run log ---------------------------------------------------

    def active_templates(self, jurisdictions: Iterable[str] | None = None) -> list[TemplateRef]:
        stmt = select(TemplateModel).where(TemplateModel.is_active.is_(True))
        if jurisdictions is not None:
            stmt = stmt.where(TemplateModel.jurisdiction.in_(list(jurisdictions)))
        with self.db.get_session() as session:
            rows = session.execute(stmt.order_by(TemplateModel.jurisdiction, TemplateModel.id)).scalars().all()
            return [
                TemplateRef(id=r.id, title=r.title, template_type=r.template_type, jurisdiction=r.jurisdiction)
                for r in rows
            ]

    def record_run(self, **fields: Any) -> int:
        with self.db.get_session() as session:
            run = MonitoringRunModel(**fields)
            session.add(run)
            session.flush()
            return int(run.id)
