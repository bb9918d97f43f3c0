"""SQLAlchemy models for monitored records and seeded compliance content."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JSONType(TypeDecorator):
    """JSONB on PostgreSQL, JSON everywhere else."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class Base(DeclarativeBase):
    pass


class LegislativeRecordModel(Base):
    """One canonical legal record plus its latest classification."""

    __tablename__ = "legislative_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(200), nullable=False)
    jurisdiction = Column(String(8), nullable=False)
    native_number = Column(String(100), nullable=False, default="")
    source_kind = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    status_label = Column(String(200), nullable=False, default="")
    last_action_date = Column(Date)
    last_action_text = Column(Text)
    source_url = Column(Text, nullable=False, default="")
    text_url = Column(Text)
    relevance_level = Column(String(16), nullable=False)
    rationale = Column(Text, nullable=False)
    affected_template_ids = Column(JSONType, nullable=False)
    affected_compliance_categories = Column(JSONType, nullable=False)
    recommended_changes = Column(Text, nullable=False, default="")
    classification_method = Column(String(16), nullable=False)
    application_impact = Column(JSONType)
    is_visible = Column(Boolean, nullable=False, default=False)
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_legislative_records_external_id"),
        CheckConstraint(
            "source_kind IN ('regulatory_document', 'state_bill', 'court_case')", name="check_legislative_source_kind"
        ),
        CheckConstraint(
            "relevance_level IN ('high', 'medium', 'low', 'dismissed')", name="check_legislative_relevance"
        ),
        Index("idx_legislative_records_jurisdiction", "jurisdiction"),
        Index("idx_legislative_records_visible", "is_visible"),
    )


class LegalUpdateModel(Base):
    """User-facing update derived from a visible record."""

    __tablename__ = "legal_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jurisdiction = Column(String(8), nullable=False)
    key = Column(String(100), nullable=False)
    external_id = Column(String(200), nullable=False)
    category = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    summary = Column(Text, nullable=False, default="")
    content = Column(JSONType, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    is_visible = Column(Boolean, nullable=False, default=True)
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("jurisdiction", "key", name="uq_legal_updates_jurisdiction_key"),
        Index("idx_legal_updates_external_id", "external_id"),
    )


class TemplateModel(Base):
    """Document template the classifier may reference by id."""

    __tablename__ = "templates"

    id = Column(String(100), primary_key=True)
    jurisdiction = Column(String(8), nullable=False)
    key = Column(String(100), nullable=False)
    title = Column(Text, nullable=False)
    template_type = Column(String(64), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("jurisdiction", "key", name="uq_templates_jurisdiction_key"),
        Index("idx_templates_jurisdiction", "jurisdiction"),
    )


class TemplateReviewModel(Base):
    """Pending template review raised by a visible record that names the template."""

    __tablename__ = "template_review_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(String(100), nullable=False)
    external_id = Column(String(200), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=5)
    reason = Column(Text, nullable=False)
    recommended_changes = Column(Text, nullable=False, default="")
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("template_id", "external_id", name="uq_template_review_template_record"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_template_review_status"
        ),
        Index("idx_template_review_status", "status"),
    )


class ComplianceCardModel(Base):
    __tablename__ = "compliance_cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jurisdiction = Column(String(8), nullable=False)
    key = Column(String(100), nullable=False)
    category = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    summary = Column(Text, nullable=False, default="")
    content = Column(JSONType, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("jurisdiction", "key", name="uq_compliance_cards_jurisdiction_key"),)


class CommunicationTemplateModel(Base):
    __tablename__ = "communication_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jurisdiction = Column(String(8), nullable=False)
    key = Column(String(100), nullable=False)
    template_type = Column(String(64), nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False, default="")
    content_hash = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("jurisdiction", "key", name="uq_communication_templates_jurisdiction_key"),
    )


class MonitoringRunModel(Base):
    __tablename__ = "monitoring_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(16), nullable=False)
    jurisdictions_checked = Column(JSONType, nullable=False)
    records_found = Column(Integer, nullable=False, default=0)
    relevant_records = Column(Integer, nullable=False, default=0)
    records_written = Column(Integer, nullable=False, default=0)
    write_errors = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    summary = Column(JSONType)

    __table_args__ = (
        CheckConstraint(
            "status IN ('success', 'partial', 'failed', 'cancelled')", name="check_monitoring_run_status"
        ),
        Index("idx_monitoring_runs_started_at", "started_at"),
    )
