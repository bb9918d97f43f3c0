"""Idempotent persistence layer."""

from .database import DatabaseManager, get_database_url
from .keys import content_hash, content_key, slugify
from .models import (
    Base,
    CommunicationTemplateModel,
    ComplianceCardModel,
    LegalUpdateModel,
    LegislativeRecordModel,
    MonitoringRunModel,
    TemplateModel,
    TemplateReviewModel,
)
from .seed import SeedError, load_seed, seed_content
from .writer import INSERTED, UNCHANGED, UPDATED, StoreWriter

__all__ = [
    "Base",
    "CommunicationTemplateModel",
    "ComplianceCardModel",
    "DatabaseManager",
    "INSERTED",
    "LegalUpdateModel",
    "LegislativeRecordModel",
    "MonitoringRunModel",
    "SeedError",
    "StoreWriter",
    "TemplateModel",
    "TemplateReviewModel",
    "UNCHANGED",
    "UPDATED",
    "content_hash",
    "content_key",
    "get_database_url",
    "load_seed",
    "seed_content",
    "slugify",
]
