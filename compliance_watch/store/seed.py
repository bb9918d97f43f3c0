"""Load static templates, compliance cards, and communication templates.

Seed files are YAML or JSON with three optional top-level lists:
``templates``, ``compliance_cards``, ``communication_templates``. Seeding goes
through the same idempotent writer, so re-seeding is safe.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.exc import SQLAlchemyError

from compliance_watch.core.models import TemplateRef, WriteTally
from compliance_watch.store.writer import StoreWriter
from compliance_watch.utils.io import read_structured
from compliance_watch.utils.logging import log, warn

SEED_SECTIONS = ("templates", "compliance_cards", "communication_templates")


class SeedError(ValueError):
    pass


def _require(entry: Any, field: str) -> str:
    if not isinstance(entry, dict):
        raise SeedError("seed entry must be a mapping")
    value = entry.get(field)
    if not isinstance(value, str) or not value.strip():
        raise SeedError(f"seed entry missing {field!r}")
    return value.strip()


def load_seed(path: str | Path) -> dict[str, list[Any]]:
    try:
        data = read_structured(path)
    except yaml.YAMLError as e:
        raise SeedError(f"{path}: invalid YAML: {e}") from e
    if data is None:
        return {s: [] for s in SEED_SECTIONS}
    if not isinstance(data, dict):
        raise SeedError(f"{path}: seed root must be a mapping")
    out: dict[str, list[Any]] = {}
    for section in SEED_SECTIONS:
        entries = data.get(section) or []
        if not isinstance(entries, list):
            raise SeedError(f"{path}: {section} must be a list")
        out[section] = entries
    return out


def _write_one(writer: StoreWriter, section: str, entry: Any) -> str:
    if section == "templates":
        ref = TemplateRef(
            id=_require(entry, "id"),
            title=_require(entry, "title"),
            template_type=_require(entry, "type"),
            jurisdiction=_require(entry, "jurisdiction"),
        )
        return writer.upsert_template(ref, active=bool(entry.get("active", True)), key=entry.get("key"))
    if section == "compliance_cards":
        return writer.upsert_compliance_card(
            jurisdiction=_require(entry, "jurisdiction"),
            category=_require(entry, "category"),
            title=_require(entry, "title"),
            summary=str(entry.get("summary") or ""),
            content=entry.get("content"),
            sort_order=int(entry.get("sort_order") or 0),
            key=entry.get("key"),
        )
    return writer.upsert_communication_template(
        jurisdiction=_require(entry, "jurisdiction"),
        template_type=_require(entry, "type"),
        title=_require(entry, "title"),
        body=str(entry.get("body") or ""),
        key=entry.get("key"),
    )


def seed_content(writer: StoreWriter, data: dict[str, list[Any]]) -> dict[str, WriteTally]:
    tallies: dict[str, WriteTally] = {}
    for section in SEED_SECTIONS:
        tally = WriteTally()
        for idx, entry in enumerate(data.get(section) or []):
            try:
                outcome = _write_one(writer, section, entry)
            except (SeedError, SQLAlchemyError, ValueError) as e:
                tally.errors += 1
                tally.error_details.append({"section": section, "index": str(idx), "error": str(e)})
                warn(f"Seed {section}[{idx}] failed: {e}")
                continue
            setattr(tally, outcome, getattr(tally, outcome) + 1)
        tallies[section] = tally
        log(
            f"Seed {section}: {tally.inserted} inserted, {tally.updated} updated, "
            f"{tally.unchanged} unchanged, {tally.errors} errors."
        )
    return tallies
