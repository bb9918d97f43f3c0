"""OpenAI-backed relevance, court-case and application-impact backends.

All return the model's raw JSON object; shape checks happen in
``compliance_watch.classify.classifier``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from compliance_watch.core.models import COMPLIANCE_RULE_TYPES, RELEVANCE_LEVELS, CanonicalRecord, TemplateRef
from compliance_watch.llm import OpenAIJSONClient

DEFAULT_EXCERPT_CHARS = 10_000
DEFAULT_CASE_EXCERPT_CHARS = 8_000

# Category definitions shown to the model. Not the fallback keyword table.
CATEGORY_GUIDE: dict[str, str] = {
    "deposits": "Security deposit limits, return timelines, deduction rules",
    "disclosures": "Required landlord disclosures to tenants",
    "evictions": "Eviction procedures, notice requirements, just cause",
    "fair_housing": "Anti-discrimination, protected classes, accommodations",
    "rent_increases": "Rent increase notice periods, rent control, caps on increases",
}

RELEVANCE_GUIDE = {
    "high": "Directly changes landlord-tenant law; templates or compliance cards need immediate updates.",
    "medium": "Related to rental housing; may affect templates or compliance indirectly.",
    "low": "Tangentially related to housing; unlikely to affect templates.",
    "dismissed": "Not related to landlord-tenant law at all.",
}


def _record_payload(record: CanonicalRecord, excerpt_chars: int) -> dict[str, Any]:
    return {
        "external_id": record.external_id,
        "jurisdiction": record.jurisdiction,
        "number": record.native_number,
        "source_kind": record.source_kind,
        "title": record.title,
        "description": record.description,
        "excerpt": record.excerpt[: max(0, excerpt_chars)],
        "status": record.status_label,
        "last_action": record.last_action_text,
        "last_action_date": record.last_action_date.isoformat() if record.last_action_date else None,
    }


@dataclass
class OpenAIRelevanceBackend:
    client: OpenAIJSONClient
    temperature: float = 0.2
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS

    @classmethod
    def from_defaults(
        cls,
        *,
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout_s: float = 60.0,
        base_url: str | None = None,
        temperature: float = 0.2,
    ) -> "OpenAIRelevanceBackend":
        client = OpenAIJSONClient(model=model, api_key=api_key, timeout_s=timeout_s, base_url=base_url)
        return cls(client=client, temperature=temperature)

    def __call__(self, *, record: CanonicalRecord, templates: list[TemplateRef]) -> dict[str, Any]:
        system_prompt = (
            "You are a legal analyst specializing in landlord-tenant law. "
            "You identify which legislation and regulations affect rental property templates "
            "and compliance guidance. Return JSON only."
        )
        payload = {
            "task": (
                "Decide how relevant this legal record is to landlord-tenant practice, which of the listed "
                "templates would need updates, which compliance categories are affected, and what should change."
            ),
            "record": _record_payload(record, self.excerpt_chars),
            "available_templates": [{"id": t.id, "title": t.title, "type": t.template_type} for t in templates],
            "compliance_categories": CATEGORY_GUIDE,
            "relevance_levels": RELEVANCE_GUIDE,
            "rules": [
                "Only use template ids from available_templates.",
                "Only use category names from compliance_categories.",
                "Be conservative: use high only when templates or compliance cards definitely need updates.",
                "recommendedChanges may be an empty string when nothing needs to change.",
            ],
            "response_schema": {
                "relevanceLevel": "|".join(RELEVANCE_LEVELS),
                "analysis": "short explanation of why this record matters or does not matter to landlords",
                "affectedTemplateIds": "array[string]",
                "affectedComplianceCategories": "array[string]",
                "recommendedChanges": "string",
            },
        }
        return self.client.complete_json(
            system_prompt=system_prompt,
            user_prompt=json.dumps(payload, ensure_ascii=False),
            temperature=self.temperature,
        )


@dataclass
class OpenAICaseBackend:
    """Relevance backend for court opinions; same answer shape as ``OpenAIRelevanceBackend``."""

    client: OpenAIJSONClient
    temperature: float = 0.3
    excerpt_chars: int = DEFAULT_CASE_EXCERPT_CHARS

    @classmethod
    def from_defaults(
        cls,
        *,
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout_s: float = 60.0,
        base_url: str | None = None,
        temperature: float = 0.3,
    ) -> "OpenAICaseBackend":
        client = OpenAIJSONClient(model=model, api_key=api_key, timeout_s=timeout_s, base_url=base_url)
        return cls(client=client, temperature=temperature)

    def __call__(self, *, record: CanonicalRecord, templates: list[TemplateRef]) -> dict[str, Any]:
        system_prompt = (
            "You are a legal analyst specializing in landlord-tenant case law. "
            "You identify court decisions that change how rental property templates "
            "and compliance guidance should read. Return JSON only."
        )
        payload = {
            "task": (
                "Decide whether this court decision establishes precedent that affects landlord-tenant "
                "practice, which of the listed templates would need updates, and what should change."
            ),
            "case": {
                "external_id": record.external_id,
                "jurisdiction": record.jurisdiction,
                "citation": record.native_number,
                "case_name": record.title,
                "case_name_full": record.description,
                "status": record.status_label,
                "filed": record.last_action_date.isoformat() if record.last_action_date else None,
                "opinion_excerpt": record.excerpt[: max(0, self.excerpt_chars)],
            },
            "available_templates": [{"id": t.id, "title": t.title, "type": t.template_type} for t in templates],
            "compliance_categories": CATEGORY_GUIDE,
            "relevance_levels": RELEVANCE_GUIDE,
            "rules": [
                "Only use template ids from available_templates.",
                "Only use category names from compliance_categories.",
                "Unpublished or non-precedential opinions are rarely high.",
            ],
            "response_schema": {
                "relevanceLevel": "|".join(RELEVANCE_LEVELS),
                "analysis": "short explanation of the holding and why it matters or does not matter to landlords",
                "affectedTemplateIds": "array[string]",
                "affectedComplianceCategories": "array[string]",
                "recommendedChanges": "string",
            },
        }
        return self.client.complete_json(
            system_prompt=system_prompt,
            user_prompt=json.dumps(payload, ensure_ascii=False),
            temperature=self.temperature,
        )


@dataclass
class OpenAIApplicationBackend:
    client: OpenAIJSONClient
    temperature: float = 0.2
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS

    @classmethod
    def from_defaults(
        cls,
        *,
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout_s: float = 60.0,
        base_url: str | None = None,
        temperature: float = 0.2,
    ) -> "OpenAIApplicationBackend":
        client = OpenAIJSONClient(model=model, api_key=api_key, timeout_s=timeout_s, base_url=base_url)
        return cls(client=client, temperature=temperature)

    def __call__(self, *, record: CanonicalRecord) -> dict[str, Any]:
        system_prompt = (
            "You are a legal analyst specializing in landlord-tenant law and rental application "
            "compliance requirements. Return JSON only."
        )
        payload = {
            "task": "Decide whether this bill changes RENTAL APPLICATION requirements.",
            "record": _record_payload(record, self.excerpt_chars),
            "look_for": [
                "New information landlords must disclose to prospective tenants before accepting applications",
                "New acknowledgments or authorizations landlords must obtain from applicants",
                "New documents required during the application process",
                "Links to newly required information pages",
            ],
            "examples": [
                "Tenant selection criteria disclosure requirements",
                "Background check authorization requirements",
                "Application fee disclosure rules",
                "Fair housing notice requirements",
                "Criminal history disclosure rules",
            ],
            "rules": [
                "Only set affectsApplications to true if the bill clearly creates a new application-related requirement.",
            ],
            "response_schema": {
                "affectsApplications": "boolean",
                "complianceRuleType": "|".join(COMPLIANCE_RULE_TYPES) + "|null",
                "suggestedRuleKey": "snake_case unique key for the rule",
                "suggestedTitle": "human-readable title",
                "suggestedCheckboxLabel": "text an applicant would acknowledge (acknowledgment/authorization types)",
                "suggestedDisclosureText": "disclosure text shown to applicants",
                "statuteReference": "legal citation",
                "explanation": "short explanation",
            },
        }
        return self.client.complete_json(
            system_prompt=system_prompt,
            user_prompt=json.dumps(payload, ensure_ascii=False),
            temperature=self.temperature,
        )
