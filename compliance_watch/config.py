"""Pipeline configuration: YAML file for tuning, environment for secrets.

Example ``pipeline.yaml``::

    run:
      jurisdictions: [CA, TX, FED]
      lookback_days: 30
    federal_register:
      term_limit: 5
    open_states:
      min_interval_s: 1.1
    court_listener:
      enabled: true
    classifier:
      model: gpt-4o
      timeout_s: 60
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Mapping

import yaml

from compliance_watch.core.models import FEDERAL_JURISDICTION
from compliance_watch.sources.court_listener import CASE_SEARCH_TERMS
from compliance_watch.sources.federal_register import HOUSING_SEARCH_TERMS, HUD_AGENCY_SLUGS
from compliance_watch.sources.open_states import LANDLORD_TENANT_SEARCH_TERMS, STATE_JURISDICTION_MAP


class ConfigError(ValueError):
    pass


def _default_jurisdictions() -> list[str]:
    return list(STATE_JURISDICTION_MAP) + [FEDERAL_JURISDICTION]


@dataclass
class PipelineConfig:
    jurisdictions: list[str] = field(default_factory=_default_jurisdictions)
    lookback_days: int = 30
    session_year: int | None = None
    run_timeout_s: float | None = None
    output_dir: str | None = None

    fr_agency_slugs: list[str] = field(default_factory=lambda: list(HUD_AGENCY_SLUGS))
    fr_search_terms: list[str] = field(default_factory=lambda: list(HOUSING_SEARCH_TERMS))
    fr_term_limit: int = 5
    fr_agency_per_page: int = 50
    fr_term_per_page: int = 20
    fr_max_pages: int = 1
    fr_concurrency: int = 4

    os_search_terms: list[str] = field(default_factory=lambda: list(LANDLORD_TENANT_SEARCH_TERMS))
    os_per_page: int = 20
    os_max_pages: int = 1
    os_min_interval_s: float = 1.1
    os_cooldown_s: float = 60.0

    cl_enabled: bool = True
    cl_search_terms: list[str] = field(default_factory=lambda: list(CASE_SEARCH_TERMS))
    cl_max_pages: int = 1
    cl_concurrency: int = 2

    http_timeout_s: float = 30.0

    llm_enabled: bool = True
    llm_model: str = "gpt-4o"
    llm_temperature: float = 0.2
    llm_timeout_s: float = 60.0
    llm_concurrency: int = 3
    excerpt_chars: int = 10_000
    case_excerpt_chars: int = 8_000
    application_impact: bool = True

    federal_register_api_key: str | None = None
    plural_policy_api_key: str | None = None
    courtlistener_api_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    database_url: str | None = None

    def resolved_session_year(self, today: date | None = None) -> int:
        return self.session_year or (today or date.today()).year


def _section(cfg: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = cfg.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"config section {name!r} must be a mapping")
    return value


def _int(sec: Mapping[str, Any], key: str, default: int, *, minimum: int = 0) -> int:
    value = sec.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{key} must be an integer >= {minimum}")
    return value


def _float(sec: Mapping[str, Any], key: str, default: float | None) -> float | None:
    value = sec.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{key} must be a non-negative number")
    return float(value)


def _bool(sec: Mapping[str, Any], key: str, default: bool) -> bool:
    value = sec.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def _str_list(sec: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    value = sec.get(key)
    if value is None:
        return list(default)
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ConfigError(f"{key} must be a list of non-empty strings")
    return [v.strip() for v in value]


def _env(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """Build a config from an optional YAML file plus environment variables.

    A missing file means defaults. A file with the wrong shape raises
    ``ConfigError`` before any network activity happens.
    """
    env = os.environ if env is None else env
    raw: Any = {}
    if path is not None and Path(path).exists():
        try:
            with Path(path).open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{path}: config root must be a mapping")

    defaults = PipelineConfig()
    run = _section(raw, "run")
    fr = _section(raw, "federal_register")
    ost = _section(raw, "open_states")
    cl = _section(raw, "court_listener")
    clf = _section(raw, "classifier")

    session_year = run.get("session_year")
    if session_year is not None and (isinstance(session_year, bool) or not isinstance(session_year, int)):
        raise ConfigError("session_year must be an integer")
    output_dir = run.get("output_dir")
    if output_dir is not None and not isinstance(output_dir, str):
        raise ConfigError("output_dir must be a string")
    model = clf.get("model", defaults.llm_model)
    if not isinstance(model, str) or not model.strip():
        raise ConfigError("classifier model must be a non-empty string")

    return PipelineConfig(
        jurisdictions=[j.upper() for j in _str_list(run, "jurisdictions", defaults.jurisdictions)],
        lookback_days=_int(run, "lookback_days", defaults.lookback_days, minimum=1),
        session_year=session_year,
        run_timeout_s=_float(run, "timeout_s", None),
        output_dir=output_dir,
        fr_agency_slugs=_str_list(fr, "agency_slugs", defaults.fr_agency_slugs),
        fr_search_terms=_str_list(fr, "search_terms", defaults.fr_search_terms),
        fr_term_limit=_int(fr, "term_limit", defaults.fr_term_limit),
        fr_agency_per_page=_int(fr, "agency_per_page", defaults.fr_agency_per_page, minimum=1),
        fr_term_per_page=_int(fr, "term_per_page", defaults.fr_term_per_page, minimum=1),
        fr_max_pages=_int(fr, "max_pages", defaults.fr_max_pages, minimum=1),
        fr_concurrency=_int(fr, "concurrency", defaults.fr_concurrency, minimum=1),
        os_search_terms=_str_list(ost, "search_terms", defaults.os_search_terms),
        os_per_page=_int(ost, "per_page", defaults.os_per_page, minimum=1),
        os_max_pages=_int(ost, "max_pages", defaults.os_max_pages, minimum=1),
        os_min_interval_s=_float(ost, "min_interval_s", defaults.os_min_interval_s),
        os_cooldown_s=_float(ost, "cooldown_s", defaults.os_cooldown_s),
        cl_enabled=_bool(cl, "enabled", defaults.cl_enabled),
        cl_search_terms=_str_list(cl, "search_terms", defaults.cl_search_terms),
        cl_max_pages=_int(cl, "max_pages", defaults.cl_max_pages, minimum=1),
        cl_concurrency=_int(cl, "concurrency", defaults.cl_concurrency, minimum=1),
        http_timeout_s=_float(run, "http_timeout_s", defaults.http_timeout_s),
        llm_enabled=_bool(clf, "enabled", defaults.llm_enabled),
        llm_model=model.strip(),
        llm_temperature=_float(clf, "temperature", defaults.llm_temperature),
        llm_timeout_s=_float(clf, "timeout_s", defaults.llm_timeout_s),
        llm_concurrency=_int(clf, "concurrency", defaults.llm_concurrency, minimum=1),
        excerpt_chars=_int(clf, "excerpt_chars", defaults.excerpt_chars),
        case_excerpt_chars=_int(clf, "case_excerpt_chars", defaults.case_excerpt_chars),
        application_impact=_bool(clf, "application_impact", defaults.application_impact),
        federal_register_api_key=_env(env, "FEDERAL_REGISTER_API_KEY", "DATA_GOV_API_KEY"),
        plural_policy_api_key=_env(env, "PLURAL_POLICY_API_KEY"),
        courtlistener_api_key=_env(env, "COURTLISTENER_API_KEY"),
        openai_api_key=_env(env, "OPENAI_API_KEY"),
        openai_base_url=_env(env, "OPENAI_BASE_URL"),
        database_url=_env(env, "DATABASE_URL"),
    )
