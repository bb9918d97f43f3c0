"""Raw per-source shapes parsed from API JSON.

Every field the remote API may omit is optional here; nothing downstream
indexes into a raw dict.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, str) and v.strip())


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _field_strs(value: Any, key: str) -> tuple[str, ...]:
    """String values of ``key`` across a list of dicts; other types are coerced or dropped."""
    out = []
    for d in _dicts(value):
        s = _str_or_none(d.get(key))
        if s is not None:
            out.append(s)
    return tuple(out)


@dataclass(frozen=True)
class FederalRegisterDocument:
    document_number: str
    title: str = ""
    type: str = ""
    abstract: str | None = None
    html_url: str = ""
    pdf_url: str | None = None
    publication_date: str | None = None
    agency_names: tuple[str, ...] = ()
    action: str | None = None
    effective_on: str | None = None
    significant: bool = False
    topics: tuple[str, ...] = ()
    excerpts: str | None = None

    @classmethod
    def from_json(cls, obj: Any) -> "FederalRegisterDocument | None":
        if not isinstance(obj, dict):
            return None
        number = _str_or_none(obj.get("document_number"))
        if number is None:
            return None
        names = list(_str_tuple(obj.get("agency_names")))
        if not names:
            names = list(_field_strs(obj.get("agencies"), "name"))
        return cls(
            document_number=number.strip(),
            title=_str_or_none(obj.get("title")) or "",
            type=_str_or_none(obj.get("type")) or "",
            abstract=_str_or_none(obj.get("abstract")),
            html_url=_str_or_none(obj.get("html_url")) or "",
            pdf_url=_str_or_none(obj.get("pdf_url")),
            publication_date=_str_or_none(obj.get("publication_date")),
            agency_names=tuple(names),
            action=_str_or_none(obj.get("action")),
            effective_on=_str_or_none(obj.get("effective_on")),
            significant=bool(obj.get("significant")),
            topics=_str_tuple(obj.get("topics")),
            excerpts=_str_or_none(obj.get("excerpts")),
        )

    def from_housing_agency(self) -> bool:
        return any("housing" in n.lower() or "hud" in n.lower() for n in self.agency_names)


@dataclass(frozen=True)
class OpenStatesAction:
    description: str
    date: str | None = None
    classification: tuple[str, ...] = ()
    order: int = 0


@dataclass(frozen=True)
class OpenStatesVersion:
    note: str = ""
    date: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class OpenStatesBill:
    id: str
    state: str
    identifier: str = ""
    title: str = ""
    session: str = ""
    abstracts: tuple[str, ...] = ()
    subjects: tuple[str, ...] = ()
    actions: tuple[OpenStatesAction, ...] = ()
    versions: tuple[OpenStatesVersion, ...] = ()
    source_urls: tuple[str, ...] = ()
    openstates_url: str | None = None

    @classmethod
    def from_json(cls, obj: Any, state: str) -> "OpenStatesBill | None":
        if not isinstance(obj, dict):
            return None
        bill_id = _str_or_none(obj.get("id"))
        if bill_id is None:
            return None

        actions = []
        for a in _dicts(obj.get("actions")):
            order = a.get("order")
            actions.append(
                OpenStatesAction(
                    description=_str_or_none(a.get("description")) or "",
                    date=_str_or_none(a.get("date")),
                    classification=_str_tuple(a.get("classification")),
                    order=order if isinstance(order, int) and not isinstance(order, bool) else 0,
                )
            )

        versions = []
        for v in _dicts(obj.get("versions")):
            links = _dicts(v.get("links"))
            url = _str_or_none(links[0].get("url")) if links else None
            versions.append(OpenStatesVersion(note=_str_or_none(v.get("note")) or "", date=_str_or_none(v.get("date")), url=url))

        return cls(
            id=bill_id,
            state=state,
            identifier=_str_or_none(obj.get("identifier")) or "",
            title=_str_or_none(obj.get("title")) or "",
            session=_str_or_none(obj.get("session")) or "",
            abstracts=_field_strs(obj.get("abstracts"), "abstract"),
            subjects=_str_tuple(obj.get("subject")),
            actions=tuple(actions),
            versions=tuple(versions),
            source_urls=_field_strs(obj.get("sources"), "url"),
            openstates_url=_str_or_none(obj.get("openstates_url")),
        )


def _first_str(obj: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = _str_or_none(obj.get(key))
        if value is not None:
            return value
    return None


def _citation_strings(obj: dict[str, Any]) -> tuple[str, ...]:
    """v4 search gives ``citation`` as strings; cluster records give ``citations`` as parts."""
    out = list(_str_tuple(obj.get("citation")))
    for c in _dicts(obj.get("citations")):
        parts = [_str_or_none(c.get(k)) for k in ("volume", "reporter", "page")]
        if all(parts):
            out.append(" ".join(parts))
    return tuple(out)


@dataclass(frozen=True)
class CourtListenerCase:
    cluster_id: str
    state: str
    case_name: str = ""
    case_name_full: str = ""
    case_name_short: str = ""
    court: str = ""
    docket_number: str = ""
    date_filed: str | None = None
    citations: tuple[str, ...] = ()
    nature_of_suit: str = ""
    precedential_status: str | None = None
    snippet: str | None = None
    absolute_url: str | None = None

    @classmethod
    def from_json(cls, obj: Any, state: str) -> "CourtListenerCase | None":
        if not isinstance(obj, dict):
            return None
        cluster_id = _first_str(obj, "cluster_id", "id")
        if cluster_id is None:
            return None
        snippets = [s for s in _field_strs(obj.get("opinions"), "snippet") if s.strip()]
        snippet = _str_or_none(obj.get("snippet")) or (" ".join(snippets) if snippets else None)
        return cls(
            cluster_id=cluster_id,
            state=state,
            case_name=_first_str(obj, "caseName", "case_name") or "",
            case_name_full=_first_str(obj, "caseNameFull", "case_name_full") or "",
            case_name_short=_first_str(obj, "caseNameShort", "case_name_short") or "",
            court=_first_str(obj, "court", "court_id") or "",
            docket_number=_first_str(obj, "docketNumber", "docket_number", "caseNumber", "case_number") or "",
            date_filed=_first_str(obj, "dateFiled", "date_filed"),
            citations=_citation_strings(obj),
            nature_of_suit=_first_str(obj, "suitNature", "nature_of_suit") or "",
            precedential_status=_first_str(obj, "status", "precedential_status"),
            snippet=snippet,
            absolute_url=_str_or_none(obj.get("absolute_url")),
        )
