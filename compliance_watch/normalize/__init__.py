"""Record normalization stage."""

from .normalize import (
    case_citation,
    dedupe_records,
    latest_action,
    normalize_court_listener_case,
    normalize_federal_register,
    normalize_open_states_bill,
    open_states_status,
    parse_date,
)

__all__ = [
    "case_citation",
    "dedupe_records",
    "latest_action",
    "normalize_court_listener_case",
    "normalize_federal_register",
    "normalize_open_states_bill",
    "open_states_status",
    "parse_date",
]
