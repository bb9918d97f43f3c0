"""Source connectors (Federal Register, Open States, CourtListener)."""

from .base import Connector, RateLimited, SourceBatch, SourceRequestError, fetch_json
from .court_listener import STATE_COURT_MAP, CourtListenerConnector
from .federal_register import FederalRegisterConnector
from .open_states import STATE_JURISDICTION_MAP, OpenStatesConnector
from .payloads import CourtListenerCase, FederalRegisterDocument, OpenStatesAction, OpenStatesBill, OpenStatesVersion
from .rate_gate import RateGate

__all__ = [
    "Connector",
    "CourtListenerCase",
    "CourtListenerConnector",
    "FederalRegisterConnector",
    "FederalRegisterDocument",
    "OpenStatesAction",
    "OpenStatesBill",
    "OpenStatesConnector",
    "OpenStatesVersion",
    "RateGate",
    "RateLimited",
    "STATE_COURT_MAP",
    "STATE_JURISDICTION_MAP",
    "SourceBatch",
    "SourceRequestError",
    "fetch_json",
]
