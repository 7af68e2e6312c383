"""Replay Stellar transactions against current ledger state and diff the outcomes across networks."""

from __future__ import annotations

from erst.config import DebugConfig
from erst.debug import debug
from erst.diff import diff_results
from erst.errors import (
    DecodeError,
    ErstError,
    InvalidConfigError,
    NotFoundError,
    OrchestrationError,
    SimulationError,
    TransportError,
)
from erst.keys import extract_ledger_keys
from erst.models import (
    DebugOutcome,
    DiffReport,
    EventComparison,
    LedgerEntrySnapshot,
    SimulationRequest,
    SimulationResult,
    SimulationStatus,
    TransactionRecord,
)

__all__ = [
    "DebugConfig",
    "DebugOutcome",
    "DecodeError",
    "DiffReport",
    "ErstError",
    "EventComparison",
    "InvalidConfigError",
    "LedgerEntrySnapshot",
    "NotFoundError",
    "OrchestrationError",
    "SimulationError",
    "SimulationRequest",
    "SimulationResult",
    "SimulationStatus",
    "TransactionRecord",
    "TransportError",
    "debug",
    "diff_results",
    "extract_ledger_keys",
]
