"""
Value types shared by the extractor, gateways, orchestrator and differ.

All XDR payloads are carried as base64 strings and treated as opaque, except
for the result metadata which the key extractor decodes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from erst.constants import MISSING_EVENT

# Base64 of an XDR-encoded LedgerKey
LedgerKeyRef = str


@dataclass(frozen=True)
class TransactionRecord:
    tx_hash: str
    envelope_xdr: str
    result_xdr: str
    result_meta_xdr: str


@dataclass(frozen=True)
class LedgerEntrySnapshot:
    """Current ledger entries of one network, keyed by the ref used to request them."""

    network: str
    entries: Mapping[LedgerKeyRef, str]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class SimulationRequest:
    envelope_xdr: str
    result_meta_xdr: str
    ledger_entries: Mapping[LedgerKeyRef, str]

    @classmethod
    def build(cls, record: TransactionRecord, snapshot: LedgerEntrySnapshot) -> SimulationRequest:
        return cls(
            envelope_xdr=record.envelope_xdr,
            result_meta_xdr=record.result_meta_xdr,
            ledger_entries=dict(snapshot.entries),
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON object written to the simulator's stdin."""
        return {
            "envelope_xdr": self.envelope_xdr,
            "result_meta_xdr": self.result_meta_xdr,
            "ledger_entries": dict(self.ledger_entries),
        }


class SimulationStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, raw: Any) -> SimulationStatus:
        """Accept the simulator's status in any letter case ("success", "Error", ...)."""
        if not isinstance(raw, str):
            raise ValueError(f"status must be a string, got {type(raw).__name__}")
        return cls(raw.strip().upper())


@dataclass(frozen=True)
class SimulationResult:
    status: SimulationStatus
    error: str | None = None
    events: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "error": self.error,
            "events": list(self.events),
        }


@dataclass(frozen=True)
class EventComparison:
    """One index of the event-by-event comparison. None marks a side with no event at this index."""

    index: int
    primary: str | None
    compare: str | None

    @property
    def matches(self) -> bool:
        # An absent event never matches, whatever the other side holds
        return self.primary is not None and self.compare is not None and self.primary == self.compare

    @property
    def primary_missing(self) -> bool:
        return self.primary is None

    @property
    def compare_missing(self) -> bool:
        return self.compare is None

    def display(self) -> tuple[str, str]:
        """Both sides as text, with `<missing>` for an absent event."""
        return (
            MISSING_EVENT if self.primary is None else self.primary,
            MISSING_EVENT if self.compare is None else self.compare,
        )


@dataclass(frozen=True)
class DiffReport:
    primary_network: str
    compare_network: str
    primary_status: SimulationStatus
    compare_status: SimulationStatus
    events: tuple[EventComparison, ...] = field(default_factory=tuple)

    @property
    def status_match(self) -> bool:
        return self.primary_status == self.compare_status

    @property
    def mismatches(self) -> tuple[EventComparison, ...]:
        return tuple(ev for ev in self.events if not ev.matches)

    @property
    def is_identical(self) -> bool:
        return self.status_match and not self.mismatches

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_network": self.primary_network,
            "compare_network": self.compare_network,
            "primary_status": self.primary_status.value,
            "compare_status": self.compare_status.value,
            "status_match": self.status_match,
            "events": [
                {"index": ev.index, "primary": ev.primary, "compare": ev.compare, "match": ev.matches}
                for ev in self.events
            ],
        }


@dataclass(frozen=True)
class DebugOutcome:
    tx_hash: str
    record: TransactionRecord
    keys: tuple[LedgerKeyRef, ...]
    results: dict[str, SimulationResult]
    diff: DiffReport | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "ledger_keys": list(self.keys),
            "results": {network: res.to_dict() for network, res in self.results.items()},
            "diff": self.diff.to_dict() if self.diff is not None else None,
        }
