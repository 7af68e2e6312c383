"""
Shared pytest fixtures and builders for erst tests.

This module provides:
- XDR builders for TransactionMeta blobs (via stellar_sdk)
- Fake network gateways and simulators for orchestration tests
"""

from __future__ import annotations

import base64
import struct
from collections.abc import Sequence

import pytest
from stellar_sdk import Keypair
from stellar_sdk import xdr as stellar_xdr

from erst.errors import TransportError
from erst.models import LedgerEntrySnapshot, SimulationRequest, SimulationResult, SimulationStatus, TransactionRecord

TX_HASH = "5c0a1234567890abcdef1234567890abcdef1234567890abcdef1234567890ab"

# ---------------------------------------------------------------------------
# XDR builders
# ---------------------------------------------------------------------------


def account_id(seed: int) -> stellar_xdr.AccountID:
    return Keypair.from_raw_ed25519_seed(bytes([seed]) * 32).xdr_account_id()


def ledger_entry(entry_type: stellar_xdr.LedgerEntryType, arm: str, body, *, seq: int = 1) -> stellar_xdr.LedgerEntry:
    return stellar_xdr.LedgerEntry(
        last_modified_ledger_seq=stellar_xdr.Uint32(seq),
        data=stellar_xdr.LedgerEntryData(type=entry_type, **{arm: body}),
        ext=stellar_xdr.LedgerEntryExt(v=0),
    )


def ttl_entry(n: int, *, live_until: int = 1000) -> stellar_xdr.LedgerEntry:
    return ledger_entry(
        stellar_xdr.LedgerEntryType.TTL,
        "ttl",
        stellar_xdr.TTLEntry(
            key_hash=stellar_xdr.Hash(bytes([n]) * 32),
            live_until_ledger_seq=stellar_xdr.Uint32(live_until),
        ),
    )


def ttl_key(n: int) -> stellar_xdr.LedgerKey:
    return stellar_xdr.LedgerKey(
        type=stellar_xdr.LedgerEntryType.TTL,
        ttl=stellar_xdr.LedgerKeyTtl(key_hash=stellar_xdr.Hash(bytes([n]) * 32)),
    )


def data_entry(seed: int, name: bytes, value: bytes) -> stellar_xdr.LedgerEntry:
    return stellar_xdr.LedgerEntry(
        last_modified_ledger_seq=stellar_xdr.Uint32(7),
        data=stellar_xdr.LedgerEntryData(
            type=stellar_xdr.LedgerEntryType.DATA,
            data=stellar_xdr.DataEntry(
                account_id=account_id(seed),
                data_name=stellar_xdr.String64(name),
                data_value=stellar_xdr.DataValue(value),
                ext=stellar_xdr.DataEntryExt(v=0),
            ),
        ),
        ext=stellar_xdr.LedgerEntryExt(v=0),
    )


def data_key(seed: int, name: bytes) -> stellar_xdr.LedgerKey:
    return stellar_xdr.LedgerKey(
        type=stellar_xdr.LedgerEntryType.DATA,
        data=stellar_xdr.LedgerKeyData(account_id=account_id(seed), data_name=stellar_xdr.String64(name)),
    )


def account_key(seed: int) -> stellar_xdr.LedgerKey:
    return stellar_xdr.LedgerKey(
        type=stellar_xdr.LedgerEntryType.ACCOUNT,
        account=stellar_xdr.LedgerKeyAccount(account_id=account_id(seed)),
    )


def created(entry: stellar_xdr.LedgerEntry) -> stellar_xdr.LedgerEntryChange:
    return stellar_xdr.LedgerEntryChange(type=stellar_xdr.LedgerEntryChangeType.LEDGER_ENTRY_CREATED, created=entry)


def updated(entry: stellar_xdr.LedgerEntry) -> stellar_xdr.LedgerEntryChange:
    return stellar_xdr.LedgerEntryChange(type=stellar_xdr.LedgerEntryChangeType.LEDGER_ENTRY_UPDATED, updated=entry)


def state(entry: stellar_xdr.LedgerEntry) -> stellar_xdr.LedgerEntryChange:
    return stellar_xdr.LedgerEntryChange(type=stellar_xdr.LedgerEntryChangeType.LEDGER_ENTRY_STATE, state=entry)


def restored(entry: stellar_xdr.LedgerEntry) -> stellar_xdr.LedgerEntryChange:
    return stellar_xdr.LedgerEntryChange(type=stellar_xdr.LedgerEntryChangeType.LEDGER_ENTRY_RESTORED, restored=entry)


def removed(key: stellar_xdr.LedgerKey) -> stellar_xdr.LedgerEntryChange:
    return stellar_xdr.LedgerEntryChange(type=stellar_xdr.LedgerEntryChangeType.LEDGER_ENTRY_REMOVED, removed=key)


def changes(*items: stellar_xdr.LedgerEntryChange) -> stellar_xdr.LedgerEntryChanges:
    return stellar_xdr.LedgerEntryChanges(list(items))


def op_meta(*items: stellar_xdr.LedgerEntryChange) -> stellar_xdr.OperationMeta:
    return stellar_xdr.OperationMeta(changes=changes(*items))


def meta_v0(*ops: stellar_xdr.OperationMeta) -> str:
    return stellar_xdr.TransactionMeta(v=0, operations=list(ops)).to_xdr()


def meta_v1(tx_changes: stellar_xdr.LedgerEntryChanges, *ops: stellar_xdr.OperationMeta) -> str:
    return stellar_xdr.TransactionMeta(
        v=1,
        v1=stellar_xdr.TransactionMetaV1(tx_changes=tx_changes, operations=list(ops)),
    ).to_xdr()


def meta_v2(
    before: stellar_xdr.LedgerEntryChanges,
    after: stellar_xdr.LedgerEntryChanges,
    *ops: stellar_xdr.OperationMeta,
) -> str:
    return stellar_xdr.TransactionMeta(
        v=2,
        v2=stellar_xdr.TransactionMetaV2(tx_changes_before=before, operations=list(ops), tx_changes_after=after),
    ).to_xdr()


def meta_v3(
    before: stellar_xdr.LedgerEntryChanges,
    after: stellar_xdr.LedgerEntryChanges,
    *ops: stellar_xdr.OperationMeta,
) -> str:
    return stellar_xdr.TransactionMeta(
        v=3,
        v3=stellar_xdr.TransactionMetaV3(
            ext=stellar_xdr.ExtensionPoint(v=0),
            tx_changes_before=before,
            operations=list(ops),
            tx_changes_after=after,
            soroban_meta=None,
        ),
    ).to_xdr()


def meta_with_version(version: int, body: bytes = b"") -> str:
    return base64.b64encode(struct.pack(">i", version) + body).decode("ascii")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def make_record(meta_xdr: str | None = None) -> TransactionRecord:
    return TransactionRecord(
        tx_hash=TX_HASH,
        envelope_xdr="AAAAAgAAAAA=",
        result_xdr="AAAAAAAAAGQAAAAAAAAAAQAAAAAAAAAYAAAAAAAAAAA=",
        result_meta_xdr=meta_xdr or meta_v2(changes(), changes(), op_meta(created(ttl_entry(1)))),
    )


class FakeGateway:
    """In-memory network gateway. `entries` maps key refs to entry XDR."""

    def __init__(
        self,
        network: str,
        entries: dict[str, str] | None = None,
        *,
        record: TransactionRecord | None = None,
        error: Exception | None = None,
        require_all: bool = True,
    ) -> None:
        self.network_name = network
        self.entries = entries or {}
        self.record = record
        self.error = error
        self.require_all = require_all
        self.requested: list[list[str]] = []
        self.closed = False

    async def fetch_transaction(self, tx_hash: str) -> TransactionRecord:
        if self.record is None:
            raise TransportError("no transaction configured", network=self.network_name)
        return self.record

    async def fetch_entries(self, keys: Sequence[str]) -> LedgerEntrySnapshot:
        self.requested.append(list(keys))
        if self.error is not None:
            raise self.error
        missing = [k for k in keys if k not in self.entries]
        if missing and self.require_all:
            raise TransportError(f"{len(missing)} of {len(keys)} ledger entries missing", network=self.network_name)
        return LedgerEntrySnapshot(
            network=self.network_name,
            entries={k: self.entries[k] for k in keys if k in self.entries},
        )

    async def aclose(self) -> None:
        self.closed = True


class FakeSimulator:
    """Returns the result registered for the first entry value of the request.

    Gateways of different networks are given different entry values so each
    network replays to its own result.
    """

    def __init__(self, results: dict[str, SimulationResult] | None = None, default: SimulationResult | None = None):
        self.results = results or {}
        self.default = default or SimulationResult(status=SimulationStatus.SUCCESS, events=("a", "b"))
        self.requests: list[SimulationRequest] = []

    async def simulate(self, request: SimulationRequest) -> SimulationResult:
        self.requests.append(request)
        marker = next(iter(request.ledger_entries.values()), None)
        return self.results.get(marker, self.default)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def record() -> TransactionRecord:
    return make_record()


@pytest.fixture
def fake_simulator() -> FakeSimulator:
    return FakeSimulator()


def entries_for(keys: Sequence[str], value: str = "AAAA") -> dict[str, str]:
    return {k: value for k in keys}
