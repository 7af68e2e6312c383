"""
Ledger key extraction from transaction result metadata.

The metadata is a base64-encoded XDR `TransactionMeta` union. Its version tag
selects the shape the ledger entry changes live in; every change yields one
ledger key, either directly (removed entries) or by projecting the identifying
fields of a ledger entry (created, updated, state and restored entries).

Keys are returned as base64 XDR strings so that structurally equal keys
compare equal and collapse inside a set.
"""

from __future__ import annotations

import base64
import binascii
import logging
import struct
from collections.abc import Iterable, Iterator

from stellar_sdk import xdr as stellar_xdr

from erst.errors import DecodeError
from erst.models import LedgerKeyRef

logger = logging.getLogger(__name__)

# TransactionMeta union arms understood by the extractor
KNOWN_META_VERSIONS = frozenset({0, 1, 2, 3})

_ChangeType = stellar_xdr.LedgerEntryChangeType
_EntryType = stellar_xdr.LedgerEntryType

# Change kinds that carry a full LedgerEntry, mapped to the union arm holding it
_ENTRY_ARMS: dict[stellar_xdr.LedgerEntryChangeType, str] = {
    _ChangeType.LEDGER_ENTRY_CREATED: "created",
    _ChangeType.LEDGER_ENTRY_UPDATED: "updated",
    _ChangeType.LEDGER_ENTRY_STATE: "state",
}
_restored = getattr(_ChangeType, "LEDGER_ENTRY_RESTORED", None)
if _restored is not None:
    _ENTRY_ARMS[_restored] = "restored"

# entry type -> (union arm, LedgerKey body class, identifying fields)
_KEY_PROJECTIONS: dict[stellar_xdr.LedgerEntryType, tuple[str, type, tuple[str, ...]]] = {
    _EntryType.ACCOUNT: ("account", stellar_xdr.LedgerKeyAccount, ("account_id",)),
    _EntryType.TRUSTLINE: ("trust_line", stellar_xdr.LedgerKeyTrustLine, ("account_id", "asset")),
    _EntryType.OFFER: ("offer", stellar_xdr.LedgerKeyOffer, ("seller_id", "offer_id")),
    _EntryType.DATA: ("data", stellar_xdr.LedgerKeyData, ("account_id", "data_name")),
    _EntryType.CLAIMABLE_BALANCE: (
        "claimable_balance",
        stellar_xdr.LedgerKeyClaimableBalance,
        ("balance_id",),
    ),
    _EntryType.LIQUIDITY_POOL: (
        "liquidity_pool",
        stellar_xdr.LedgerKeyLiquidityPool,
        ("liquidity_pool_id",),
    ),
    _EntryType.CONTRACT_DATA: (
        "contract_data",
        stellar_xdr.LedgerKeyContractData,
        ("contract", "key", "durability"),
    ),
    _EntryType.CONTRACT_CODE: ("contract_code", stellar_xdr.LedgerKeyContractCode, ("hash",)),
    _EntryType.CONFIG_SETTING: (
        "config_setting",
        stellar_xdr.LedgerKeyConfigSetting,
        ("config_setting_id",),
    ),
    _EntryType.TTL: ("ttl", stellar_xdr.LedgerKeyTtl, ("key_hash",)),
}


def decode_meta_version(raw: bytes) -> int:
    """Read the TransactionMeta discriminant (big-endian int32) without decoding the body."""
    if len(raw) < 4:
        raise DecodeError(f"result metadata too short: {len(raw)} bytes", {"length": len(raw)})
    return struct.unpack(">i", raw[:4])[0]


def _b64decode(meta_xdr: str | bytes) -> bytes:
    try:
        return base64.b64decode(meta_xdr, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"base64 decode failed: {e}") from e


def _change_lists(meta: stellar_xdr.TransactionMeta) -> Iterator[stellar_xdr.LedgerEntryChanges]:
    if meta.v == 0:
        for op in meta.operations or []:
            yield op.changes
    elif meta.v == 1:
        yield meta.v1.tx_changes
        for op in meta.v1.operations:
            yield op.changes
    elif meta.v in (2, 3):
        body = meta.v2 if meta.v == 2 else meta.v3
        yield body.tx_changes_before
        for op in body.operations:
            yield op.changes
        yield body.tx_changes_after


def iter_changes(meta: stellar_xdr.TransactionMeta) -> Iterator[stellar_xdr.LedgerEntryChange]:
    """Yield every ledger entry change of a decoded TransactionMeta, in document order."""
    for changes in _change_lists(meta):
        yield from changes.ledger_entry_changes


def ledger_key_for_entry(entry: stellar_xdr.LedgerEntry) -> stellar_xdr.LedgerKey:
    """Project a LedgerEntry onto the LedgerKey addressing it."""
    entry_type = entry.data.type
    projection = _KEY_PROJECTIONS.get(entry_type)
    if projection is None:
        raise DecodeError(f"cannot derive ledger key for entry type {entry_type!r}")
    arm, key_cls, fields = projection
    body = getattr(entry.data, arm)
    if body is None:
        raise DecodeError(f"ledger entry of type {entry_type.name} has no {arm} body")
    key_body = key_cls(**{name: getattr(body, name) for name in fields})
    return stellar_xdr.LedgerKey(type=entry_type, **{arm: key_body})


def ledger_key_for_change(change: stellar_xdr.LedgerEntryChange) -> stellar_xdr.LedgerKey | None:
    """Return the key a change touches, or None for a change kind that carries no key."""
    if change.type == _ChangeType.LEDGER_ENTRY_REMOVED:
        return change.removed
    arm = _ENTRY_ARMS.get(change.type)
    if arm is None:
        logger.debug(f"Skipping ledger entry change of unknown type {change.type!r}")
        return None
    return ledger_key_for_entry(getattr(change, arm))


def ledger_key_ref(key: stellar_xdr.LedgerKey) -> LedgerKeyRef:
    """Encode a LedgerKey as its base64 XDR ref."""
    try:
        return key.to_xdr()
    except (ValueError, TypeError, AttributeError, struct.error) as e:
        raise DecodeError(f"failed to encode ledger key: {e}") from e


def extract_ledger_keys(meta_xdr: str | bytes) -> frozenset[LedgerKeyRef]:
    """
    Extract the de-duplicated set of ledger keys touched by a transaction.

    Args:
        meta_xdr: Base64-encoded XDR `TransactionMeta`.

    Returns:
        Set of base64 XDR `LedgerKey` refs. Unknown metadata versions yield an
        empty set.

    Raises:
        DecodeError: If the blob is not valid base64, the metadata cannot be
            decoded, or a derived key cannot be encoded.
    """
    raw = _b64decode(meta_xdr)
    version = decode_meta_version(raw)
    if version not in KNOWN_META_VERSIONS:
        logger.warning(f"Unsupported TransactionMeta version {version}; replaying without ledger keys")
        return frozenset()

    try:
        meta = stellar_xdr.TransactionMeta.from_xdr_bytes(raw)
    except Exception as e:
        raise DecodeError(f"xdr unmarshal failed: {e}", {"version": version}) from e

    refs: set[LedgerKeyRef] = set()
    for change in iter_changes(meta):
        key = ledger_key_for_change(change)
        if key is not None:
            refs.add(ledger_key_ref(key))
    logger.debug(f"Extracted {len(refs)} ledger keys from TransactionMeta v{version}")
    return frozenset(refs)


def sorted_keys(keys: Iterable[LedgerKeyRef]) -> list[LedgerKeyRef]:
    """Deterministic request order for a key set."""
    return sorted(set(keys))
