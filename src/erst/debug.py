"""
Debug entry point: fetch a transaction, extract the ledger keys it touched,
replay it on one or two networks and diff the outcomes.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any

from erst import orchestrator
from erst.config import DebugConfig
from erst.diff import diff_results
from erst.errors import ErstError, InvalidConfigError, TransportError
from erst.keys import extract_ledger_keys, sorted_keys
from erst.models import DebugOutcome
from erst.rpc import NetworkClient
from erst.session_log import SessionLog
from erst.simulator import SimulatorRunner

logger = logging.getLogger(__name__)

_TX_HASH_RE = re.compile(r"^[0-9a-fA-F]{64}$")

ClientFactory = Callable[..., Any]


def validate_tx_hash(tx_hash: str) -> str:
    """Return the lower-cased hash, or raise InvalidConfigError if it is not 32 hex-encoded bytes."""
    s = tx_hash.strip()
    if not _TX_HASH_RE.match(s):
        raise InvalidConfigError("tx_hash", f"expected 64 hex characters, got {tx_hash!r}")
    return s.lower()


async def _debug(
    tx_hash: str,
    config: DebugConfig,
    simulator: Any,
    client_factory: ClientFactory,
    session_log: SessionLog | None,
) -> DebugOutcome:
    client_kwargs = {
        "timeout_s": config.request_timeout_s,
        "require_all_entries": config.require_all_entries,
    }
    primary = client_factory(
        config.network,
        horizon_url=config.rpc_url,
        soroban_rpc_url=config.soroban_rpc_url,
        **client_kwargs,
    )
    clients = [primary]
    try:
        record = await primary.fetch_transaction(tx_hash)
        logger.info(f"Transaction fetched successfully. Envelope size: {len(record.envelope_xdr)} bytes")
        if session_log is not None:
            session_log.event("tx_fetched", network=config.network, envelope_size=len(record.envelope_xdr))

        keys = sorted_keys(extract_ledger_keys(record.result_meta_xdr))
        logger.info(f"Extracted {len(keys)} ledger keys")
        if session_log is not None:
            session_log.event("keys_extracted", count=len(keys))

        pipelines = [orchestrator.NetworkPipeline(config.network, primary, orchestrator.PRIMARY)]
        if config.compare_network:
            compare = client_factory(config.compare_network, **client_kwargs)
            clients.append(compare)
            pipelines.append(orchestrator.NetworkPipeline(config.compare_network, compare, orchestrator.COMPARE))

        results = await orchestrator.run(record, keys, pipelines, simulator, session_log=session_log)
    finally:
        for client in clients:
            await client.aclose()

    diff = None
    if config.compare_network:
        diff = diff_results(
            results[config.network],
            results[config.compare_network],
            primary_network=config.network,
            compare_network=config.compare_network,
        )

    return DebugOutcome(
        tx_hash=tx_hash,
        record=record,
        keys=tuple(keys),
        results=results,
        diff=diff,
    )


async def debug(
    tx_hash: str,
    config: DebugConfig,
    *,
    simulator: Any = None,
    client_factory: ClientFactory = NetworkClient.for_network,
    session_log: SessionLog | None = None,
) -> DebugOutcome:
    """
    Replay `tx_hash` on the configured network(s).

    Args:
        tx_hash: Transaction hash (64 hex characters).
        config: Session configuration; validated here.
        simulator: Simulation gateway; defaults to the `erst-sim` binary.
        client_factory: Builds a network gateway from a network name and
            keyword options (see `NetworkClient.for_network`).
        session_log: Optional per-session progress log.

    Returns:
        DebugOutcome with one result per network and, when comparing, a DiffReport.

    Raises:
        InvalidConfigError: On a malformed hash or configuration.
        NotFoundError / TransportError: If the transaction cannot be fetched
            or the session deadline expires.
        DecodeError: If the result metadata cannot be decoded.
        OrchestrationError: If fetching entries or simulating fails on any network.
        SimulationError: If the simulator binary cannot be located.
    """
    config = config.validate()
    tx_hash = validate_tx_hash(tx_hash)
    if simulator is None:
        simulator = SimulatorRunner.from_path(config.simulator_bin)

    if session_log is not None:
        session_log.write_metadata(
            tx_hash=tx_hash,
            network=config.network,
            compare_network=config.compare_network,
            rpc_url=config.rpc_url,
            soroban_rpc_url=config.soroban_rpc_url,
        )
        session_log.event("session_started", tx_hash=tx_hash)

    session = _debug(tx_hash, config, simulator, client_factory, session_log)
    try:
        if config.timeout_s:
            try:
                outcome = await asyncio.wait_for(session, timeout=config.timeout_s)
            except TimeoutError as e:
                raise TransportError(f"debug session exceeded its {config.timeout_s}s deadline") from e
        else:
            outcome = await session
    except ErstError as e:
        if session_log is not None:
            session_log.event("session_failed", code=e.code, message=e.message)
        raise

    if session_log is not None:
        session_log.event(
            "session_finished",
            networks=list(outcome.results),
            identical=outcome.diff.is_identical if outcome.diff is not None else None,
        )
    return outcome
