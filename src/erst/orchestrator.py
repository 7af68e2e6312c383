"""
Per-network replay pipelines: fetch entries -> build request -> simulate.

With one network the pipeline runs inline. With two, each pipeline runs as its
own asyncio task and owns its outcome; both are joined before anything is
inspected, then the primary outcome is checked before the compare outcome so
that the reported error does not depend on which task finished first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from erst.errors import InvalidConfigError, OrchestrationError, TransportError
from erst.models import LedgerKeyRef, SimulationRequest, SimulationResult, TransactionRecord
from erst.session_log import SessionLog

logger = logging.getLogger(__name__)

PRIMARY = "primary"
COMPARE = "compare"


@dataclass(frozen=True)
class NetworkPipeline:
    """A network name and the gateway serving its ledger entries."""

    network: str
    gateway: Any
    role: str = PRIMARY


async def run_pipeline(
    record: TransactionRecord,
    keys: Sequence[LedgerKeyRef],
    pipeline: NetworkPipeline,
    simulator: Any,
    *,
    session_log: SessionLog | None = None,
) -> SimulationResult:
    snapshot = await pipeline.gateway.fetch_entries(keys)
    logger.info(f"Fetched {len(snapshot)} ledger entries from {pipeline.network}")
    if session_log is not None:
        session_log.event("entries_fetched", network=pipeline.network, count=len(snapshot))

    request = SimulationRequest.build(record, snapshot)
    logger.info(f"Running simulation on {pipeline.network}...")
    result = await simulator.simulate(request)
    if session_log is not None:
        session_log.event(
            "simulation_finished",
            network=pipeline.network,
            status=result.status.value,
            events=len(result.events),
        )
    return result


async def run(
    record: TransactionRecord,
    keys: Sequence[LedgerKeyRef],
    pipelines: Sequence[NetworkPipeline],
    simulator: Any,
    *,
    session_log: SessionLog | None = None,
) -> dict[str, SimulationResult]:
    """
    Replay a transaction on one or two networks.

    Args:
        record: The fetched transaction.
        keys: Ledger keys to fetch on every network.
        pipelines: One or two pipelines; the first is the primary network.
        simulator: Object with `async simulate(SimulationRequest) -> SimulationResult`.
        session_log: Optional per-session progress log.

    Returns:
        One result per network, in pipeline order.

    Raises:
        OrchestrationError: Wrapping the first failure (primary before compare).
            No result is returned when any pipeline fails.
        InvalidConfigError: If not given one or two pipelines.
    """
    if not 1 <= len(pipelines) <= 2:
        raise InvalidConfigError("networks", f"expected one or two networks, got {len(pipelines)}")

    if len(pipelines) == 1:
        pipeline = pipelines[0]
        try:
            result = await run_pipeline(record, keys, pipeline, simulator, session_log=session_log)
        except Exception as e:
            raise OrchestrationError(e, network=pipeline.network, role=pipeline.role) from e
        return {pipeline.network: result}

    tasks = [
        asyncio.create_task(
            run_pipeline(record, keys, pipeline, simulator, session_log=session_log),
            name=f"erst-pipeline-{pipeline.network}",
        )
        for pipeline in pipelines
    ]
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    results: dict[str, SimulationResult] = {}
    for pipeline, outcome in zip(pipelines, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            outcome = TransportError(f"pipeline for {pipeline.network} was cancelled", network=pipeline.network)
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            raise OrchestrationError(outcome, network=pipeline.network, role=pipeline.role) from outcome
        results[pipeline.network] = outcome
    return results
