"""
Structural comparison of two simulation results.

Events are compared by index over the longer list; an index past the end of one
list is recorded as None and always counts as a mismatch, even against an event
whose text is `<missing>`. Event strings are compared as-is: never reordered,
deduplicated or interpreted.
"""

from __future__ import annotations

from erst.models import DiffReport, EventComparison, SimulationResult


def _event_at(events: tuple[str, ...], index: int) -> str | None:
    return events[index] if index < len(events) else None


def diff_results(
    primary: SimulationResult,
    compare: SimulationResult,
    *,
    primary_network: str = "primary",
    compare_network: str = "compare",
) -> DiffReport:
    n = max(len(primary.events), len(compare.events))
    comparisons = tuple(
        EventComparison(index=i, primary=_event_at(primary.events, i), compare=_event_at(compare.events, i))
        for i in range(n)
    )
    return DiffReport(
        primary_network=primary_network,
        compare_network=compare_network,
        primary_status=primary.status,
        compare_status=compare.status,
        events=comparisons,
    )
