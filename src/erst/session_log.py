"""
Per-session progress log.

Each debug session gets its own directory under the log root holding
`session.json` (hash, networks, endpoint overrides) and `events.jsonl`
(one row per pipeline step). Simulation results are not written here.
"""

from __future__ import annotations

import json
import secrets
import time
from pathlib import Path
from typing import Any

# Every row the debug pipeline writes, in the order a successful session emits them.
SESSION_EVENTS = (
    "session_started",
    "tx_fetched",
    "keys_extracted",
    "entries_fetched",
    "simulation_finished",
    "session_finished",
    "session_failed",
)


def new_session_id(tx_hash: str | None = None) -> str:
    """UTC timestamp, the first 12 hex digits of the hash (if any), and a random suffix."""
    parts = [time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())]
    if tx_hash:
        prefix = "".join(ch for ch in tx_hash.lower() if ch in "0123456789abcdef")[:12]
        if prefix:
            parts.append(prefix)
    parts.append(secrets.token_hex(3))
    return "_".join(parts)


class SessionLog:
    def __init__(self, root: Path) -> None:
        root.mkdir(parents=True, exist_ok=True)
        self.root = root
        self.metadata_path = root / "session.json"
        self.events_path = root / "events.jsonl"

    @classmethod
    def create(cls, base_dir: Path, *, tx_hash: str | None = None) -> SessionLog:
        return cls(base_dir / new_session_id(tx_hash))

    def write_metadata(self, **fields: Any) -> None:
        self.metadata_path.write_text(json.dumps(fields, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def event(self, name: str, **fields: Any) -> None:
        """
        Append one row: `{"t": <unix seconds>, "event": name, **fields}`.

        Raises:
            ValueError: If `name` is not one of SESSION_EVENTS.
        """
        if name not in SESSION_EVENTS:
            raise ValueError(f"unknown session event: {name!r}")
        row = {"t": int(time.time()), "event": name, **fields}
        with self.events_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(row, sort_keys=True) + "\n")

    def read_events(self) -> list[dict[str, Any]]:
        if not self.events_path.exists():
            return []
        return [json.loads(line) for line in self.events_path.read_text(encoding="utf-8").splitlines() if line]
