"""
Simulation gateway backed by the `erst-sim` binary.

The simulator reads one JSON request on stdin and prints one JSON object on
stdout: `{"status": "...", "error": "...", "events": [...]}`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from erst.constants import SIMULATOR_BINARY_NAME, SIMULATOR_TIMEOUT_SECONDS
from erst.errors import SimulationError
from erst.models import SimulationRequest, SimulationResult, SimulationStatus

logger = logging.getLogger(__name__)

_TERMINATE_GRACE_SECONDS = 5.0

__all__ = [
    "SimulatorRunner",
    "check_simulator_binary",
    "default_simulator_binary",
    "parse_simulation_response",
]


def default_simulator_binary() -> Path:
    """
    Locate the simulator binary.

    Checks (in order):
    1. `ERST_SIMULATOR_BIN`
    2. `simulator/target/release/erst-sim` in the repo root
    3. `erst-sim` on PATH
    4. `/usr/local/bin/erst-sim`

    Returns:
        Path to the binary (may not exist; `check_simulator_binary` validates it).
    """
    env_bin = os.environ.get("ERST_SIMULATOR_BIN")
    if env_bin:
        return Path(env_bin)
    exe = f"{SIMULATOR_BINARY_NAME}.exe" if os.name == "nt" else SIMULATOR_BINARY_NAME
    repo_root = Path(__file__).resolve().parents[2]
    local = repo_root / "simulator" / "target" / "release" / exe
    if local.exists():
        return local
    on_path = shutil.which(exe)
    if on_path:
        return Path(on_path)
    return Path("/usr/local/bin") / exe


def _event_text(ev: Any) -> str:
    if isinstance(ev, str):
        return ev
    return json.dumps(ev, sort_keys=True)


def _load_response_object(text: str) -> Any:
    # The simulator may log around its JSON line; fall back to the outermost braces
    try:
        return json.loads(text)
    except json.JSONDecodeError as first:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise SimulationError(f"simulator returned invalid JSON: {first.msg} (output: {text[:200]!r})") from first
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise SimulationError(f"simulator returned invalid JSON: {e.msg} (output: {text[:200]!r})") from e


def parse_simulation_response(text: str) -> SimulationResult:
    """
    Parse simulator stdout into a SimulationResult.

    Raises:
        SimulationError: If the output is not a JSON object with a known status
            and a list of events.
    """
    data = _load_response_object(text)
    if not isinstance(data, dict):
        raise SimulationError(f"simulator returned non-object JSON: {type(data).__name__}")

    try:
        status = SimulationStatus.parse(data.get("status"))
    except ValueError as e:
        raise SimulationError(f"simulator returned unknown status {data.get('status')!r}") from e

    events = data.get("events") or []
    if not isinstance(events, list):
        raise SimulationError(f"simulator events must be a list, got {type(events).__name__}")

    error = data.get("error")
    return SimulationResult(
        status=status,
        error=str(error) if error else None,
        events=tuple(_event_text(ev) for ev in events),
    )


def check_simulator_binary(path: Path) -> Path:
    """Fail with SimulationError unless `path` is an executable regular file."""
    if not path.exists():
        raise SimulationError(
            f"simulator binary not found: {path} (build it with `cargo build --release` or set ERST_SIMULATOR_BIN)",
            {"path": str(path)},
        )
    if not path.is_file():
        raise SimulationError(f"simulator binary is not a regular file: {path}", {"path": str(path)})
    if not os.access(path, os.X_OK):
        raise SimulationError(f"simulator binary is not executable: {path}", {"path": str(path)})
    return path


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Stop a simulator that is still running: SIGTERM, then SIGKILL after a grace period."""
    try:
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            proc.kill()
            await proc.wait()
    except ProcessLookupError:
        pass


class SimulatorRunner:
    """Runs one replay per `simulate()` call in a fresh simulator process."""

    def __init__(self, binary: Path, *, timeout_s: float = SIMULATOR_TIMEOUT_SECONDS) -> None:
        self.binary = binary
        self.timeout_s = timeout_s

    @classmethod
    def from_path(cls, path: Path | None = None, **kwargs: Any) -> SimulatorRunner:
        return cls(check_simulator_binary(path or default_simulator_binary()), **kwargs)

    async def simulate(self, request: SimulationRequest) -> SimulationResult:
        payload = json.dumps(request.to_payload()).encode("utf-8")
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.binary),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SimulationError(f"failed to start simulator {self.binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(payload), timeout=self.timeout_s)
        except TimeoutError as e:
            raise SimulationError(f"simulator timed out after {self.timeout_s}s") from e
        finally:
            if proc.returncode is None:
                await _reap(proc)

        if proc.returncode != 0:
            stderr_snip = stderr.decode("utf-8", errors="replace")[:500] if stderr else "N/A"
            raise SimulationError(
                f"simulator failed (exit {proc.returncode})\nStderr: {stderr_snip}",
                {"exitCode": proc.returncode},
            )

        result = parse_simulation_response(stdout.decode("utf-8", errors="replace"))
        logger.debug(f"Simulation finished with status {result.status.value} and {len(result.events)} events")
        return result
