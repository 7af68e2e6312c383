"""Explicit configuration for one debug session."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from erst.constants import DEFAULT_NETWORK, DEFAULT_SESSION_TIMEOUT_SECONDS, RPC_REQUEST_TIMEOUT_SECONDS
from erst.errors import InvalidConfigError
from erst.rpc import resolve_network


def read_env_file(path: Path) -> dict[str, str]:
    """
    Read `KEY=VALUE` assignments from a .env file; a missing file reads as empty.

    Blank and `#` lines are skipped and an `export ` prefix is ignored. One pair
    of matching quotes around a value is removed; nothing is expanded.
    """
    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip().removeprefix("export ").strip()
        if line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = value
    return values


def _parse_float(raw: str, *, field: str) -> float:
    try:
        return float(raw)
    except ValueError as e:
        raise InvalidConfigError(field, f"must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class DebugConfig:
    network: str = DEFAULT_NETWORK
    compare_network: str | None = None
    # Endpoint overrides apply to the primary network only
    rpc_url: str | None = None
    soroban_rpc_url: str | None = None
    simulator_bin: Path | None = None
    # Whole-session deadline in seconds; 0 disables it
    timeout_s: float = DEFAULT_SESSION_TIMEOUT_SECONDS
    request_timeout_s: float = RPC_REQUEST_TIMEOUT_SECONDS
    require_all_entries: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> DebugConfig:
        """Defaults taken from ERST_* variables (process env merged with a .env file)."""
        cfg = cls()
        if env.get("ERST_NETWORK"):
            cfg = replace(cfg, network=env["ERST_NETWORK"])
        if env.get("ERST_RPC_URL"):
            cfg = replace(cfg, rpc_url=env["ERST_RPC_URL"])
        if env.get("ERST_SOROBAN_RPC_URL"):
            cfg = replace(cfg, soroban_rpc_url=env["ERST_SOROBAN_RPC_URL"])
        if env.get("ERST_SIMULATOR_BIN"):
            cfg = replace(cfg, simulator_bin=Path(env["ERST_SIMULATOR_BIN"]))
        if env.get("ERST_TIMEOUT_SECONDS"):
            cfg = replace(cfg, timeout_s=_parse_float(env["ERST_TIMEOUT_SECONDS"], field="ERST_TIMEOUT_SECONDS"))
        return cfg

    @property
    def networks(self) -> tuple[str, ...]:
        if self.compare_network:
            return (self.network, self.compare_network)
        return (self.network,)

    def validate(self) -> DebugConfig:
        """
        Check network names and limits.

        Returns:
            A copy with canonical network names ("public" becomes "mainnet").

        Raises:
            InvalidConfigError: On an unknown network, a negative timeout, or a
                compare network identical to the primary one.
        """
        try:
            network = resolve_network(self.network).name
        except InvalidConfigError as e:
            raise InvalidConfigError("network", e.reason) from e

        compare = None
        if self.compare_network:
            try:
                compare = resolve_network(self.compare_network).name
            except InvalidConfigError as e:
                raise InvalidConfigError("compare_network", e.reason) from e
            if compare == network:
                raise InvalidConfigError("compare_network", f"must differ from the primary network ({network})")

        if self.timeout_s < 0:
            raise InvalidConfigError("timeout_s", f"must be >= 0, got {self.timeout_s}")
        if self.request_timeout_s <= 0:
            raise InvalidConfigError("request_timeout_s", f"must be > 0, got {self.request_timeout_s}")

        return replace(self, network=network, compare_network=compare)
