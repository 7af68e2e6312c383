"""Error taxonomy for debug sessions.

Every stage fails fast with one of these types. The CLI prints the terminal
error's message and the JSON output uses `to_dict()`.
"""

from __future__ import annotations

from typing import Any


class ErstError(Exception):
    """Base class for erst errors."""

    code = "erst_error"

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        self.message = message
        self.data = data or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a JSON-serializable dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


class DecodeError(ErstError):
    """Result metadata is not valid base64 or not a decodable TransactionMeta."""

    code = "decode_error"


class TransportError(ErstError):
    """Network fetch failed (HTTP error, timeout, cancellation, missing entries)."""

    code = "transport_error"

    def __init__(self, message: str, *, network: str | None = None, data: dict[str, Any] | None = None):
        self.network = network
        payload = dict(data or {})
        if network is not None:
            payload.setdefault("network", network)
        super().__init__(message, payload)


class NotFoundError(TransportError):
    """Transaction hash is unknown to the queried network."""

    code = "not_found"

    def __init__(self, tx_hash: str, *, network: str | None = None):
        self.tx_hash = tx_hash
        super().__init__(
            f"transaction {tx_hash} not found",
            network=network,
            data={"txHash": tx_hash},
        )


class SimulationError(ErstError):
    """The simulator failed to produce a result (distinct from a failed replay)."""

    code = "simulation_error"


class InvalidConfigError(ErstError):
    """Invalid configuration provided."""

    code = "invalid_config"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(
            f"Invalid config: {field} - {reason}",
            data={"field": field, "reason": reason},
        )


class OrchestrationError(ErstError):
    """First failure observed while running per-network pipelines."""

    code = "orchestration_error"

    def __init__(self, cause: BaseException, *, network: str, role: str):
        self.cause = cause
        self.network = network
        self.role = role
        data: dict[str, Any] = {"network": network, "role": role, "causeType": type(cause).__name__}
        if isinstance(cause, ErstError):
            data["cause"] = cause.to_dict()
        super().__init__(f"error on {role} network ({network}): {cause}", data)
