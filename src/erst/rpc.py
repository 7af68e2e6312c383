"""
Network gateway: Horizon for transaction lookups, Soroban RPC for ledger entries.

Both endpoints are reached through one `httpx.AsyncClient` per network. Transient
failures (connection errors, timeouts, HTTP 429/5xx) are retried here with
backoff; everything else surfaces immediately as a `TransportError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

import httpx

from erst.constants import (
    CUSTOM_NETWORK_NAME,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY,
    LEDGER_ENTRIES_BATCH_SIZE,
    NETWORK_ALIASES,
    RPC_REQUEST_TIMEOUT_SECONDS,
)
from erst.errors import InvalidConfigError, NotFoundError, TransportError
from erst.models import LedgerEntrySnapshot, LedgerKeyRef, TransactionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    horizon_url: str
    network_passphrase: str
    soroban_rpc_url: str = ""


TESTNET = NetworkConfig(
    name="testnet",
    horizon_url="https://horizon-testnet.stellar.org/",
    network_passphrase="Test SDF Network ; September 2015",
    soroban_rpc_url="https://soroban-testnet.stellar.org",
)

MAINNET = NetworkConfig(
    name="mainnet",
    horizon_url="https://horizon.stellar.org/",
    network_passphrase="Public Global Stellar Network ; September 2015",
    soroban_rpc_url="https://mainnet.stellar.validationcloud.io/v1/soroban-rpc-demo",
)

FUTURENET = NetworkConfig(
    name="futurenet",
    horizon_url="https://horizon-futurenet.stellar.org/",
    network_passphrase="Test SDF Future Network ; October 2022",
    soroban_rpc_url="https://rpc-futurenet.stellar.org",
)

NETWORKS: dict[str, NetworkConfig] = {cfg.name: cfg for cfg in (TESTNET, MAINNET, FUTURENET)}


def resolve_network(name: str) -> NetworkConfig:
    """Look up a predefined network by name ("public" is accepted for mainnet)."""
    key = name.strip().lower()
    key = NETWORK_ALIASES.get(key, key)
    cfg = NETWORKS.get(key)
    if cfg is None:
        raise InvalidConfigError("network", f"unknown network {name!r} (use 'testnet', 'mainnet', or 'futurenet')")
    return cfg


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _backoff_delay(base_delay: float, attempt: int) -> float:
    return min(DEFAULT_RETRY_MAX_DELAY, base_delay * 2 ** (attempt - 1))


def _chunks(items: Sequence[LedgerKeyRef], size: int) -> list[Sequence[LedgerKeyRef]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class NetworkClient:
    """Fetches transactions and ledger entries from one Stellar network."""

    def __init__(
        self,
        config: NetworkConfig,
        *,
        http: httpx.AsyncClient | None = None,
        timeout_s: float = RPC_REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        require_all_entries: bool = True,
    ) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.require_all_entries = require_all_entries

    @classmethod
    def for_network(
        cls,
        name: str,
        *,
        horizon_url: str | None = None,
        soroban_rpc_url: str | None = None,
        **kwargs: Any,
    ) -> NetworkClient:
        """Client for a predefined network, optionally pointing at other endpoints."""
        config = resolve_network(name)
        if horizon_url:
            config = replace(config, horizon_url=horizon_url)
        if soroban_rpc_url:
            config = replace(config, soroban_rpc_url=soroban_rpc_url)
        return cls(config, **kwargs)

    @classmethod
    def custom(cls, config: NetworkConfig, **kwargs: Any) -> NetworkClient:
        """Client for a private network; Horizon URL and passphrase are mandatory."""
        if not config.horizon_url:
            raise InvalidConfigError("horizon_url", "horizon URL is required for custom network")
        if not config.network_passphrase:
            raise InvalidConfigError("network_passphrase", "network passphrase is required for custom network")
        return cls(config, **kwargs)

    @property
    def network_name(self) -> str:
        return self.config.name or CUSTOM_NETWORK_NAME

    @property
    def network_passphrase(self) -> str:
        return self.config.network_passphrase

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> NetworkClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send one HTTP request, retrying connection failures and HTTP 429/5xx.

        Any other response, including 4xx, is returned to the caller as-is.
        """
        attempt = 1
        while True:
            try:
                resp = await self._http.request(method, url, **kwargs)
            except httpx.TransportError as e:
                reason, status, cause = f"{type(e).__name__}: {e}", None, e
            except httpx.HTTPError as e:
                raise TransportError(
                    f"{method} {url} failed: {type(e).__name__}: {e}", network=self.network_name
                ) from e
            else:
                if not _is_transient(resp.status_code):
                    return resp
                reason, status, cause = f"HTTP {resp.status_code}", resp.status_code, None

            if attempt >= self.max_attempts:
                raise TransportError(
                    f"{method} {url} failed after {attempt} attempt(s): {reason}",
                    network=self.network_name,
                    data={"status": status} if status is not None else None,
                ) from cause

            delay = _backoff_delay(self.retry_base_delay, attempt)
            logger.warning(
                f"{self.network_name}: {method} {url} failed ({reason}), "
                f"retry {attempt}/{self.max_attempts - 1} in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _json_body(self, resp: httpx.Response, *, context: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"{context} returned invalid JSON: {e}", network=self.network_name) from e

    async def fetch_transaction(self, tx_hash: str) -> TransactionRecord:
        """
        Fetch the envelope, result and result metadata of a transaction from Horizon.

        Raises:
            NotFoundError: If Horizon answers 404.
            TransportError: On any other HTTP or transport failure, or an incomplete body.
        """
        url = f"{self.config.horizon_url.rstrip('/')}/transactions/{tx_hash}"
        resp = await self._request("GET", url)
        if resp.status_code == 404:
            raise NotFoundError(tx_hash, network=self.network_name)
        if resp.status_code >= 400:
            raise TransportError(
                f"failed to fetch transaction {tx_hash}: HTTP {resp.status_code}",
                network=self.network_name,
                data={"status": resp.status_code},
            )

        body = self._json_body(resp, context="horizon transaction detail")
        fields = ("envelope_xdr", "result_xdr", "result_meta_xdr")
        if not isinstance(body, dict):
            raise TransportError("horizon transaction detail is not a JSON object", network=self.network_name)
        missing = [f for f in fields if not isinstance(body.get(f), str) or not body.get(f)]
        if missing:
            raise TransportError(
                f"horizon transaction detail is missing {', '.join(missing)}",
                network=self.network_name,
                data={"missing": missing},
            )

        logger.debug(f"Fetched transaction {tx_hash} from {self.network_name}")
        return TransactionRecord(
            tx_hash=tx_hash,
            envelope_xdr=body["envelope_xdr"],
            result_xdr=body["result_xdr"],
            result_meta_xdr=body["result_meta_xdr"],
        )

    async def _get_ledger_entries_batch(self, keys: Sequence[LedgerKeyRef], request_id: int) -> list[dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "getLedgerEntries",
            "params": {"keys": list(keys)},
        }
        resp = await self._request("POST", self.config.soroban_rpc_url, json=payload)
        if resp.status_code >= 400:
            raise TransportError(
                f"getLedgerEntries failed: HTTP {resp.status_code}",
                network=self.network_name,
                data={"status": resp.status_code},
            )

        body = self._json_body(resp, context="getLedgerEntries")
        if not isinstance(body, dict):
            raise TransportError("getLedgerEntries response is not a JSON object", network=self.network_name)
        if body.get("error") is not None:
            err = body["error"] if isinstance(body["error"], dict) else {"message": str(body["error"])}
            raise TransportError(
                f"getLedgerEntries error: {err.get('message', 'unknown error')}",
                network=self.network_name,
                data={"rpcError": err},
            )

        result = body.get("result") or {}
        entries = result.get("entries") if isinstance(result, dict) else None
        if entries is None:
            return []
        if not isinstance(entries, list):
            raise TransportError("getLedgerEntries result.entries is not a list", network=self.network_name)
        return [e for e in entries if isinstance(e, dict)]

    async def fetch_entries(self, keys: Sequence[LedgerKeyRef]) -> LedgerEntrySnapshot:
        """
        Fetch the current value of each ledger key via Soroban RPC `getLedgerEntries`.

        Keys are requested in batches; the snapshot preserves request order.

        Raises:
            TransportError: On HTTP/JSON-RPC failure, or when `require_all_entries`
                is set and some keys have no entry on this network.
        """
        if not self.config.soroban_rpc_url:
            raise TransportError("no Soroban RPC URL configured", network=self.network_name)
        if not keys:
            return LedgerEntrySnapshot(network=self.network_name, entries={})

        found: dict[LedgerKeyRef, str] = {}
        for request_id, batch in enumerate(_chunks(list(keys), LEDGER_ENTRIES_BATCH_SIZE), start=1):
            for entry in await self._get_ledger_entries_batch(batch, request_id):
                key, value = entry.get("key"), entry.get("xdr")
                if isinstance(key, str) and isinstance(value, str):
                    found[key] = value

        entries = {k: found[k] for k in keys if k in found}
        missing = [k for k in keys if k not in found]
        if missing:
            if self.require_all_entries:
                raise TransportError(
                    f"{len(missing)} of {len(keys)} ledger entries missing on {self.network_name}",
                    network=self.network_name,
                    data={"missing": missing},
                )
            logger.warning(f"{len(missing)} of {len(keys)} ledger entries missing on {self.network_name}")

        return LedgerEntrySnapshot(network=self.network_name, entries=entries)
