"""
Centralized constants for erst configuration.

This module provides single-source-of-truth defaults for configuration values
that are used across multiple modules.

Environment variable overrides:
- ERST_NETWORK: Default primary network (testnet, mainnet, futurenet)
- ERST_RPC_URL: Override the Horizon endpoint of the primary network
- ERST_SOROBAN_RPC_URL: Override the Soroban RPC endpoint of the primary network
- ERST_SIMULATOR_BIN: Path to the erst-sim binary
- ERST_TIMEOUT_SECONDS: Overall deadline for one debug session
"""

from __future__ import annotations

import os

# Networks accepted by --network / --compare-network
SUPPORTED_NETWORKS = ("testnet", "mainnet", "futurenet")

# "public" is the Horizon name for mainnet
NETWORK_ALIASES = {"public": "mainnet"}

DEFAULT_NETWORK = os.environ.get("ERST_NETWORK", "mainnet")

# Name reported by clients built from a custom NetworkConfig
CUSTOM_NETWORK_NAME = "custom"

# =============================================================================
# Timeouts
# =============================================================================

# Per-request HTTP timeout (seconds)
RPC_REQUEST_TIMEOUT_SECONDS = 30.0

# Simulator subprocess timeout (seconds)
SIMULATOR_TIMEOUT_SECONDS = 120.0

# Overall session deadline (seconds); 0 disables it
DEFAULT_SESSION_TIMEOUT_SECONDS = float(os.environ.get("ERST_TIMEOUT_SECONDS", "0") or 0)

# =============================================================================
# Retry Configuration
# =============================================================================

# Transient gateway failures (connect errors, 429, 5xx) only
DEFAULT_RETRY_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_RETRY_MAX_DELAY = 10.0  # seconds

# =============================================================================
# Soroban RPC limits
# =============================================================================

# getLedgerEntries accepts at most 200 keys per call
LEDGER_ENTRIES_BATCH_SIZE = 200

# =============================================================================
# Diff rendering
# =============================================================================

# Stands in for an event index beyond one side's event list
MISSING_EVENT = "<missing>"

# Simulator binary name
SIMULATOR_BINARY_NAME = "erst-sim"
