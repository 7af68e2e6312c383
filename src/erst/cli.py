"""
erst command line.

Usage:
    erst debug <tx-hash>
    erst debug --network testnet <tx-hash>
    erst debug --network mainnet --compare-network testnet <tx-hash>
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from erst.config import DebugConfig, read_env_file
from erst.constants import SUPPORTED_NETWORKS
from erst.debug import debug
from erst.errors import ErstError, InvalidConfigError
from erst.models import DebugOutcome, DiffReport, SimulationResult, SimulationStatus
from erst.session_log import SessionLog

logger = logging.getLogger(__name__)

console = Console()

_STATUS_STYLE = {
    SimulationStatus.SUCCESS: "green",
    SimulationStatus.FAILURE: "yellow",
    SimulationStatus.ERROR: "red",
}


def render_result(console: Console, network: str, result: SimulationResult) -> None:
    console.print(f"\n[bold]--- Result for {escape(network)} ---[/bold]")
    style = _STATUS_STYLE.get(result.status, "white")
    console.print(f"Status: [{style}]{result.status.value}[/{style}]")
    if result.error:
        console.print(f"Error: {escape(result.error)}")
    console.print(f"Events: {len(result.events)}")
    for i, ev in enumerate(result.events):
        console.print(f"  \\[{i}] {escape(ev)}")


def render_diff(console: Console, report: DiffReport) -> None:
    net1, net2 = escape(report.primary_network), escape(report.compare_network)
    console.print(f"\n[bold]=== Comparison: {net1} vs {net2} ===[/bold]")
    if report.status_match:
        console.print(f"Status Match: [green]{report.primary_status.value}[/green]")
    else:
        console.print(
            f"Status Mismatch: [red]{report.primary_status.value}[/red] ({net1}) vs "
            f"[red]{report.compare_status.value}[/red] ({net2})"
        )

    mismatches = report.mismatches
    if not mismatches:
        console.print(f"Event Diff: all {len(report.events)} events match")
        return

    table = Table(title=f"Event Diff ({len(mismatches)} mismatching of {len(report.events)})")
    table.add_column("#", justify="right")
    table.add_column(report.primary_network)
    table.add_column(report.compare_network)
    for ev in mismatches:
        primary, compare = ev.display()
        table.add_row(
            str(ev.index),
            f"[dim]{escape(primary)}[/dim]" if ev.primary_missing else escape(primary),
            f"[dim]{escape(compare)}[/dim]" if ev.compare_missing else escape(compare),
        )
    console.print(table)


def render_outcome(console: Console, outcome: DebugOutcome) -> None:
    for network, result in outcome.results.items():
        render_result(console, network, result)
    if outcome.diff is not None:
        render_diff(console, outcome.diff)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="erst", description="Replay and compare Stellar transactions")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser(
        "debug",
        help="Debug a failed Soroban transaction",
        description="Fetch a transaction from a Stellar network and replay it against current ledger state.",
    )
    p.add_argument("tx_hash", help="Transaction hash (64 hex characters)")
    p.add_argument(
        "--network",
        "-n",
        type=str,
        default=None,
        help=f"Stellar network to use ({', '.join(SUPPORTED_NETWORKS)}); default: ERST_NETWORK or mainnet",
    )
    p.add_argument("--rpc-url", type=str, default=None, help="Custom Horizon URL for the primary network")
    p.add_argument("--soroban-rpc-url", type=str, default=None, help="Custom Soroban RPC URL for the primary network")
    p.add_argument(
        "--compare-network",
        type=str,
        default=None,
        help=f"Network to compare against ({', '.join(SUPPORTED_NETWORKS)})",
    )
    p.add_argument("--simulator-bin", type=Path, default=None, help="Path to the erst-sim binary")
    p.add_argument("--timeout", type=float, default=None, help="Deadline for the whole session in seconds")
    p.add_argument(
        "--allow-missing-entries",
        action="store_true",
        help="Replay even if some ledger entries are absent on a network",
    )
    p.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Path to a dotenv file (default: .env in the current working directory).",
    )
    p.add_argument("--log-dir", type=Path, default=None, help="Write a JSONL progress log under this directory.")
    p.add_argument("--json", action="store_true", help="Print the outcome as JSON.")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser


def config_from_args(args: argparse.Namespace, env: dict[str, str]) -> DebugConfig:
    cfg = DebugConfig.from_env(env)
    overrides: dict[str, object] = {}
    if args.network:
        overrides["network"] = args.network
    if args.compare_network:
        overrides["compare_network"] = args.compare_network
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    if args.soroban_rpc_url:
        overrides["soroban_rpc_url"] = args.soroban_rpc_url
    if args.simulator_bin is not None:
        overrides["simulator_bin"] = args.simulator_bin
    if args.timeout is not None:
        overrides["timeout_s"] = args.timeout
    if args.allow_missing_entries:
        overrides["require_all_entries"] = False
    return replace(cfg, **overrides)


def run_debug(args: argparse.Namespace) -> int:
    env = {**read_env_file(args.env_file), **os.environ}
    try:
        config = config_from_args(args, env).validate()
    except InvalidConfigError as e:
        console.print(f"[red]error:[/red] {escape(e.message)}")
        return 2

    session_log = None
    if args.log_dir is not None:
        session_log = SessionLog.create(args.log_dir, tx_hash=args.tx_hash)

    if not args.json:
        console.print(f"Debugging transaction: {escape(args.tx_hash)}")
        console.print(f"Primary Network: {config.network}")
        if config.compare_network:
            console.print(f"Comparing against Network: {config.compare_network}")

    try:
        outcome = asyncio.run(debug(args.tx_hash, config, session_log=session_log))
    except InvalidConfigError as e:
        console.print(f"[red]error:[/red] {escape(e.message)}")
        return 2
    except ErstError as e:
        if args.json:
            console.print_json(json.dumps({"error": e.to_dict()}))
        else:
            console.print(f"[red]error:[/red] {escape(e.message)}")
        return 1

    if args.json:
        console.print_json(json.dumps(outcome.to_dict()))
    else:
        render_outcome(console, outcome)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    if args.command == "debug":
        sys.exit(run_debug(args))


if __name__ == "__main__":
    main()
