"""CLI tests: argument handling, exit codes and rendering."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from conftest import TX_HASH, make_record
from rich.console import Console

from erst import cli
from erst.config import DebugConfig
from erst.diff import diff_results
from erst.errors import InvalidConfigError, OrchestrationError, TransportError
from erst.models import DebugOutcome, SimulationResult, SimulationStatus


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("ERST_NETWORK", "ERST_RPC_URL", "ERST_SOROBAN_RPC_URL", "ERST_SIMULATOR_BIN", "ERST_TIMEOUT_SECONDS"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def recording_console(monkeypatch) -> Console:
    con = Console(record=True, width=160, color_system=None)
    monkeypatch.setattr(cli, "console", con)
    return con


def parse(tmp_path, *argv: str):
    return cli.build_parser().parse_args(["debug", "--env-file", str(tmp_path / "missing.env"), *argv])


def outcome(*, compare: bool = False) -> DebugOutcome:
    a = SimulationResult(status=SimulationStatus.SUCCESS, events=("e0", "e1"))
    results = {"mainnet": a}
    diff = None
    if compare:
        b = SimulationResult(status=SimulationStatus.FAILURE, error="trap [wasm]", events=("e0",))
        results["testnet"] = b
        diff = diff_results(a, b, primary_network="mainnet", compare_network="testnet")
    return DebugOutcome(tx_hash=TX_HASH, record=make_record(), keys=("k1",), results=results, diff=diff)


def test_config_from_args_overrides_env(tmp_path) -> None:
    args = parse(
        tmp_path,
        TX_HASH,
        "--network",
        "testnet",
        "--compare-network",
        "futurenet",
        "--timeout",
        "30",
        "--allow-missing-entries",
    )
    cfg = cli.config_from_args(args, {"ERST_NETWORK": "mainnet", "ERST_RPC_URL": "http://horizon.local"})
    assert cfg.network == "testnet"
    assert cfg.compare_network == "futurenet"
    assert cfg.rpc_url == "http://horizon.local"
    assert cfg.timeout_s == 30.0
    assert cfg.require_all_entries is False


def test_config_from_args_defaults(tmp_path) -> None:
    cfg = cli.config_from_args(parse(tmp_path, TX_HASH), {})
    assert cfg == DebugConfig()


def test_env_file_supplies_defaults(tmp_path, recording_console) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("ERST_NETWORK=futurenet\n")
    args = cli.build_parser().parse_args(["debug", "--env-file", str(env_file), TX_HASH])

    with patch.object(cli, "debug", new=AsyncMock(return_value=outcome())) as mock_debug:
        assert cli.run_debug(args) == 0

    config = mock_debug.call_args.args[1]
    assert config.network == "futurenet"


def test_run_debug_success_renders_results(tmp_path, recording_console) -> None:
    with patch.object(cli, "debug", new=AsyncMock(return_value=outcome(compare=True))) as mock_debug:
        code = cli.run_debug(parse(tmp_path, TX_HASH, "-n", "mainnet", "--compare-network", "testnet"))

    assert code == 0
    mock_debug.assert_awaited_once()
    text = recording_console.export_text()
    assert "Primary Network: mainnet" in text
    assert "Comparing against Network: testnet" in text
    assert "Status Mismatch" in text
    assert "trap [wasm]" in text
    assert "<missing>" in text


def test_run_debug_invalid_config_exits_2(tmp_path, recording_console) -> None:
    with patch.object(cli, "debug", new=AsyncMock()) as mock_debug:
        code = cli.run_debug(parse(tmp_path, TX_HASH, "--network", "devnet"))
    assert code == 2
    mock_debug.assert_not_called()
    assert "Invalid config: network" in recording_console.export_text()


def test_run_debug_invalid_hash_exits_2(tmp_path, recording_console) -> None:
    err = InvalidConfigError("tx_hash", "expected 64 hex characters")
    with patch.object(cli, "debug", new=AsyncMock(side_effect=err)):
        assert cli.run_debug(parse(tmp_path, "xyz")) == 2


def test_run_debug_failure_exits_1(tmp_path, recording_console) -> None:
    err = OrchestrationError(TransportError("1 of 2 ledger entries missing"), network="futurenet", role="compare")
    with patch.object(cli, "debug", new=AsyncMock(side_effect=err)):
        code = cli.run_debug(parse(tmp_path, TX_HASH, "--network", "testnet", "--compare-network", "futurenet"))
    assert code == 1
    assert "error on compare network (futurenet)" in recording_console.export_text()


def test_run_debug_json_output(tmp_path, recording_console) -> None:
    with patch.object(cli, "debug", new=AsyncMock(return_value=outcome(compare=True))):
        code = cli.run_debug(parse(tmp_path, TX_HASH, "--compare-network", "testnet", "--json"))
    assert code == 0
    data = json.loads(recording_console.export_text())
    assert data["tx_hash"] == TX_HASH
    assert data["results"]["mainnet"]["events"] == ["e0", "e1"]
    assert data["diff"]["status_match"] is False


def test_run_debug_json_error(tmp_path, recording_console) -> None:
    err = TransportError("boom", network="mainnet")
    with patch.object(cli, "debug", new=AsyncMock(side_effect=err)):
        assert cli.run_debug(parse(tmp_path, TX_HASH, "--json")) == 1
    data = json.loads(recording_console.export_text())
    assert data["error"]["code"] == "transport_error"


def test_run_debug_writes_session_log(tmp_path, recording_console) -> None:
    log_dir = tmp_path / "logs"
    with patch.object(cli, "debug", new=AsyncMock(return_value=outcome())) as mock_debug:
        cli.run_debug(parse(tmp_path, TX_HASH, "--log-dir", str(log_dir)))
    session_log = mock_debug.call_args.kwargs["session_log"]
    assert session_log.root.parent == log_dir
    assert TX_HASH[:12] in session_log.root.name


def test_main_exits_with_run_code(tmp_path, recording_console) -> None:
    with patch.object(cli, "debug", new=AsyncMock(return_value=outcome())):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["debug", "--env-file", str(tmp_path / "none"), TX_HASH])
    assert exc_info.value.code == 0


def test_main_requires_subcommand() -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])
    assert exc_info.value.code == 2


def test_render_diff_all_match() -> None:
    con = Console(record=True, width=120, color_system=None)
    a = SimulationResult(status=SimulationStatus.SUCCESS, events=("x",))
    cli.render_diff(con, diff_results(a, a, primary_network="mainnet", compare_network="testnet"))
    text = con.export_text()
    assert "Status Match: SUCCESS" in text
    assert "all 1 events match" in text
