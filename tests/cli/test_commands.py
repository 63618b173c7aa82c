from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeLedger
from solders.pubkey import Pubkey
from typer.testing import CliRunner

import solkit.cli as cli
from solkit.cli import CLIOptions, app
from solkit.core.config import ConfigManager, ToolkitConfig
from solkit.toolkit import SolanaToolkit

runner = CliRunner()


class Recorder:
    """Builds toolkits backed by one shared fake ledger and remembers the options used."""

    def __init__(self) -> None:
        self.ledger = FakeLedger()
        self.options: list[CLIOptions] = []

    def __call__(self, options: CLIOptions) -> SolanaToolkit:
        self.options.append(options)
        config = ToolkitConfig(health_check_interval=3600, timeout=5.0)

        def factory(endpoint: str, commitment: str) -> FakeLedger:
            self.ledger.endpoint = endpoint
            self.ledger.commitment = commitment
            return self.ledger

        return SolanaToolkit(config=config, client_factory=factory, sleep=lambda _seconds: None)


@pytest.fixture()
def recorder(monkeypatch: pytest.MonkeyPatch) -> Recorder:
    recorder = Recorder()
    monkeypatch.setattr(cli, "build_toolkit", recorder)
    return recorder


def test_balance_command(recorder: Recorder) -> None:
    address = str(Pubkey.new_unique())
    recorder.ledger.balances[address] = 2_000_000_000

    result = runner.invoke(app, ["balance", address])

    assert result.exit_code == 0, result.stdout
    assert "2.000000000 SOL" in result.stdout
    assert recorder.ledger.closed is True


def test_global_options_reach_the_toolkit_builder(recorder: Recorder) -> None:
    runner.invoke(app, ["--network", "testnet", "--commitment", "finalized", "balance", str(Pubkey.new_unique())])

    [options] = recorder.options
    assert options.network == "testnet"
    assert options.commitment == "finalized"


def test_invalid_address_reports_error_code(recorder: Recorder) -> None:
    result = runner.invoke(app, ["balance", "bogus"])

    assert result.exit_code == 1
    assert "INVALID_INPUT" in result.stdout


def test_account_command_shows_owner(recorder: Recorder) -> None:
    address = str(Pubkey.new_unique())
    recorder.ledger.accounts[address] = {
        "lamports": 99,
        "owner": "11111111111111111111111111111111",
        "executable": False,
        "rentEpoch": 3,
    }

    result = runner.invoke(app, ["account", address])

    assert result.exit_code == 0, result.stdout
    assert "11111111111111111111111111111111" in result.stdout
    assert "99" in result.stdout


def test_missing_account_exits_non_zero(recorder: Recorder) -> None:
    result = runner.invoke(app, ["account", str(Pubkey.new_unique())])

    assert result.exit_code == 1
    assert "NOT_FOUND" in result.stdout


def test_airdrop_command(recorder: Recorder) -> None:
    address = str(Pubkey.new_unique())

    result = runner.invoke(app, ["airdrop", address, "--sol", "0.5"])

    assert result.exit_code == 0, result.stdout
    assert "Airdropped 0.500000000 SOL" in result.stdout
    assert recorder.ledger.airdrops == [(address, 500_000_000)]


def test_airdrop_over_limit_rejected(recorder: Recorder) -> None:
    result = runner.invoke(app, ["airdrop", str(Pubkey.new_unique()), "--sol", "3"])

    assert result.exit_code == 1
    assert recorder.ledger.airdrops == []


def test_health_command_reports_unhealthy_endpoint(recorder: Recorder) -> None:
    recorder.ledger.fail("get_slot", ConnectionError("refused"))

    result = runner.invoke(app, ["health"])

    assert result.exit_code == 1
    assert "is_healthy" in result.stdout


def test_health_command_ok(recorder: Recorder) -> None:
    result = runner.invoke(app, ["health"])

    assert result.exit_code == 0, result.stdout
    assert "True" in result.stdout


def test_tx_command_prints_json(recorder: Recorder) -> None:
    recorder.ledger.transactions["sig1"] = {"slot": 55, "meta": {"fee": 5000}}

    result = runner.invoke(app, ["tx", "sig1"])

    assert result.exit_code == 0, result.stdout
    assert '"slot": 55' in result.stdout


def test_networks_marks_active_network(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOLKIT_NETWORK", raising=False)
    monkeypatch.delenv("SOLKIT_RPC_URL", raising=False)
    ConfigManager(config_dir=tmp_path).update(network="testnet")

    result = runner.invoke(app, ["--config-dir", str(tmp_path), "networks"])

    assert result.exit_code == 0, result.stdout
    assert "testnet (active)" in result.stdout
    assert "https://api.devnet.solana.com" in result.stdout


def test_build_toolkit_applies_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOLKIT_NETWORK", raising=False)
    monkeypatch.delenv("SOLKIT_RPC_URL", raising=False)

    toolkit = cli.build_toolkit(
        CLIOptions(rpc_url="https://rpc.example.org", commitment="processed", verbose=True, config_dir=tmp_path)
    )

    assert toolkit.connection.endpoint == "https://rpc.example.org"
    assert toolkit.connection.commitment == "processed"
    assert toolkit.config.enable_logging is True
    assert toolkit.connection.started is False
