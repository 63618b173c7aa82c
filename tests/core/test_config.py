from pathlib import Path
from typing import Any

import pytest
import tomli_w
import tomllib

from solkit.core.config import (
    CONFIG_FILENAME,
    NETWORKS,
    ConfigManager,
    ToolkitConfig,
    build_config,
    resolve_endpoint,
    validate_commitment,
)
from solkit.core.errors import ErrorCode, ToolkitError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOLKIT_RPC_URL", raising=False)
    monkeypatch.delenv("SOLKIT_NETWORK", raising=False)


def make_manager(tmp_path: Path, **kwargs: Any) -> ConfigManager:
    return ConfigManager(config_dir=tmp_path, **kwargs)


def test_defaults_resolve_to_devnet() -> None:
    config = ToolkitConfig()
    assert config.network == "devnet"
    assert config.commitment == "confirmed"
    assert config.max_retries == 3
    assert config.endpoint() == NETWORKS["devnet"]


def test_rpc_url_takes_precedence_over_network() -> None:
    config = ToolkitConfig(network="mainnet", rpc_url="https://custom.rpc")
    assert config.endpoint() == "https://custom.rpc"


def test_resolve_endpoint_passes_urls_through() -> None:
    assert resolve_endpoint("http://localhost:8899") == "http://localhost:8899"
    assert resolve_endpoint("testnet") == NETWORKS["testnet"]


def test_resolve_endpoint_rejects_unknown_names() -> None:
    with pytest.raises(ToolkitError) as excinfo:
        resolve_endpoint("moonnet")
    assert excinfo.value.code is ErrorCode.INVALID_NETWORK
    assert excinfo.value.context["available_networks"] == sorted(NETWORKS)


def test_invalid_commitment_raises() -> None:
    with pytest.raises(ToolkitError) as excinfo:
        validate_commitment("instant")
    assert excinfo.value.code is ErrorCode.INVALID_COMMITMENT
    with pytest.raises(ToolkitError):
        ToolkitConfig(commitment="instant")


def test_non_positive_retry_values_are_configuration_errors() -> None:
    with pytest.raises(ToolkitError) as excinfo:
        build_config({"max_retries": 0})
    assert excinfo.value.code is ErrorCode.CONFIGURATION_ERROR
    assert any("max_retries" in message for message in excinfo.value.context["errors"])


def test_retry_policy_mirrors_config() -> None:
    policy = ToolkitConfig(max_retries=5, retry_delay=0.5, max_retry_delay=4.0).retry_policy()
    assert policy.max_attempts == 5
    assert policy.base_delay == 0.5
    assert policy.max_delay == 4.0


def test_updated_can_clear_optional_settings() -> None:
    config = ToolkitConfig(rpc_url="https://custom.rpc")

    cleared = config.updated(max_retry_delay=None, rpc_url=None)

    assert cleared.max_retry_delay is None
    assert cleared.retry_policy().max_delay is None
    assert cleared.rpc_url is None
    assert cleared.endpoint() == "https://api.devnet.solana.com"
    assert config.max_retry_delay == 30.0


def test_load_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = make_manager(tmp_path).load()
    assert config == ToolkitConfig()


def test_save_and_reload_round_trip(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.save(ToolkitConfig(network="testnet", max_retries=7))

    stored = tomllib.loads((tmp_path / CONFIG_FILENAME).read_text())
    assert stored["network"] == "testnet"
    assert "rpc_url" not in stored

    reloaded = manager.load()
    assert reloaded.network == "testnet"
    assert reloaded.max_retries == 7


def test_update_persists_fields(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.update(commitment="finalized", retry_delay=2.0)

    reloaded = manager.load()
    assert reloaded.commitment == "finalized"
    assert reloaded.retry_delay == 2.0


def test_override_config_path_wins(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(tomli_w.dumps({"network": "testnet", "networks": {"custom": "https://a"}}))
    override_path = tmp_path / "custom.toml"
    override_path.write_text(tomli_w.dumps({"network": "mainnet", "networks": {"extra": "https://b"}}))

    config = make_manager(tmp_path, override_config_path=override_path).load()

    assert config.network == "mainnet"
    assert config.networks == {"custom": "https://a", "extra": "https://b"}


def test_environment_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(tomli_w.dumps({"network": "testnet"}))
    monkeypatch.setenv("SOLKIT_NETWORK", "mainnet")
    monkeypatch.setenv("SOLKIT_RPC_URL", "https://env.rpc")

    config = make_manager(tmp_path).load()

    assert config.network == "mainnet"
    assert config.endpoint() == "https://env.rpc"


def test_invalid_toml_raises_configuration_error(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("invalid = [this is not toml")

    with pytest.raises(ToolkitError) as excinfo:
        make_manager(tmp_path).load()
    assert excinfo.value.code is ErrorCode.CONFIGURATION_ERROR
