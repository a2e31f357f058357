from __future__ import annotations

import copy
import json
from decimal import Decimal
from pathlib import Path

import pytest

import vault_keeper.core.config as config
from vault_keeper.core.config import KeeperConfig


@pytest.fixture
def restore_global_config() -> None:
    original = copy.deepcopy(config.CONFIG)
    yield
    config.set_config(original)


def test_resolve_config_path_defaults_to_repo_root(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("VAULT_KEEPER_CONFIG_PATH", raising=False)
    monkeypatch.delenv("VAULT_KEEPER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

    repo_root = Path(__file__).resolve().parents[2]
    assert config.resolve_config_path() == repo_root / "config.json"


def test_resolve_config_path_env_relative_is_repo_relative(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("VAULT_KEEPER_CONFIG_PATH", "config.example.json")
    monkeypatch.chdir(tmp_path)

    repo_root = Path(__file__).resolve().parents[2]
    assert config.resolve_config_path() == repo_root / "config.example.json"


def test_example_config_parses(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("VAULT_KEEPER_CONFIG_PATH", "config.example.json")
    monkeypatch.chdir(tmp_path)

    raw = config.load_config_json(require_exists=True)
    keeper = config.get_keeper_config(raw)

    assert keeper.safety_threshold == Decimal("1.5")
    assert isinstance(config.get_simulation_config(raw), dict)


def test_load_config_json_missing_file(tmp_path: Path) -> None:
    missing = tmp_path / "nope.json"

    assert config.load_config_json(missing) == {}
    with pytest.raises(FileNotFoundError):
        config.load_config_json(missing, require_exists=True)


def test_load_config_json_invalid_json(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")

    assert config.load_config_json(bad) == {}
    with pytest.raises(ValueError, match="Invalid JSON"):
        config.load_config_json(bad, require_exists=True)


def test_load_config_updates_global(
    tmp_path: Path, keeper_config_dict, restore_global_config
) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"keeper": keeper_config_dict}))
    config.load_config(path)

    assert config.CONFIG["keeper"]["vault_id"] == keeper_config_dict["vault_id"]
    assert config.get_keeper_config().debt_asset == "USDC"


def test_defaults(keeper_config_dict) -> None:
    raw = {
        k: keeper_config_dict[k]
        for k in (
            "vault_id",
            "collateral_asset",
            "debt_asset",
            "liquid_staking_token",
            "borrow_amount",
        )
    }
    cfg = KeeperConfig.from_dict(raw)

    assert cfg.safety_threshold == Decimal("1.5")
    assert cfg.opportunity_margin == Decimal("1.3")
    assert cfg.bridge_timeout_s == 1800.0
    assert cfg.step_timeout_s == 300.0
    assert cfg.read_attempts == 2
    assert cfg.origin_chain_id == 1
    assert cfg.destination_chain_id == 10


def test_vault_id_is_checksummed(keeper_config_dict) -> None:
    keeper_config_dict["vault_id"] = keeper_config_dict["vault_id"].lower()

    cfg = KeeperConfig.from_dict(keeper_config_dict)

    assert cfg.vault_id == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def test_chain_codes_are_accepted(keeper_config_dict) -> None:
    keeper_config_dict["origin_chain_id"] = "arbitrum"
    keeper_config_dict["destination_chain_id"] = "base"

    cfg = KeeperConfig.from_dict(keeper_config_dict)

    assert (cfg.origin_chain_id, cfg.destination_chain_id) == (42161, 8453)


def test_step_timeout_may_be_disabled(keeper_config_dict) -> None:
    keeper_config_dict["step_timeout_s"] = None
    assert KeeperConfig.from_dict(keeper_config_dict).step_timeout_s is None


@pytest.mark.parametrize(
    "key,value,message",
    [
        ("vault_id", "not-an-address", "not an EVM address"),
        ("vault_id", "", "vault_id is required"),
        ("debt_asset", None, "debt_asset is required"),
        ("borrow_amount", "0", "borrow_amount must be positive"),
        ("borrow_amount", "abc", "borrow_amount is not a number"),
        ("safety_threshold", "-1", "safety_threshold must be positive"),
        ("opportunity_margin", "Infinity", "opportunity_margin must be positive"),
        ("destination_chain_id", 1, "must differ"),
        ("bridge_timeout_s", 0, "bridge_timeout_s must be positive"),
        ("read_attempts", 0, "read_attempts must be >= 1"),
        ("bridge_timeout_s", "soon", "bridge_timeout_s is not a number"),
        ("tick_seconds", "NaN", "tick_seconds must be positive"),
        ("step_timeout_s", [5], "step_timeout_s is not a number"),
        ("read_attempts", "two", "read_attempts is not a number"),
    ],
)
def test_invalid_values(keeper_config_dict, key, value, message) -> None:
    keeper_config_dict[key] = value

    with pytest.raises(ValueError, match=message):
        KeeperConfig.from_dict(keeper_config_dict)


def test_missing_keeper_section() -> None:
    with pytest.raises(ValueError, match="keeper section missing"):
        config.get_keeper_config({"simulation": {}})


def test_to_dict_is_json_serializable(keeper_config) -> None:
    data = json.loads(json.dumps(keeper_config.to_dict()))

    assert data["borrow_amount"] == "2"
    assert data["vault_id"] == keeper_config.vault_id
