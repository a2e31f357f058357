from __future__ import annotations

import copy
import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner
from loguru import logger

import vault_keeper.core.config as config
from vault_keeper.runner.cli import keeper_cli

SIM_FACTORY = "vault_keeper.gateways.simulated_gateways.gateway:gateways_from_config"


@pytest.fixture(autouse=True)
def restore_global_state():
    original = copy.deepcopy(config.CONFIG)
    yield
    config.set_config(original)
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def config_file(tmp_path: Path, keeper_config_dict) -> Path:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "keeper": keeper_config_dict,
                "simulation": {
                    "health_factor": "1.2",
                    "collateral_size": "10",
                    "debt_size": "4",
                    "staked_size": "4",
                },
            }
        )
    )
    return path


def _invoke(config_file: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(
        keeper_cli, ["--config", str(config_file), "--log-level", "ERROR", *args]
    )


def test_plan_leverage_loop(config_file):
    result = _invoke(config_file, "plan", "leverage-loop")

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["kind"] == "LEVERAGE_LOOP"
    assert [s["operation"] for s in data["steps"]] == [
        "BORROW",
        "SWAP",
        "STAKE",
        "BRIDGE_ASSET",
    ]
    assert data["steps"][0]["params"]["amount"] == "2"


def test_plan_leverage_loop_amount_override(config_file):
    result = _invoke(config_file, "plan", "leverage-loop", "--amount", "0.75")

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["steps"][0]["params"]["amount"] == "0.75"


def test_plan_rejects_bad_amount(config_file):
    result = _invoke(config_file, "plan", "leverage-loop", "--amount", "0")

    assert result.exit_code == 2
    assert "must be positive" in result.output


def test_plan_unwind_uses_simulated_state(config_file):
    result = _invoke(config_file, "plan", "unwind")

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["kind"] == "UNWIND"
    assert len(data["steps"]) == 5
    assert data["state"]["staked_size"] == "4"
    assert data["steps"][-1]["params"]["amount"] == "10"


def test_tick_simulate_unwinds_unhealthy_vault(config_file):
    result = _invoke(config_file, "tick", "--simulate")

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["decision"] == "UNWIND"
    assert data["state"] == "SUCCEEDED"
    assert data["escalation"] == "NONE"


def test_tick_with_gateway_factory(config_file):
    result = _invoke(config_file, "tick", "--gateways", SIM_FACTORY)

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["state"] == "NO_ACTION"


@pytest.mark.parametrize(
    "ref",
    ["no_colon", "vault_keeper.missing_module:factory", "vault_keeper:nothing"],
)
def test_tick_rejects_bad_factory(config_file, ref):
    result = _invoke(config_file, "tick", "--gateways", ref)

    assert result.exit_code == 2
    assert "--gateways" in result.output


def test_tick_requires_a_gateway_source(config_file):
    result = _invoke(config_file, "tick")

    assert result.exit_code == 2
    assert "--simulate" in result.output


def test_tick_rejects_both_sources(config_file):
    result = _invoke(config_file, "tick", "--simulate", "--gateways", SIM_FACTORY)

    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_missing_keeper_section(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"simulation": {}}))

    result = _invoke(path, "plan", "leverage-loop")

    assert result.exit_code == 1
    assert "keeper section missing" in result.output


def test_missing_config_file(tmp_path: Path):
    result = _invoke(tmp_path / "absent.json", "plan", "leverage-loop")

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_run_stops_after_max_ticks(config_file, tmp_path: Path):
    log_file = tmp_path / "logs" / "keeper.log"

    result = _invoke(
        config_file,
        "run",
        "--simulate",
        "--tick-seconds",
        "0.01",
        "--max-ticks",
        "2",
        "--log-file",
        str(log_file),
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"ok": True, "result": {"ticks": 2}}
    assert log_file.exists()
