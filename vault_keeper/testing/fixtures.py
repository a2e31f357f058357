import pytest

from vault_keeper.core.config import KeeperConfig
from vault_keeper.gateways.simulated_gateways.gateway import SimulatedVault

TEST_VAULT_ID = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.fixture
def keeper_config_dict():
    return {
        "vault_id": TEST_VAULT_ID,
        "collateral_asset": "WETH",
        "debt_asset": "USDC",
        "liquid_staking_token": "wstETH",
        "borrow_amount": "2",
        "origin_chain_id": 1,
        "destination_chain_id": 10,
        "bridge_timeout_s": 0.5,
        "step_timeout_s": 0.5,
        "read_attempts": 2,
        "tick_seconds": 0.05,
    }


@pytest.fixture
def keeper_config(keeper_config_dict):
    return KeeperConfig.from_dict(keeper_config_dict)


@pytest.fixture
def simulated_vault(keeper_config):
    """A healthy, levered vault: HF 2.0, 10 WETH collateral, 4 USDC debt
    restaked as 4 wstETH, with no yield opportunity."""
    return SimulatedVault.from_config(
        keeper_config,
        {
            "health_factor": "2.0",
            "collateral_size": "10",
            "debt_size": "4",
            "staked_size": "4",
            "yield_differential": "0.01",
            "bridge_cost": "0.01",
        },
    )
