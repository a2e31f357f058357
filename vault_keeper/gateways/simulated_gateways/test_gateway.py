import asyncio
from decimal import Decimal

import pytest

from vault_keeper.core.gateways.models import BRIDGE, SWAP
from vault_keeper.core.gateways.results import (
    GatewayRejected,
    GatewayUnavailable,
    Ok,
    Timeout,
)
from vault_keeper.gateways.simulated_gateways.gateway import (
    SimulatedVault,
    build_simulated_gateways,
    gateways_from_config,
)


@pytest.fixture
def vault(keeper_config):
    return SimulatedVault.from_config(
        keeper_config,
        {
            "health_factor": "1.9",
            "collateral_size": "10",
            "debt_size": "4",
            "staked_size": "4",
            "balances": {"WETH": "1"},
        },
    )


@pytest.fixture
def gateways(vault):
    gateways, _ = build_simulated_gateways(vault)
    return gateways


def test_from_config_seeds_ledger(vault, keeper_config):
    assert vault.vault_id == keeper_config.vault_id
    assert vault.health_factor == Decimal("1.9")
    assert vault.collateral_size == Decimal("10")
    assert vault.balances == {"WETH": Decimal("1")}
    assert vault.chain_id == keeper_config.origin_chain_id


def test_swap_rates_parse_pairs(keeper_config):
    vault = SimulatedVault.from_config(
        keeper_config, {"swap_rates": {"USDC->wstETH": "0.0003"}}
    )
    assert vault.rate("USDC", "wstETH") == Decimal("0.0003")
    assert vault.rate("wstETH", "USDC") == Decimal("1")


@pytest.mark.asyncio
async def test_reads_reflect_ledger(gateways, vault):
    hf = await gateways.lending.get_health_factor(vault.vault_id.lower())
    position = await gateways.lending.get_position(vault.vault_id)
    staked = await gateways.restaking.get_staked_balance(vault.vault_id, "wstETH")

    assert hf == Ok(Decimal("1.9"))
    assert position.value.debt_size == Decimal("4")
    assert staked.value == Decimal("4")


@pytest.mark.asyncio
async def test_unknown_vault_is_rejected(gateways):
    result = await gateways.lending.get_health_factor(
        "0x0000000000000000000000000000000000000001"
    )
    assert isinstance(result, GatewayRejected)


@pytest.mark.asyncio
async def test_borrow_swap_stake_moves_balances(gateways, vault):
    await gateways.lending.borrow("USDC", Decimal("2"))
    swap = await gateways.swap.swap("USDC", "wstETH", Decimal("2"))
    await gateways.restaking.stake("wstETH", Decimal("2"))

    assert isinstance(swap.value, SWAP)
    assert swap.value.gateway == "SWAP"
    assert vault.debt_size == Decimal("6")
    assert vault.staked_size == Decimal("6")
    assert vault.balances["USDC"] == Decimal("0")
    assert vault.balances["wstETH"] == Decimal("0")
    assert vault.operations == ["borrow", "swap", "stake"]


@pytest.mark.asyncio
async def test_spending_more_than_held_is_rejected(gateways, vault):
    result = await gateways.swap.swap("USDC", "wstETH", Decimal("5"))

    assert isinstance(result, GatewayRejected)
    assert "insufficient USDC" in result.reason
    assert vault.balances.get("wstETH") is None


@pytest.mark.asyncio
async def test_unstake_and_withdraw_bounds(gateways):
    unstake = await gateways.restaking.unstake("wstETH", Decimal("5"))
    withdraw = await gateways.lending.withdraw("WETH", Decimal("11"))

    assert isinstance(unstake, GatewayRejected)
    assert isinstance(withdraw, GatewayRejected)


@pytest.mark.asyncio
async def test_scripted_failures_are_consumed_in_order(gateways, vault):
    vault.fail("get_health_factor", GatewayUnavailable("rpc 503"))
    vault.fail("borrow", ConnectionError("reset"), times=1)

    first = await gateways.lending.get_health_factor(vault.vault_id)
    second = await gateways.lending.get_health_factor(vault.vault_id)
    borrow = await gateways.lending.borrow("USDC", Decimal("1"))

    assert isinstance(first, GatewayUnavailable)
    assert isinstance(second, Ok)
    assert isinstance(borrow, GatewayUnavailable)
    assert vault.called("borrow") == [("USDC", Decimal("1"))]


@pytest.mark.asyncio
async def test_scripted_timeout(gateways, vault):
    vault.fail("stake", Timeout("mempool stuck"))

    result = await gateways.restaking.stake("wstETH", Decimal("1"))

    assert isinstance(result, Timeout)
    assert result.reason == "mempool stuck"


@pytest.mark.asyncio
async def test_bridge_delay_and_receipt(gateways, vault):
    vault.bridge_delay_s = 0.01

    result = await gateways.bridge.bridge_asset("wstETH", Decimal("3"), 10)

    assert isinstance(result.value, BRIDGE)
    assert result.value.message_id == "sim-1"
    assert vault.bridged == {10: Decimal("3")}


@pytest.mark.asyncio
async def test_bridge_delay_can_be_cancelled(gateways, vault):
    vault.bridge_delay_s = 5

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(
            gateways.bridge.bridge_asset("wstETH", Decimal("3"), 10), 0.01
        )
    assert vault.bridged == {}


@pytest.mark.asyncio
async def test_estimator_reads_vault(keeper_config):
    gateways, estimator = gateways_from_config(
        keeper_config, {"yield_differential": "0.05", "bridge_cost": "0.01"}
    )

    assert await estimator.estimate_yield_differential() == Decimal("0.05")
    assert await estimator.estimate_bridge_cost() == Decimal("0.01")


@pytest.mark.asyncio
async def test_estimator_scripted_failure_raises(vault):
    _, estimator = build_simulated_gateways(vault)
    vault.fail("estimate_bridge_cost", ValueError("oracle stale"))

    with pytest.raises(ValueError, match="oracle stale"):
        await estimator.estimate_bridge_cost()
