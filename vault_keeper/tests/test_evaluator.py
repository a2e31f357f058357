from __future__ import annotations

from decimal import Decimal

import pytest

from vault_keeper.core.gateways.results import (
    GatewayRejected,
    GatewayUnavailable,
)
from vault_keeper.core.keeper.errors import EstimationUnavailable
from vault_keeper.core.keeper.evaluator import RiskEvaluator, decide
from vault_keeper.core.keeper.types import Decision
from vault_keeper.gateways.simulated_gateways.gateway import build_simulated_gateways

D = Decimal
POLICY = {"safety_threshold": D("1.5"), "opportunity_margin": D("1.3")}


@pytest.fixture
def evaluator(keeper_config, simulated_vault):
    gateways, estimator = build_simulated_gateways(simulated_vault)
    return RiskEvaluator(keeper_config, gateways, estimator)


@pytest.mark.parametrize(
    "health_factor,y,c",
    [
        ("1.49", "0", "0"),
        ("1.2", "1000", "0.0001"),
        ("0", "5", "1"),
    ],
)
def test_below_threshold_always_unwinds(health_factor, y, c):
    assert decide(D(health_factor), D(y), D(c), **POLICY) is Decision.UNWIND


def test_threshold_is_exclusive():
    assert decide(D("1.5"), D("0"), D("1"), **POLICY) is Decision.NO_ACTION


@pytest.mark.parametrize(
    "y,c,expected",
    [
        ("0.14", "0.1", Decision.LEVERAGE_LOOP),
        ("0.13", "0.1", Decision.NO_ACTION),
        ("0.12", "0.1", Decision.NO_ACTION),
        ("0.01", "0", Decision.LEVERAGE_LOOP),
        ("0", "0", Decision.NO_ACTION),
    ],
)
def test_margin_policy(y, c, expected):
    assert decide(D("2"), D(y), D(c), **POLICY) is expected


def test_decide_is_deterministic():
    args = (D("1.7"), D("0.2"), D("0.1"))
    assert {decide(*args, **POLICY) for _ in range(10)} == {Decision.LEVERAGE_LOOP}


@pytest.mark.asyncio
async def test_healthy_vault_without_opportunity(evaluator):
    evaluation = await evaluator.evaluate()

    assert evaluation.decision is Decision.NO_ACTION
    assert evaluation.state.health_factor == D("2.0")
    assert evaluation.state.staked_size == D("4")
    assert evaluation.yield_differential == D("0.01")


@pytest.mark.asyncio
async def test_inputs_are_read_fresh_each_call(evaluator, simulated_vault):
    first = await evaluator.evaluate()
    simulated_vault.health_factor = D("1.1")
    second = await evaluator.evaluate()

    assert first.decision is Decision.NO_ACTION
    assert second.decision is Decision.UNWIND
    assert len(simulated_vault.called("get_health_factor")) == 2
    assert len(simulated_vault.called("estimate_bridge_cost")) == 2


@pytest.mark.asyncio
async def test_opportunity_triggers_leverage_loop(evaluator, simulated_vault):
    simulated_vault.yield_differential = D("0.05")
    simulated_vault.bridge_cost = D("0.01")

    evaluation = await evaluator.evaluate()

    assert evaluation.decision is Decision.LEVERAGE_LOOP


@pytest.mark.asyncio
async def test_transient_read_is_retried(evaluator, simulated_vault):
    simulated_vault.fail("get_health_factor", GatewayUnavailable("rpc 503"))

    evaluation = await evaluator.evaluate()

    assert evaluation.decision is Decision.NO_ACTION
    assert len(simulated_vault.called("get_health_factor")) == 2


@pytest.mark.asyncio
async def test_exhausted_reads_fail_closed(evaluator, simulated_vault):
    simulated_vault.fail("get_position", GatewayUnavailable("rpc 503"), times=2)

    with pytest.raises(EstimationUnavailable) as exc_info:
        await evaluator.evaluate()

    assert exc_info.value.source == "lending_position"
    assert exc_info.value.transient
    assert simulated_vault.called("estimate_yield_differential") == []


@pytest.mark.asyncio
async def test_rejected_read_is_not_retried(evaluator, simulated_vault):
    simulated_vault.fail("get_staked_balance", GatewayRejected("paused"))

    with pytest.raises(EstimationUnavailable) as exc_info:
        await evaluator.evaluate()

    assert not exc_info.value.transient
    assert len(simulated_vault.called("get_staked_balance")) == 1


@pytest.mark.asyncio
async def test_estimator_failure_on_healthy_vault_raises(evaluator, simulated_vault):
    simulated_vault.fail("estimate_yield_differential", ValueError("oracle stale"))

    with pytest.raises(EstimationUnavailable, match="yield_differential"):
        await evaluator.evaluate()


@pytest.mark.asyncio
async def test_estimator_failure_on_unhealthy_vault_still_fails_closed(
    evaluator, simulated_vault
):
    simulated_vault.health_factor = D("1.3")
    simulated_vault.fail("estimate_bridge_cost", ConnectionError("down"))

    with pytest.raises(EstimationUnavailable) as exc_info:
        await evaluator.evaluate()

    assert exc_info.value.source == "bridge_cost"
    assert exc_info.value.transient


@pytest.mark.asyncio
async def test_negative_bridge_cost_is_rejected(evaluator, simulated_vault):
    simulated_vault.bridge_cost = D("-0.1")

    with pytest.raises(EstimationUnavailable, match="negative bridge cost"):
        await evaluator.evaluate()


@pytest.mark.asyncio
async def test_non_finite_estimate_is_rejected(evaluator, simulated_vault):
    simulated_vault.yield_differential = D("NaN")

    with pytest.raises(EstimationUnavailable, match="not finite"):
        await evaluator.evaluate()


@pytest.mark.asyncio
async def test_negative_health_factor_is_rejected(evaluator, simulated_vault):
    simulated_vault.health_factor = D("-1")

    with pytest.raises(EstimationUnavailable, match="negative health factor"):
        await evaluator.evaluate()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "attr,source",
    [
        ("staked_size", "staked_balance"),
        ("collateral_size", "lending_position"),
        ("debt_size", "lending_position"),
    ],
)
async def test_negative_balances_are_rejected(
    evaluator, simulated_vault, attr, source
):
    setattr(simulated_vault, attr, D("-1"))

    with pytest.raises(EstimationUnavailable, match="negative amount") as exc_info:
        await evaluator.read_state()
    assert exc_info.value.source == source
