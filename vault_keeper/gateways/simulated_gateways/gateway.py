"""In-memory gateways for dry runs and tests.

All four gateways and the estimator share one ``SimulatedVault`` ledger, so a
plan executed against them moves balances the way the real protocols would
(at a configurable swap rate, 1:1 by default). Failures can be scripted per
operation and every call is appended to ``SimulatedVault.calls``.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from vault_keeper.core.config import KeeperConfig
from vault_keeper.core.gateways.BaseGateway import BaseGateway
from vault_keeper.core.gateways.decorators import gateway_call
from vault_keeper.core.gateways.models import (
    BORROW,
    BRIDGE,
    REPAY,
    STAKE,
    SUPPLY,
    SWAP,
    UNSTAKE,
    WITHDRAW,
    LendingPosition,
)
from vault_keeper.core.gateways.protocols import GatewaySet
from vault_keeper.core.gateways.results import (
    GatewayFailure,
    GatewayRejectedError,
)

type ScriptedFailure = GatewayFailure | Exception


def _dec(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class SimulatedVault:
    vault_id: str
    collateral_asset: str
    debt_asset: str
    staked_token: str
    health_factor: Decimal = Decimal("2")
    collateral_size: Decimal = Decimal("0")
    debt_size: Decimal = Decimal("0")
    staked_size: Decimal = Decimal("0")
    yield_differential: Decimal = Decimal("0")
    bridge_cost: Decimal = Decimal("0")
    bridge_delay_s: float = 0.0
    chain_id: int | None = None
    balances: dict[str, Decimal] = field(default_factory=dict)
    swap_rates: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    bridged: dict[int, Decimal] = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    _failures: dict[str, deque[ScriptedFailure]] = field(
        default_factory=lambda: defaultdict(deque), repr=False
    )

    @classmethod
    def from_config(
        cls, keeper: KeeperConfig, simulation: dict[str, Any] | None = None
    ) -> SimulatedVault:
        sim = simulation or {}
        balances = {
            asset: _dec(amount)
            for asset, amount in (sim.get("balances") or {}).items()
        }
        rates = {
            tuple(pair.split("->", 1)): _dec(rate)
            for pair, rate in (sim.get("swap_rates") or {}).items()
        }
        return cls(
            vault_id=keeper.vault_id,
            collateral_asset=keeper.collateral_asset,
            debt_asset=keeper.debt_asset,
            staked_token=keeper.liquid_staking_token,
            health_factor=_dec(sim.get("health_factor", "2")),
            collateral_size=_dec(sim.get("collateral_size", "0")),
            debt_size=_dec(sim.get("debt_size", "0")),
            staked_size=_dec(sim.get("staked_size", "0")),
            yield_differential=_dec(sim.get("yield_differential", "0")),
            bridge_cost=_dec(sim.get("bridge_cost", "0")),
            bridge_delay_s=float(sim.get("bridge_delay_s", 0.0)),
            chain_id=keeper.origin_chain_id,
            balances=balances,
            swap_rates=rates,
        )

    def fail(self, op: str, failure: ScriptedFailure, *, times: int = 1) -> None:
        """Make the next ``times`` calls to ``op`` fail with ``failure``."""
        self._failures[op].extend([failure] * times)

    def record(self, op: str, *args: Any) -> None:
        self.calls.append((op, args))
        failures = self._failures.get(op)
        if failures:
            failure = failures.popleft()
            if isinstance(failure, Exception):
                raise failure
            failure.raise_error()

    def called(self, op: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == op]

    @property
    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def check_vault(self, vault_id: str) -> None:
        if vault_id.lower() != self.vault_id.lower():
            raise GatewayRejectedError(f"unknown vault {vault_id}")

    def spend(self, asset: str, amount: Decimal) -> None:
        held = self.balances.get(asset, Decimal("0"))
        if held < amount:
            raise GatewayRejectedError(
                f"insufficient {asset} balance: have {held}, need {amount}"
            )
        self.balances[asset] = held - amount

    def credit(self, asset: str, amount: Decimal) -> None:
        self.balances[asset] = self.balances.get(asset, Decimal("0")) + amount

    def rate(self, from_asset: str, to_asset: str) -> Decimal:
        return self.swap_rates.get((from_asset, to_asset), Decimal("1"))


class _SimulatedGateway(BaseGateway):
    def __init__(self, vault: SimulatedVault, config: dict[str, Any] | None = None):
        super().__init__("simulated", config)
        self.vault = vault

    def _tx(self, op: str) -> dict[str, Any]:
        return {
            "transaction_hash": f"0xsim{len(self.vault.calls):04d}{op[:4]}",
            "transaction_chain_id": self.vault.chain_id,
        }


class SimulatedLendingGateway(_SimulatedGateway):
    gateway_type = "LENDING"

    @gateway_call
    async def get_health_factor(self, vault_id: str) -> Decimal:
        self.vault.record("get_health_factor", vault_id)
        self.vault.check_vault(vault_id)
        return self.vault.health_factor

    @gateway_call
    async def get_position(self, vault_id: str) -> LendingPosition:
        self.vault.record("get_position", vault_id)
        self.vault.check_vault(vault_id)
        return LendingPosition(
            collateral_asset=self.vault.collateral_asset,
            collateral_size=self.vault.collateral_size,
            debt_asset=self.vault.debt_asset,
            debt_size=self.vault.debt_size,
        )

    @gateway_call
    async def supply(self, asset: str, amount: Decimal) -> SUPPLY:
        self.vault.record("supply", asset, amount)
        if asset != self.vault.collateral_asset:
            raise GatewayRejectedError(f"{asset} is not accepted as collateral")
        self.vault.spend(asset, amount)
        self.vault.collateral_size += amount
        return self.stamp(SUPPLY(asset=asset, amount=str(amount), **self._tx("supply")))

    @gateway_call
    async def borrow(self, asset: str, amount: Decimal) -> BORROW:
        self.vault.record("borrow", asset, amount)
        if asset != self.vault.debt_asset:
            raise GatewayRejectedError(f"{asset} cannot be borrowed")
        self.vault.debt_size += amount
        self.vault.credit(asset, amount)
        return self.stamp(BORROW(asset=asset, amount=str(amount), **self._tx("borrow")))

    @gateway_call
    async def repay(self, asset: str, amount: Decimal) -> REPAY:
        self.vault.record("repay", asset, amount)
        if asset != self.vault.debt_asset:
            raise GatewayRejectedError(f"no {asset} debt to repay")
        self.vault.spend(asset, amount)
        self.vault.debt_size = max(Decimal("0"), self.vault.debt_size - amount)
        return self.stamp(REPAY(asset=asset, amount=str(amount), **self._tx("repay")))

    @gateway_call
    async def withdraw(self, asset: str, amount: Decimal) -> WITHDRAW:
        self.vault.record("withdraw", asset, amount)
        if asset != self.vault.collateral_asset:
            raise GatewayRejectedError(f"no {asset} collateral")
        if amount > self.vault.collateral_size:
            raise GatewayRejectedError(
                f"withdraw {amount} exceeds collateral {self.vault.collateral_size}"
            )
        self.vault.collateral_size -= amount
        self.vault.credit(asset, amount)
        return self.stamp(
            WITHDRAW(asset=asset, amount=str(amount), **self._tx("withdraw"))
        )


class SimulatedSwapGateway(_SimulatedGateway):
    gateway_type = "SWAP"

    @gateway_call
    async def swap(self, from_asset: str, to_asset: str, amount: Decimal) -> SWAP:
        self.vault.record("swap", from_asset, to_asset, amount)
        self.vault.spend(from_asset, amount)
        to_amount = amount * self.vault.rate(from_asset, to_asset)
        self.vault.credit(to_asset, to_amount)
        return self.stamp(
            SWAP(
                from_asset=from_asset,
                to_asset=to_asset,
                from_amount=str(amount),
                to_amount=str(to_amount),
                **self._tx("swap"),
            )
        )


class SimulatedRestakingGateway(_SimulatedGateway):
    gateway_type = "RESTAKING"

    @gateway_call
    async def get_staked_balance(self, vault_id: str, token: str) -> Decimal:
        self.vault.record("get_staked_balance", vault_id, token)
        self.vault.check_vault(vault_id)
        if token != self.vault.staked_token:
            return Decimal("0")
        return self.vault.staked_size

    @gateway_call
    async def stake(self, token: str, amount: Decimal) -> STAKE:
        self.vault.record("stake", token, amount)
        self.vault.spend(token, amount)
        self.vault.staked_size += amount
        return self.stamp(STAKE(token=token, amount=str(amount), **self._tx("stake")))

    @gateway_call
    async def unstake(self, token: str, amount: Decimal) -> UNSTAKE:
        self.vault.record("unstake", token, amount)
        if amount > self.vault.staked_size:
            raise GatewayRejectedError(
                f"unstake {amount} exceeds staked {self.vault.staked_size}"
            )
        self.vault.staked_size -= amount
        self.vault.credit(token, amount)
        return self.stamp(
            UNSTAKE(token=token, amount=str(amount), **self._tx("unstake"))
        )


class SimulatedBridgeGateway(_SimulatedGateway):
    gateway_type = "BRIDGE"

    @gateway_call
    async def bridge_asset(
        self, token: str, amount: Decimal, destination_chain_id: int
    ) -> BRIDGE:
        self.vault.record("bridge_asset", token, amount, destination_chain_id)
        if self.vault.bridge_delay_s:
            await asyncio.sleep(self.vault.bridge_delay_s)
        bridged = self.vault.bridged
        bridged[destination_chain_id] = bridged.get(destination_chain_id, 0) + amount
        return self.stamp(
            BRIDGE(
                token=token,
                amount=str(amount),
                destination_chain_id=destination_chain_id,
                message_id=f"sim-{len(self.vault.called('bridge_asset'))}",
                **self._tx("bridge"),
            )
        )


class SimulatedEstimator:
    def __init__(self, vault: SimulatedVault):
        self.vault = vault

    async def estimate_yield_differential(self) -> Decimal:
        self.vault.record("estimate_yield_differential")
        return self.vault.yield_differential

    async def estimate_bridge_cost(self) -> Decimal:
        self.vault.record("estimate_bridge_cost")
        return self.vault.bridge_cost


def build_simulated_gateways(
    vault: SimulatedVault,
) -> tuple[GatewaySet, SimulatedEstimator]:
    gateways = GatewaySet(
        lending=SimulatedLendingGateway(vault),
        swap=SimulatedSwapGateway(vault),
        restaking=SimulatedRestakingGateway(vault),
        bridge=SimulatedBridgeGateway(vault),
    )
    return gateways, SimulatedEstimator(vault)


def gateways_from_config(
    keeper: KeeperConfig, simulation: dict[str, Any] | None = None
) -> tuple[GatewaySet, SimulatedEstimator]:
    """Factory usable as ``--gateways`` target."""
    return build_simulated_gateways(SimulatedVault.from_config(keeper, simulation))
