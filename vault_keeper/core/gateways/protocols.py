"""Capability interfaces the keeper core consumes.

Each operation returns a ``GatewayResult``: ``Ok(value)`` on confirmation, or
one of ``GatewayUnavailable`` / ``GatewayRejected`` / ``Timeout``. Gateways are
not idempotency-aware, so the core never re-submits a confirmed write.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

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
from vault_keeper.core.gateways.results import GatewayResult


@runtime_checkable
class LendingGateway(Protocol):
    async def get_health_factor(self, vault_id: str) -> GatewayResult[Decimal]: ...

    async def get_position(self, vault_id: str) -> GatewayResult[LendingPosition]: ...

    async def supply(self, asset: str, amount: Decimal) -> GatewayResult[SUPPLY]: ...

    async def borrow(self, asset: str, amount: Decimal) -> GatewayResult[BORROW]: ...

    async def repay(self, asset: str, amount: Decimal) -> GatewayResult[REPAY]: ...

    async def withdraw(
        self, asset: str, amount: Decimal
    ) -> GatewayResult[WITHDRAW]: ...


@runtime_checkable
class SwapGateway(Protocol):
    async def swap(
        self, from_asset: str, to_asset: str, amount: Decimal
    ) -> GatewayResult[SWAP]: ...


@runtime_checkable
class RestakingGateway(Protocol):
    async def get_staked_balance(
        self, vault_id: str, token: str
    ) -> GatewayResult[Decimal]: ...

    async def stake(self, token: str, amount: Decimal) -> GatewayResult[STAKE]: ...

    async def unstake(self, token: str, amount: Decimal) -> GatewayResult[UNSTAKE]: ...


@runtime_checkable
class BridgeGateway(Protocol):
    async def bridge_asset(
        self, token: str, amount: Decimal, destination_chain_id: int
    ) -> GatewayResult[BRIDGE]: ...


class Estimator(Protocol):
    """Yield/cost point estimates. Untrusted; may raise on failure."""

    async def estimate_yield_differential(self) -> Decimal: ...

    async def estimate_bridge_cost(self) -> Decimal: ...


@dataclass(frozen=True)
class GatewaySet:
    lending: LendingGateway
    swap: SwapGateway
    restaking: RestakingGateway
    bridge: BridgeGateway

    def __post_init__(self) -> None:
        expected = {
            "lending": LendingGateway,
            "swap": SwapGateway,
            "restaking": RestakingGateway,
            "bridge": BridgeGateway,
        }
        for attr, proto in expected.items():
            if not isinstance(getattr(self, attr), proto):
                raise TypeError(f"{attr} gateway does not implement {proto.__name__}")

    async def close(self) -> None:
        for gw in (self.lending, self.swap, self.restaking, self.bridge):
            close = getattr(gw, "close", None)
            if close is not None:
                await close()
