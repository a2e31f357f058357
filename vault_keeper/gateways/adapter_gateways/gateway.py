"""Gateways backed by protocol adapters.

Adapters follow the ``(ok, result)`` status-tuple convention: ``(True, data)``
on success and ``(False, "message")`` when the protocol refused the call.
A refusal maps to ``GatewayRejected``; anything the adapter raises is
classified by ``gateway_call``.

Write results may be a transaction hash string or a dict carrying
``tx_hash`` / ``transaction_hash`` (and optionally ``to_amount`` or
``message_id``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

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
from vault_keeper.core.gateways.results import GatewayRejectedError


def _unwrap(outcome: Any, op: str) -> Any:
    try:
        ok, result = outcome
    except (TypeError, ValueError) as exc:
        raise GatewayRejectedError(
            f"{op}: adapter returned {outcome!r}, expected (ok, result)"
        ) from exc
    if not ok:
        raise GatewayRejectedError(f"{op}: {result}")
    return result


def _tx_fields(result: Any) -> dict[str, Any]:
    if isinstance(result, str):
        return {"transaction_hash": result}
    if isinstance(result, dict):
        tx = result.get("tx_hash") or result.get("transaction_hash")
        return {"transaction_hash": str(tx) if tx else None}
    return {}


class _AdapterGateway(BaseGateway):
    def __init__(
        self,
        adapter: Any,
        *,
        chain_id: int | None = None,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(getattr(adapter, "name", type(adapter).__name__), config)
        self.adapter = adapter
        self.chain_id = chain_id

    async def _call(self, op: str, *args: Any) -> Any:
        return _unwrap(await getattr(self.adapter, op)(*args), op)

    def _receipt_fields(self, result: Any) -> dict[str, Any]:
        return {**_tx_fields(result), "transaction_chain_id": self.chain_id}

    async def close(self) -> None:
        close = getattr(self.adapter, "close", None)
        if close is not None:
            await close()


class AdapterLendingGateway(_AdapterGateway):
    gateway_type = "LENDING"

    @gateway_call
    async def get_health_factor(self, vault_id: str) -> Decimal:
        return Decimal(str(await self._call("get_health_factor", vault_id)))

    @gateway_call
    async def get_position(self, vault_id: str) -> LendingPosition:
        return LendingPosition.model_validate(
            await self._call("get_position", vault_id)
        )

    @gateway_call
    async def supply(self, asset: str, amount: Decimal) -> SUPPLY:
        result = await self._call("supply", asset, amount)
        return self.stamp(
            SUPPLY(asset=asset, amount=str(amount), **self._receipt_fields(result))
        )

    @gateway_call
    async def borrow(self, asset: str, amount: Decimal) -> BORROW:
        result = await self._call("borrow", asset, amount)
        return self.stamp(
            BORROW(asset=asset, amount=str(amount), **self._receipt_fields(result))
        )

    @gateway_call
    async def repay(self, asset: str, amount: Decimal) -> REPAY:
        result = await self._call("repay", asset, amount)
        return self.stamp(
            REPAY(asset=asset, amount=str(amount), **self._receipt_fields(result))
        )

    @gateway_call
    async def withdraw(self, asset: str, amount: Decimal) -> WITHDRAW:
        result = await self._call("withdraw", asset, amount)
        return self.stamp(
            WITHDRAW(asset=asset, amount=str(amount), **self._receipt_fields(result))
        )


class AdapterSwapGateway(_AdapterGateway):
    gateway_type = "SWAP"

    @gateway_call
    async def swap(self, from_asset: str, to_asset: str, amount: Decimal) -> SWAP:
        result = await self._call("swap", from_asset, to_asset, amount)
        to_amount = result.get("to_amount") if isinstance(result, dict) else None
        return self.stamp(
            SWAP(
                from_asset=from_asset,
                to_asset=to_asset,
                from_amount=str(amount),
                to_amount=str(to_amount) if to_amount is not None else None,
                **self._receipt_fields(result),
            )
        )


class AdapterRestakingGateway(_AdapterGateway):
    gateway_type = "RESTAKING"

    @gateway_call
    async def get_staked_balance(self, vault_id: str, token: str) -> Decimal:
        return Decimal(str(await self._call("get_staked_balance", vault_id, token)))

    @gateway_call
    async def stake(self, token: str, amount: Decimal) -> STAKE:
        result = await self._call("stake", token, amount)
        return self.stamp(
            STAKE(token=token, amount=str(amount), **self._receipt_fields(result))
        )

    @gateway_call
    async def unstake(self, token: str, amount: Decimal) -> UNSTAKE:
        result = await self._call("unstake", token, amount)
        return self.stamp(
            UNSTAKE(token=token, amount=str(amount), **self._receipt_fields(result))
        )


class AdapterBridgeGateway(_AdapterGateway):
    gateway_type = "BRIDGE"

    @gateway_call
    async def bridge_asset(
        self, token: str, amount: Decimal, destination_chain_id: int
    ) -> BRIDGE:
        result = await self._call("bridge_asset", token, amount, destination_chain_id)
        message_id = result.get("message_id") if isinstance(result, dict) else None
        return self.stamp(
            BRIDGE(
                token=token,
                amount=str(amount),
                destination_chain_id=destination_chain_id,
                message_id=message_id,
                **self._receipt_fields(result),
            )
        )


class AdapterEstimator:
    """Estimator over an adapter exposing ``get_yield_differential`` and
    ``get_bridge_cost``. Raises on failure; the evaluator classifies it."""

    def __init__(self, adapter: Any):
        self.adapter = adapter

    async def estimate_yield_differential(self) -> Decimal:
        outcome = await self.adapter.get_yield_differential()
        return Decimal(str(_unwrap(outcome, "get_yield_differential")))

    async def estimate_bridge_cost(self) -> Decimal:
        outcome = await self.adapter.get_bridge_cost()
        return Decimal(str(_unwrap(outcome, "get_bridge_cost")))
