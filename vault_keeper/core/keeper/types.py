from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from types import MappingProxyType
from typing import Any
from uuid import uuid4

from vault_keeper.core.gateways.models import OperationBase
from vault_keeper.core.gateways.results import GatewayFailure, failure_to_dict

# ─────────────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────────────


class ProtocolKind(StrEnum):
    LENDING = "LENDING"
    SWAP = "SWAP"
    RESTAKING = "RESTAKING"
    BRIDGE = "BRIDGE"


class PlanOp(StrEnum):
    SUPPLY = "SUPPLY"
    BORROW = "BORROW"
    REPAY = "REPAY"
    WITHDRAW = "WITHDRAW"
    SWAP = "SWAP"
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    BRIDGE_ASSET = "BRIDGE_ASSET"


class PlanKind(StrEnum):
    LEVERAGE_LOOP = "LEVERAGE_LOOP"
    UNWIND = "UNWIND"
    COMPENSATION = "COMPENSATION"


class Decision(StrEnum):
    NO_ACTION = "NO_ACTION"
    UNWIND = "UNWIND"
    LEVERAGE_LOOP = "LEVERAGE_LOOP"


class Outcome(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    ABORTED = "ABORTED"


OP_PROTOCOL: dict[PlanOp, ProtocolKind] = {
    PlanOp.SUPPLY: ProtocolKind.LENDING,
    PlanOp.BORROW: ProtocolKind.LENDING,
    PlanOp.REPAY: ProtocolKind.LENDING,
    PlanOp.WITHDRAW: ProtocolKind.LENDING,
    PlanOp.SWAP: ProtocolKind.SWAP,
    PlanOp.STAKE: ProtocolKind.RESTAKING,
    PlanOp.UNSTAKE: ProtocolKind.RESTAKING,
    PlanOp.BRIDGE_ASSET: ProtocolKind.BRIDGE,
}

# Every forward operation has a semantic inverse. SWAP and BRIDGE_ASSET are
# their own inverse with assets/chains reversed.
COMPENSATING_OPS: dict[PlanOp, PlanOp] = {
    PlanOp.SUPPLY: PlanOp.WITHDRAW,
    PlanOp.WITHDRAW: PlanOp.SUPPLY,
    PlanOp.BORROW: PlanOp.REPAY,
    PlanOp.REPAY: PlanOp.BORROW,
    PlanOp.SWAP: PlanOp.SWAP,
    PlanOp.STAKE: PlanOp.UNSTAKE,
    PlanOp.UNSTAKE: PlanOp.STAKE,
    PlanOp.BRIDGE_ASSET: PlanOp.BRIDGE_ASSET,
}

_REQUIRED_PARAMS: dict[ProtocolKind, tuple[str, ...]] = {
    ProtocolKind.LENDING: ("asset", "amount"),
    ProtocolKind.SWAP: ("from_asset", "to_asset", "amount"),
    ProtocolKind.RESTAKING: ("token", "amount"),
    ProtocolKind.BRIDGE: ("token", "amount", "source_chain_id", "destination_chain_id"),
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


# ─────────────────────────────────────────────────────────────────────────────
# VAULT SNAPSHOT
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VaultState:
    vault_id: str
    health_factor: Decimal
    collateral_asset: str
    collateral_size: Decimal
    debt_asset: str
    debt_size: Decimal
    staked_token: str
    staked_size: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {k: _jsonable(v) for k, v in self.__dict__.items()}


# ─────────────────────────────────────────────────────────────────────────────
# PLANS
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ActionStep:
    protocol: ProtocolKind
    operation: PlanOp
    params: Mapping[str, Any] = field(default_factory=dict)
    compensating_operation: PlanOp | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        if OP_PROTOCOL[self.operation] is not self.protocol:
            raise ValueError(
                f"{self.operation} is not a {self.protocol} operation"
            )
        missing = [k for k in _REQUIRED_PARAMS[self.protocol] if k not in self.params]
        if missing:
            raise ValueError(f"{self.operation} step missing params: {missing}")
        if Decimal(self.params["amount"]) < 0:
            raise ValueError(f"{self.operation} amount must be non-negative")
        if (
            self.compensating_operation is not None
            and self.compensating_operation is not COMPENSATING_OPS[self.operation]
        ):
            raise ValueError(
                f"{self.operation} cannot be compensated by "
                f"{self.compensating_operation}"
            )
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @classmethod
    def create(
        cls, operation: PlanOp, *, reason: str = "", **params: Any
    ) -> ActionStep:
        return cls(
            protocol=OP_PROTOCOL[operation],
            operation=operation,
            params=params,
            compensating_operation=COMPENSATING_OPS[operation],
            reason=reason,
        )

    @property
    def amount(self) -> Decimal:
        return Decimal(self.params["amount"])

    def compensation(self) -> ActionStep:
        """The step that semantically reverses this one."""
        inverse = COMPENSATING_OPS[self.operation]
        params = dict(self.params)
        if self.operation is PlanOp.SWAP:
            params["from_asset"], params["to_asset"] = (
                self.params["to_asset"],
                self.params["from_asset"],
            )
        elif self.operation is PlanOp.BRIDGE_ASSET:
            params["source_chain_id"], params["destination_chain_id"] = (
                self.params["destination_chain_id"],
                self.params["source_chain_id"],
            )
        return ActionStep.create(
            inverse, reason=f"compensate {self.operation}", **params
        )

    def is_compensation_of(
        self, other: ActionStep, *, ignore_amount: bool = False
    ) -> bool:
        c = other.compensation()
        mine, theirs = dict(self.params), dict(c.params)
        if ignore_amount:
            mine.pop("amount")
            theirs.pop("amount")
        return (
            self.operation is c.operation
            and self.protocol is c.protocol
            and mine == theirs
        )

    @property
    def label(self) -> str:
        args = ", ".join(str(v) for v in self.params.values())
        return f"{self.operation}({args})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "protocol": str(self.protocol),
            "operation": str(self.operation),
            "params": {k: _jsonable(v) for k, v in self.params.items()},
            "compensating_operation": (
                str(self.compensating_operation)
                if self.compensating_operation is not None
                else None
            ),
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return f"ActionStep({self.label})"


@dataclass(frozen=True)
class ActionPlan:
    kind: PlanKind
    vault_id: str
    steps: tuple[ActionStep, ...]
    plan_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.steps:
            raise ValueError("an action plan needs at least one step")
        for step in self.steps:
            if step.compensating_operation is not COMPENSATING_OPS[step.operation]:
                raise ValueError(
                    f"{step.label} does not declare its compensating operation"
                )

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[ActionStep]:
        return iter(self.steps)

    @property
    def operations(self) -> list[PlanOp]:
        return [s.operation for s in self.steps]

    @property
    def protocols(self) -> list[ProtocolKind]:
        return [s.protocol for s in self.steps]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "kind": str(self.kind),
            "vault_id": self.vault_id,
            "steps": [s.to_dict() for s in self.steps],
        }


# ─────────────────────────────────────────────────────────────────────────────
# RESULTS
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExecutionResult:
    plan: ActionPlan
    outcome: Outcome
    completed_steps: tuple[ActionStep, ...] = ()
    receipts: tuple[OperationBase, ...] = ()
    failed_step: ActionStep | None = None
    cause: GatewayFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def pending_steps(self) -> tuple[ActionStep, ...]:
        return self.plan.steps[len(self.completed_steps) :]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan.plan_id,
            "plan_kind": str(self.plan.kind),
            "outcome": str(self.outcome),
            "completed_steps": [s.to_dict() for s in self.completed_steps],
            "failed_step": self.failed_step.to_dict() if self.failed_step else None,
            "cause": failure_to_dict(self.cause) if self.cause else None,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


@dataclass(frozen=True)
class Evaluation:
    decision: Decision
    state: VaultState
    yield_differential: Decimal
    bridge_cost: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": str(self.decision),
            "state": self.state.to_dict(),
            "yield_differential": _jsonable(self.yield_differential),
            "bridge_cost": _jsonable(self.bridge_cost),
        }
