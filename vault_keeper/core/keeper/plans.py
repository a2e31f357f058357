"""Canonical action plans.

The unwind plan is derived from the leverage-loop plan rather than written out
by hand: it is the loop's steps in reverse order, each replaced by its
compensation, followed by the collateral withdrawal. ``validate_symmetry``
checks that relationship for any pair of plans.
"""

from __future__ import annotations

from decimal import Decimal

from vault_keeper.core.config import KeeperConfig
from vault_keeper.core.keeper.types import (
    ActionPlan,
    ActionStep,
    ExecutionResult,
    PlanKind,
    PlanOp,
    VaultState,
)


def _loop_steps(config: KeeperConfig, amount: Decimal) -> list[ActionStep]:
    debt = config.debt_asset
    lst = config.liquid_staking_token
    return [
        ActionStep.create(
            PlanOp.BORROW,
            asset=debt,
            amount=amount,
            reason="borrow against collateral",
        ),
        ActionStep.create(
            PlanOp.SWAP,
            from_asset=debt,
            to_asset=lst,
            amount=amount,
            reason="convert borrowed asset into the staking token",
        ),
        ActionStep.create(
            PlanOp.STAKE, token=lst, amount=amount, reason="restake for yield"
        ),
        ActionStep.create(
            PlanOp.BRIDGE_ASSET,
            token=lst,
            amount=amount,
            source_chain_id=config.origin_chain_id,
            destination_chain_id=config.destination_chain_id,
            reason="relocate to the higher-yield chain",
        ),
    ]


def build_leverage_loop_plan(
    config: KeeperConfig, amount: Decimal | None = None
) -> ActionPlan:
    amount = config.borrow_amount if amount is None else Decimal(amount)
    if amount <= 0:
        raise ValueError(f"leverage-loop amount must be positive, got {amount}")
    return ActionPlan(
        kind=PlanKind.LEVERAGE_LOOP,
        vault_id=config.vault_id,
        steps=tuple(_loop_steps(config, amount)),
    )


def build_unwind_plan(config: KeeperConfig, state: VaultState) -> ActionPlan:
    forward = _loop_steps(config, state.staked_size)
    steps = [step.compensation() for step in reversed(forward)]
    steps.append(
        ActionStep.create(
            PlanOp.WITHDRAW,
            asset=state.collateral_asset,
            amount=state.collateral_size,
            reason="return the vault to an unlevered state",
        )
    )
    return ActionPlan(
        kind=PlanKind.UNWIND, vault_id=config.vault_id, steps=tuple(steps)
    )


def validate_symmetry(loop: ActionPlan, unwind: ActionPlan) -> None:
    """Raise ``ValueError`` unless ``unwind`` opens with the reverse of ``loop``."""
    if len(unwind) < len(loop):
        raise ValueError(
            f"unwind has {len(unwind)} steps, "
            f"fewer than the {len(loop)} it must reverse"
        )
    for i, forward in enumerate(reversed(loop.steps)):
        reverse = unwind.steps[i]
        if not reverse.is_compensation_of(forward, ignore_amount=True):
            raise ValueError(
                f"unwind step {i + 1} ({reverse.label}) does not reverse "
                f"{forward.label}"
            )


def build_compensation_plan(result: ExecutionResult) -> ActionPlan | None:
    """Reverse the completed prefix of a failed or aborted plan.

    Returned for operators to inspect or run by hand; never executed
    automatically.
    """
    if result.succeeded or not result.completed_steps:
        return None
    steps = [step.compensation() for step in reversed(result.completed_steps)]
    return ActionPlan(
        kind=PlanKind.COMPENSATION, vault_id=result.plan.vault_id, steps=tuple(steps)
    )
