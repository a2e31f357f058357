from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from vault_keeper.core.constants.base import EXECUTED_PLAN_HISTORY
from vault_keeper.core.gateways.models import OperationBase
from vault_keeper.core.gateways.protocols import GatewaySet
from vault_keeper.core.gateways.results import (
    GatewayRejected,
    GatewayResult,
    GatewayUnavailable,
    Ok,
    Timeout,
    classify_exception,
)
from vault_keeper.core.keeper.errors import PlanAlreadyExecuted
from vault_keeper.core.keeper.types import (
    ActionPlan,
    ActionStep,
    ExecutionResult,
    Outcome,
    PlanOp,
)

type StepCall = Callable[[ActionStep], Awaitable[GatewayResult[Any]]]


class ActionSequencer:
    """Runs an ActionPlan step by step with fail-fast semantics.

    The four protocols share no transaction boundary, so there is no rollback:
    step N starts only after step N-1 is confirmed, the first failure stops the
    plan, and the completed prefix is returned for the caller to compensate.
    """

    def __init__(
        self,
        gateways: GatewaySet,
        *,
        bridge_timeout_s: float,
        step_timeout_s: float | None = None,
        shutdown: asyncio.Event | None = None,
        history: int = EXECUTED_PLAN_HISTORY,
    ):
        self.gateways = gateways
        self.bridge_timeout_s = float(bridge_timeout_s)
        self.step_timeout_s = step_timeout_s
        if history < 1:
            raise ValueError("history must be >= 1")
        self.shutdown = shutdown or asyncio.Event()
        self._executed: set[str] = set()
        self._history: deque[str] = deque(maxlen=history)
        self._dispatch: dict[PlanOp, StepCall] = {
            PlanOp.SUPPLY: lambda s: gateways.lending.supply(
                s.params["asset"], s.amount
            ),
            PlanOp.BORROW: lambda s: gateways.lending.borrow(
                s.params["asset"], s.amount
            ),
            PlanOp.REPAY: lambda s: gateways.lending.repay(
                s.params["asset"], s.amount
            ),
            PlanOp.WITHDRAW: lambda s: gateways.lending.withdraw(
                s.params["asset"], s.amount
            ),
            PlanOp.SWAP: lambda s: gateways.swap.swap(
                s.params["from_asset"], s.params["to_asset"], s.amount
            ),
            PlanOp.STAKE: lambda s: gateways.restaking.stake(
                s.params["token"], s.amount
            ),
            PlanOp.UNSTAKE: lambda s: gateways.restaking.unstake(
                s.params["token"], s.amount
            ),
            PlanOp.BRIDGE_ASSET: lambda s: gateways.bridge.bridge_asset(
                s.params["token"], s.amount, int(s.params["destination_chain_id"])
            ),
        }

    def _timeout_for(self, step: ActionStep) -> float | None:
        if step.operation is PlanOp.BRIDGE_ASSET:
            return self.bridge_timeout_s
        return self.step_timeout_s

    async def _run_step(self, step: ActionStep) -> GatewayResult[Any]:
        timeout_s = self._timeout_for(step)
        try:
            result = await asyncio.wait_for(
                self._dispatch[step.operation](step), timeout_s
            )
        except TimeoutError:
            # The submission itself cannot be retracted; only the wait is abandoned.
            return Timeout(
                f"{step.operation} not confirmed within {timeout_s}s",
                timeout_s=timeout_s,
            )
        except Exception as exc:
            return classify_exception(exc)
        if not isinstance(result, (Ok, GatewayUnavailable, GatewayRejected, Timeout)):
            return GatewayRejected(f"unexpected gateway response: {result!r}")
        return result

    def _remember(self, plan_id: str) -> None:
        if len(self._history) == self._history.maxlen:
            self._executed.discard(self._history[0])
        self._history.append(plan_id)
        self._executed.add(plan_id)

    async def execute(self, plan: ActionPlan) -> ExecutionResult:
        if plan.plan_id in self._executed:
            raise PlanAlreadyExecuted(plan.plan_id)
        self._remember(plan.plan_id)

        plan_logger = logger.bind(plan=plan.plan_id[:8], kind=str(plan.kind))
        completed: list[ActionStep] = []
        receipts: list[OperationBase] = []

        for index, step in enumerate(plan.steps, start=1):
            if self.shutdown.is_set():
                plan_logger.warning(
                    f"Shutdown requested; not issuing {len(plan) - index + 1} "
                    f"remaining step(s)"
                )
                return ExecutionResult(
                    plan=plan,
                    outcome=Outcome.ABORTED,
                    completed_steps=tuple(completed),
                    receipts=tuple(receipts),
                )

            plan_logger.info(
                f"Step {index}/{len(plan)}: {step.label} ({step.reason})"
            )
            result = await self._run_step(step)

            if not isinstance(result, Ok):
                plan_logger.error(
                    f"Step {index}/{len(plan)} {step.label} failed: "
                    f"{result.kind}: {result.reason}"
                )
                return ExecutionResult(
                    plan=plan,
                    outcome=Outcome.PARTIAL_FAILURE,
                    completed_steps=tuple(completed),
                    receipts=tuple(receipts),
                    failed_step=step,
                    cause=result,
                )

            completed.append(step)
            if isinstance(result.value, OperationBase):
                receipts.append(result.value)

        plan_logger.info(f"Plan complete: {len(completed)} steps confirmed")
        return ExecutionResult(
            plan=plan,
            outcome=Outcome.SUCCESS,
            completed_steps=tuple(completed),
            receipts=tuple(receipts),
        )
