from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from loguru import logger

from vault_keeper.core.config import KeeperConfig
from vault_keeper.core.gateways.protocols import Estimator, GatewaySet
from vault_keeper.core.gateways.results import Timeout
from vault_keeper.core.keeper.errors import EstimationUnavailable
from vault_keeper.core.keeper.evaluator import RiskEvaluator
from vault_keeper.core.keeper.leases import DEFAULT_LEASES, VaultLeases
from vault_keeper.core.keeper.plans import (
    build_compensation_plan,
    build_leverage_loop_plan,
    build_unwind_plan,
)
from vault_keeper.core.keeper.sequencer import ActionSequencer
from vault_keeper.core.keeper.types import (
    ActionPlan,
    Decision,
    Evaluation,
    ExecutionResult,
    Outcome,
    PlanKind,
)


class TickState(StrEnum):
    IDLE = "IDLE"
    EVALUATING = "EVALUATING"
    EXECUTING = "EXECUTING"
    NO_ACTION = "NO_ACTION"
    SUCCEEDED = "SUCCEEDED"
    PARTIALLY_FAILED = "PARTIALLY_FAILED"
    ABORTED = "ABORTED"
    SKIPPED = "SKIPPED"


TERMINAL_STATES: frozenset[TickState] = frozenset(
    {
        TickState.NO_ACTION,
        TickState.SUCCEEDED,
        TickState.PARTIALLY_FAILED,
        TickState.ABORTED,
        TickState.SKIPPED,
    }
)


class Escalation(StrEnum):
    NONE = "NONE"
    RETRY_NEXT_TICK = "RETRY_NEXT_TICK"
    OPERATOR = "OPERATOR"


@dataclass
class TickReport:
    vault_id: str
    tick_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: TickState = TickState.IDLE
    transitions: list[TickState] = field(default_factory=lambda: [TickState.IDLE])
    evaluation: Evaluation | None = None
    plan: ActionPlan | None = None
    result: ExecutionResult | None = None
    compensation: ActionPlan | None = None
    escalation: Escalation = Escalation.NONE
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def advance(self, state: TickState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"tick already terminal in {self.state}")
        self.state = state
        self.transitions.append(state)

    @property
    def decision(self) -> Decision | None:
        return self.evaluation.decision if self.evaluation else None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        return {
            "vault_id": self.vault_id,
            "tick_id": self.tick_id,
            "state": str(self.state),
            "transitions": [str(s) for s in self.transitions],
            "decision": str(self.decision) if self.decision else None,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "result": self.result.to_dict() if self.result else None,
            "compensation": self.compensation.to_dict() if self.compensation else None,
            "escalation": str(self.escalation),
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


AlertCallback = Callable[[TickReport], Awaitable[None]]


class RebalanceController:
    """Per-tick composition point: evaluate, dispatch, execute, report.

    Holds no decision logic of its own and carries no state between ticks.
    """

    def __init__(
        self,
        config: KeeperConfig,
        gateways: GatewaySet,
        estimator: Estimator,
        *,
        leases: VaultLeases | None = None,
        shutdown: asyncio.Event | None = None,
        alert: AlertCallback | None = None,
    ):
        self.config = config
        self.gateways = gateways
        self.leases = leases or DEFAULT_LEASES
        self.shutdown = shutdown or asyncio.Event()
        self.alert = alert
        self.evaluator = RiskEvaluator(config, gateways, estimator)
        self.sequencer = ActionSequencer(
            gateways,
            bridge_timeout_s=config.bridge_timeout_s,
            step_timeout_s=config.step_timeout_s,
            shutdown=self.shutdown,
        )
        self.logger = logger.bind(component="controller", vault=config.vault_id)

    def plan_for(self, evaluation: Evaluation) -> ActionPlan | None:
        match evaluation.decision:
            case Decision.UNWIND:
                return build_unwind_plan(self.config, evaluation.state)
            case Decision.LEVERAGE_LOOP:
                return build_leverage_loop_plan(self.config)
            case _:
                return None

    async def tick(self) -> TickReport:
        report = TickReport(vault_id=self.config.vault_id)
        tick_logger = self.logger.bind(tick=report.tick_id)

        with self.leases.try_lease(self.config.vault_id) as acquired:
            if not acquired:
                tick_logger.info("Vault busy with an in-flight tick; skipping")
                report.advance(TickState.SKIPPED)
            else:
                await self._run(report)
        report.finished_at = datetime.now(UTC)

        await self._report(report)
        return report

    async def _evaluate(self) -> Evaluation:
        timeout_s = self.config.step_timeout_s
        try:
            return await asyncio.wait_for(self.evaluator.evaluate(), timeout_s)
        except TimeoutError as exc:
            raise EstimationUnavailable(
                "evaluation",
                Timeout(f"inputs not read within {timeout_s}s", timeout_s=timeout_s),
            ) from exc

    async def _run(self, report: TickReport) -> None:
        report.advance(TickState.EVALUATING)
        try:
            evaluation = await self._evaluate()
        except EstimationUnavailable as exc:
            report.error = str(exc)
            report.escalation = Escalation.RETRY_NEXT_TICK
            report.advance(TickState.ABORTED)
            return
        report.evaluation = evaluation

        try:
            plan = self.plan_for(evaluation)
        except ValueError as exc:
            report.error = f"plan construction failed: {exc}"
            report.escalation = (
                Escalation.OPERATOR
                if evaluation.decision is Decision.UNWIND
                else Escalation.RETRY_NEXT_TICK
            )
            report.advance(TickState.ABORTED)
            return
        if plan is None:
            report.advance(TickState.NO_ACTION)
            return

        report.plan = plan
        report.advance(TickState.EXECUTING)
        result = await self.sequencer.execute(plan)
        report.result = result

        match result.outcome:
            case Outcome.SUCCESS:
                report.advance(TickState.SUCCEEDED)
                return
            case Outcome.PARTIAL_FAILURE:
                report.error = f"{result.cause.kind}: {result.cause.reason}"
                report.advance(TickState.PARTIALLY_FAILED)
            case Outcome.ABORTED:
                report.error = "shutdown before plan completed"
                report.advance(TickState.ABORTED)

        report.compensation = build_compensation_plan(result)
        report.escalation = self._escalation_for(result)

    @staticmethod
    def _escalation_for(result: ExecutionResult) -> Escalation:
        # An unfinished unwind leaves a low-health vault half-exited.
        if result.plan.kind is PlanKind.UNWIND and (
            result.outcome is Outcome.PARTIAL_FAILURE or result.completed_steps
        ):
            return Escalation.OPERATOR
        return Escalation.RETRY_NEXT_TICK

    async def _report(self, report: TickReport) -> None:
        tick_logger = self.logger.bind(tick=report.tick_id, audit=report.to_dict())
        decision = report.decision or "-"

        match report.state:
            case TickState.SUCCEEDED:
                tick_logger.success(
                    f"{decision}: plan {report.plan.plan_id[:8]} completed "
                    f"({len(report.plan)} steps)"
                )
            case TickState.NO_ACTION | TickState.SKIPPED:
                tick_logger.info(f"{decision}: {report.state}")
            case TickState.PARTIALLY_FAILED:
                result = report.result
                tick_logger.error(
                    f"{decision}: failed at {result.failed_step.label} "
                    f"({report.error}); "
                    f"completed={[s.label for s in result.completed_steps]} "
                    f"escalation={report.escalation}"
                )
            case _:
                tick_logger.warning(
                    f"{decision}: {report.state} ({report.error}); "
                    f"escalation={report.escalation}"
                )

        if report.compensation is not None:
            tick_logger.warning(
                "Compensation for completed steps: "
                f"{[s.label for s in report.compensation.steps]}"
            )

        if report.escalation is Escalation.OPERATOR:
            if self.alert is None:
                tick_logger.critical(
                    f"Operator attention required for vault {report.vault_id}: "
                    f"{report.error}"
                )
                return
            try:
                await self.alert(report)
            except Exception as exc:
                tick_logger.error(f"Alert delivery failed: {exc}")
                tick_logger.critical(
                    f"Operator attention required for vault {report.vault_id}: "
                    f"{report.error}"
                )
