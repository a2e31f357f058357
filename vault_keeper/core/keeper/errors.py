from __future__ import annotations

from vault_keeper.core.gateways.results import GatewayFailure, GatewayUnavailable


class EstimationUnavailable(Exception):
    """An evaluator input could not be obtained; no decision is produced."""

    def __init__(self, source: str, cause: GatewayFailure | str):
        self.source = source
        self.cause = cause
        reason = cause if isinstance(cause, str) else f"{cause.kind}: {cause.reason}"
        super().__init__(f"{source} unavailable ({reason})")

    @property
    def transient(self) -> bool:
        return isinstance(self.cause, GatewayUnavailable)


class PlanAlreadyExecuted(RuntimeError):
    def __init__(self, plan_id: str):
        super().__init__(f"plan {plan_id} has already been executed")
        self.plan_id = plan_id
