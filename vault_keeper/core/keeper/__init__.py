from vault_keeper.core.keeper.controller import (
    Escalation,
    RebalanceController,
    TickReport,
    TickState,
)
from vault_keeper.core.keeper.errors import EstimationUnavailable, PlanAlreadyExecuted
from vault_keeper.core.keeper.evaluator import RiskEvaluator, decide
from vault_keeper.core.keeper.leases import VaultLeases
from vault_keeper.core.keeper.plans import (
    build_compensation_plan,
    build_leverage_loop_plan,
    build_unwind_plan,
    validate_symmetry,
)
from vault_keeper.core.keeper.sequencer import ActionSequencer
from vault_keeper.core.keeper.types import (
    ActionPlan,
    ActionStep,
    Decision,
    Evaluation,
    ExecutionResult,
    Outcome,
    PlanKind,
    PlanOp,
    ProtocolKind,
    VaultState,
)

__all__ = [
    "ActionPlan",
    "ActionSequencer",
    "ActionStep",
    "Decision",
    "Escalation",
    "EstimationUnavailable",
    "Evaluation",
    "ExecutionResult",
    "Outcome",
    "PlanAlreadyExecuted",
    "PlanKind",
    "PlanOp",
    "ProtocolKind",
    "RebalanceController",
    "RiskEvaluator",
    "TickReport",
    "TickState",
    "VaultLeases",
    "VaultState",
    "build_compensation_plan",
    "build_leverage_loop_plan",
    "build_unwind_plan",
    "decide",
    "validate_symmetry",
]
