from decimal import Decimal

# Policy defaults. All of these are overridable through KeeperConfig.
SAFETY_THRESHOLD = Decimal("1.5")
OPPORTUNITY_MARGIN = Decimal("1.3")

BRIDGE_TIMEOUT_S = 30 * 60.0
STEP_TIMEOUT_S = 5 * 60.0
READ_ATTEMPTS = 2
TICK_SECONDS = 60.0

# Plan ids the sequencer remembers to refuse re-execution.
EXECUTED_PLAN_HISTORY = 1024
