__version__ = "0.1.0"

from vault_keeper.core import (
    ActionPlan,
    BaseGateway,
    GatewaySet,
    KeeperConfig,
    RebalanceController,
)

__all__ = [
    "__version__",
    "ActionPlan",
    "BaseGateway",
    "GatewaySet",
    "KeeperConfig",
    "RebalanceController",
]
