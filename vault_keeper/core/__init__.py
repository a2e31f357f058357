from vault_keeper.core.config import KeeperConfig
from vault_keeper.core.gateways.BaseGateway import BaseGateway
from vault_keeper.core.gateways.protocols import GatewaySet
from vault_keeper.core.keeper.controller import RebalanceController
from vault_keeper.core.keeper.types import ActionPlan

__all__ = [
    "ActionPlan",
    "BaseGateway",
    "GatewaySet",
    "KeeperConfig",
    "RebalanceController",
]
