from vault_keeper.gateways.adapter_gateways.gateway import (
    AdapterBridgeGateway,
    AdapterEstimator,
    AdapterLendingGateway,
    AdapterRestakingGateway,
    AdapterSwapGateway,
)

__all__ = [
    "AdapterBridgeGateway",
    "AdapterEstimator",
    "AdapterLendingGateway",
    "AdapterRestakingGateway",
    "AdapterSwapGateway",
]
