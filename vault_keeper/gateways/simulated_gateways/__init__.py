from vault_keeper.gateways.simulated_gateways.gateway import (
    SimulatedBridgeGateway,
    SimulatedEstimator,
    SimulatedLendingGateway,
    SimulatedRestakingGateway,
    SimulatedSwapGateway,
    SimulatedVault,
    build_simulated_gateways,
    gateways_from_config,
)

__all__ = [
    "SimulatedBridgeGateway",
    "SimulatedEstimator",
    "SimulatedLendingGateway",
    "SimulatedRestakingGateway",
    "SimulatedSwapGateway",
    "SimulatedVault",
    "build_simulated_gateways",
    "gateways_from_config",
]
