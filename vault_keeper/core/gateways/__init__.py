from vault_keeper.core.gateways.BaseGateway import BaseGateway
from vault_keeper.core.gateways.decorators import gateway_call
from vault_keeper.core.gateways.protocols import (
    BridgeGateway,
    Estimator,
    GatewaySet,
    LendingGateway,
    RestakingGateway,
    SwapGateway,
)
from vault_keeper.core.gateways.results import (
    GatewayError,
    GatewayFailure,
    GatewayRejected,
    GatewayRejectedError,
    GatewayResult,
    GatewayTimeoutError,
    GatewayUnavailable,
    GatewayUnavailableError,
    Ok,
    Timeout,
    classify_exception,
)

__all__ = [
    "BaseGateway",
    "BridgeGateway",
    "Estimator",
    "GatewayError",
    "GatewayFailure",
    "GatewayRejected",
    "GatewayRejectedError",
    "GatewayResult",
    "GatewaySet",
    "GatewayTimeoutError",
    "GatewayUnavailable",
    "GatewayUnavailableError",
    "LendingGateway",
    "Ok",
    "RestakingGateway",
    "SwapGateway",
    "Timeout",
    "classify_exception",
    "gateway_call",
]
