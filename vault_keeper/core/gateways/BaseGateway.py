from __future__ import annotations

from abc import ABC
from typing import Any

from loguru import logger

from vault_keeper.core.gateways.models import OperationBase


class BaseGateway(ABC):
    gateway_type: str | None = None

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.logger = logger.bind(gateway=self.__class__.__name__)

    def stamp[TOp: OperationBase](self, operation: TOp) -> TOp:
        """Attach this gateway's type to an operation receipt."""
        return operation.model_copy(update={"gateway": self.gateway_type or self.name})

    async def close(self) -> None:
        pass
