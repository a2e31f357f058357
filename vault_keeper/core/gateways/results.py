from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, NoReturn


class GatewayError(Exception):
    """Base class for failures reported by a protocol gateway."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class GatewayUnavailableError(GatewayError):
    pass


class GatewayRejectedError(GatewayError):
    pass


class GatewayTimeoutError(GatewayError):
    pass


@dataclass(frozen=True)
class Ok[T]:
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class GatewayUnavailable:
    """Transient: the gateway could not be reached. Retry the whole cycle later."""

    reason: str
    kind = "GatewayUnavailable"

    @property
    def ok(self) -> bool:
        return False

    def raise_error(self) -> NoReturn:
        raise GatewayUnavailableError(self.reason)


@dataclass(frozen=True)
class GatewayRejected:
    """The step's on-chain preconditions were not met."""

    reason: str
    kind = "GatewayRejected"

    @property
    def ok(self) -> bool:
        return False

    def raise_error(self) -> NoReturn:
        raise GatewayRejectedError(self.reason)


@dataclass(frozen=True)
class Timeout:
    reason: str
    timeout_s: float | None = None
    kind = "Timeout"

    @property
    def ok(self) -> bool:
        return False

    def raise_error(self) -> NoReturn:
        raise GatewayTimeoutError(self.reason)


GatewayFailure = GatewayUnavailable | GatewayRejected | Timeout
type GatewayResult[T] = Ok[T] | GatewayFailure


def classify_exception(exc: BaseException) -> GatewayFailure:
    """Map an exception raised by gateway code onto the failure taxonomy."""
    if isinstance(exc, GatewayUnavailableError):
        return GatewayUnavailable(exc.reason)
    if isinstance(exc, GatewayTimeoutError):
        return Timeout(exc.reason)
    if isinstance(exc, GatewayRejectedError):
        return GatewayRejected(exc.reason)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return Timeout(str(exc) or exc.__class__.__name__)
    if isinstance(exc, (ConnectionError, OSError)):
        return GatewayUnavailable(str(exc) or exc.__class__.__name__)
    return GatewayRejected(str(exc) or exc.__class__.__name__)


def failure_to_dict(failure: GatewayFailure) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": failure.kind, "reason": failure.reason}
    if isinstance(failure, Timeout) and failure.timeout_s is not None:
        out["timeout_s"] = failure.timeout_s
    return out
