from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any

from vault_keeper.core.gateways.results import (
    GatewayResult,
    GatewayUnavailable,
    Ok,
    classify_exception,
)


def gateway_call[T](
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, GatewayResult[T]]]:
    """Wrap an async gateway method to return ``Ok(result)`` or a failure value.

    The decorated function should perform its work and return the result
    directly, raising on failure. Exceptions are logged via ``self.logger`` and
    classified into ``GatewayUnavailable``, ``GatewayRejected`` or ``Timeout``.
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> GatewayResult[T]:
        try:
            result = await fn(self, *args, **kwargs)
            return Ok(result)
        except Exception as exc:
            failure = classify_exception(exc)
            log = (
                self.logger.warning
                if isinstance(failure, GatewayUnavailable)
                else self.logger.error
            )
            log(f"Error in {fn.__name__}: {failure.kind}: {failure.reason}")
            return failure

    return wrapper  # type: ignore[return-value]
