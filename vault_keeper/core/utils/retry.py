from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from vault_keeper.core.gateways.results import (
    GatewayResult,
    GatewayUnavailable,
    classify_exception,
)


def exponential_backoff_s(
    attempt: int, *, base_delay_s: float = 0.25, max_delay_s: float | None = None
) -> float:
    delay_s = base_delay_s * (2**attempt)
    if max_delay_s is not None:
        delay_s = min(delay_s, max_delay_s)
    return delay_s


async def retry_async[T](
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_s: float = 0.25,
    max_delay_s: float | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    if max_retries < 1:
        raise ValueError("max_retries must be >= 1")

    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= max_retries - 1:
                raise
            if should_retry is not None and not should_retry(exc):
                raise

            delay_s = exponential_backoff_s(
                attempt, base_delay_s=base_delay_s, max_delay_s=max_delay_s
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay_s)
            await asyncio.sleep(delay_s)

    raise RuntimeError("retry_async exhausted retries")


async def retry_gateway_read[T](
    read: Callable[[], Awaitable[GatewayResult[T]]],
    *,
    attempts: int,
    base_delay_s: float = 0.25,
    max_delay_s: float | None = 5.0,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> GatewayResult[T]:
    """Re-issue an idempotent read while the gateway reports ``GatewayUnavailable``.

    A read that raises is classified the way ``gateway_call`` would classify it,
    so a raised ``ConnectionError`` is retried like a returned
    ``GatewayUnavailable``. Rejections and timeouts are returned (or re-raised)
    on the first occurrence. Writes must never go through here: gateways are
    not idempotency-aware.
    """

    async def _attempt() -> GatewayResult[T]:
        result = await read()
        if isinstance(result, GatewayUnavailable):
            result.raise_error()
        return result

    def _transient(exc: Exception) -> bool:
        return isinstance(classify_exception(exc), GatewayUnavailable)

    try:
        return await retry_async(
            _attempt,
            max_retries=attempts,
            base_delay_s=base_delay_s,
            max_delay_s=max_delay_s,
            should_retry=_transient,
            on_retry=on_retry,
        )
    except Exception as exc:
        failure = classify_exception(exc)
        if isinstance(failure, GatewayUnavailable):
            return failure
        raise
