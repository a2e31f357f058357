"""Risk & opportunity evaluation.

``decide`` is the whole policy and is pure: safety first, then opportunity,
otherwise nothing. ``RiskEvaluator`` does the I/O around it: every input is
read fresh from the gateways/estimators on each call and nothing is cached.
A missing input raises ``EstimationUnavailable``; it is never downgraded to
``NO_ACTION``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation

from loguru import logger

from vault_keeper.core.config import KeeperConfig
from vault_keeper.core.gateways.protocols import Estimator, GatewaySet
from vault_keeper.core.gateways.results import (
    GatewayResult,
    Ok,
    classify_exception,
)
from vault_keeper.core.keeper.errors import EstimationUnavailable
from vault_keeper.core.keeper.types import Decision, Evaluation, VaultState
from vault_keeper.core.utils.retry import retry_gateway_read


def decide(
    health_factor: Decimal,
    yield_differential: Decimal,
    bridge_cost: Decimal,
    *,
    safety_threshold: Decimal,
    opportunity_margin: Decimal,
) -> Decision:
    # A vault near liquidation never re-levers, whatever the opportunity.
    if health_factor < safety_threshold:
        return Decision.UNWIND
    if yield_differential > bridge_cost * opportunity_margin:
        return Decision.LEVERAGE_LOOP
    return Decision.NO_ACTION


def _to_decimal(source: str, value: object) -> Decimal:
    try:
        out = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise EstimationUnavailable(source, f"not a number: {value!r}") from exc
    if not out.is_finite():
        raise EstimationUnavailable(source, f"not finite: {value!r}")
    return out


class RiskEvaluator:
    def __init__(
        self,
        config: KeeperConfig,
        gateways: GatewaySet,
        estimator: Estimator,
    ):
        self.config = config
        self.gateways = gateways
        self.estimator = estimator
        self.logger = logger.bind(component="evaluator", vault=config.vault_id)

    async def _read[T](
        self, source: str, read: Callable[[], Awaitable[GatewayResult[T]]]
    ) -> T:
        def _on_retry(attempt: int, exc: Exception, delay_s: float) -> None:
            self.logger.warning(
                f"{source} read attempt {attempt + 1} unavailable ({exc}); "
                f"retrying in {delay_s:.2f}s"
            )

        try:
            result = await retry_gateway_read(
                read, attempts=self.config.read_attempts, on_retry=_on_retry
            )
        except Exception as exc:
            raise EstimationUnavailable(source, classify_exception(exc)) from exc
        if not isinstance(result, Ok):
            raise EstimationUnavailable(source, result)
        return result.value

    async def _estimate(
        self, source: str, fn: Callable[[], Awaitable[Decimal]]
    ) -> Decimal:
        try:
            value = await fn()
        except EstimationUnavailable:
            raise
        except Exception as exc:
            raise EstimationUnavailable(source, classify_exception(exc)) from exc
        return _to_decimal(source, value)

    async def read_state(self) -> VaultState:
        vault_id = self.config.vault_id
        token = self.config.liquid_staking_token

        health_factor = _to_decimal(
            "health_factor",
            await self._read(
                "health_factor",
                lambda: self.gateways.lending.get_health_factor(vault_id),
            ),
        )
        if health_factor < 0:
            raise EstimationUnavailable(
                "health_factor", f"negative health factor {health_factor}"
            )
        position = await self._read(
            "lending_position", lambda: self.gateways.lending.get_position(vault_id)
        )
        staked = _to_decimal(
            "staked_balance",
            await self._read(
                "staked_balance",
                lambda: self.gateways.restaking.get_staked_balance(vault_id, token),
            ),
        )
        collateral_size = _to_decimal("lending_position", position.collateral_size)
        debt_size = _to_decimal("lending_position", position.debt_size)
        for source, value in (
            ("lending_position", collateral_size),
            ("lending_position", debt_size),
            ("staked_balance", staked),
        ):
            if value < 0:
                raise EstimationUnavailable(source, f"negative amount {value}")

        return VaultState(
            vault_id=vault_id,
            health_factor=health_factor,
            collateral_asset=position.collateral_asset,
            collateral_size=collateral_size,
            debt_asset=position.debt_asset,
            debt_size=debt_size,
            staked_token=token,
            staked_size=staked,
        )

    async def evaluate(self) -> Evaluation:
        state = await self.read_state()
        y = await self._estimate(
            "yield_differential", self.estimator.estimate_yield_differential
        )
        c = await self._estimate("bridge_cost", self.estimator.estimate_bridge_cost)
        if c < 0:
            raise EstimationUnavailable("bridge_cost", f"negative bridge cost {c}")

        decision = decide(
            state.health_factor,
            y,
            c,
            safety_threshold=self.config.safety_threshold,
            opportunity_margin=self.config.opportunity_margin,
        )
        self.logger.info(
            f"Decision {decision}: health_factor={state.health_factor} "
            f"yield_differential={y} bridge_cost={c}"
        )
        return Evaluation(
            decision=decision, state=state, yield_differential=y, bridge_cost=c
        )
