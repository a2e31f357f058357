from __future__ import annotations

import asyncio
import importlib
import json
import sys
from decimal import Decimal
from typing import Any

import click
from loguru import logger

from vault_keeper.core.config import (
    KeeperConfig,
    get_keeper_config,
    get_simulation_config,
    load_config,
)
from vault_keeper.core.gateways.protocols import Estimator, GatewaySet
from vault_keeper.core.keeper.controller import RebalanceController
from vault_keeper.core.keeper.errors import EstimationUnavailable
from vault_keeper.core.keeper.evaluator import RiskEvaluator
from vault_keeper.core.keeper.plans import (
    build_leverage_loop_plan,
    build_unwind_plan,
    validate_symmetry,
)
from vault_keeper.gateways.simulated_gateways.gateway import gateways_from_config
from vault_keeper.runner.daemon import KeeperDaemon

_LOG_LEVELS = ["DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _keeper_config() -> KeeperConfig:
    try:
        return get_keeper_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_factory(ref: str) -> Any:
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(
            f"expected module:factory, got {ref!r}", param_hint="--gateways"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise click.BadParameter(str(exc), param_hint="--gateways") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise click.BadParameter(
            f"{attr!r} is not a callable in {module_name}", param_hint="--gateways"
        )
    return factory


def _build_gateways(
    keeper: KeeperConfig, *, simulate: bool, gateways_ref: str | None
) -> tuple[GatewaySet, Estimator]:
    if simulate and gateways_ref:
        raise click.UsageError("--simulate and --gateways are mutually exclusive")
    if gateways_ref:
        built = _load_factory(gateways_ref)(keeper)
        if not (isinstance(built, tuple) and len(built) == 2):
            raise click.ClickException(
                f"{gateways_ref} must return (GatewaySet, Estimator)"
            )
        gateways, estimator = built
        if not isinstance(gateways, GatewaySet):
            raise click.ClickException(f"{gateways_ref} did not return a GatewaySet")
        return gateways, estimator
    if simulate:
        return gateways_from_config(keeper, get_simulation_config())
    raise click.UsageError("pass --simulate or --gateways module:factory")


def _gateway_options(fn: Any) -> Any:
    fn = click.option(
        "--gateways",
        "gateways_ref",
        default=None,
        help="Import path module:factory returning (GatewaySet, Estimator).",
    )(fn)
    fn = click.option(
        "--simulate",
        is_flag=True,
        default=False,
        help="Use in-memory gateways seeded from the config's simulation section.",
    )(fn)
    return fn


@click.group(name="vault-keeper", help="Health-factor keeper for a leveraged vault.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Config JSON (defaults to $VAULT_KEEPER_CONFIG_PATH or ./config.json).",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def keeper_cli(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path is not None:
        try:
            load_config(config_path, require_exists=True)
        except (FileNotFoundError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc
    ctx.obj = {"log_level": str(log_level).upper()}


@keeper_cli.command(name="plan", help="Print a plan as JSON without executing it.")
@click.argument("kind", type=click.Choice(["leverage-loop", "unwind"]))
@click.option(
    "--amount",
    type=str,
    default=None,
    help="Leverage-loop amount (defaults to keeper.borrow_amount).",
)
def plan_cmd(kind: str, amount: str | None) -> None:
    keeper = _keeper_config()
    if kind == "leverage-loop":
        try:
            plan = build_leverage_loop_plan(
                keeper, Decimal(amount) if amount is not None else None
            )
        except (ArithmeticError, ValueError) as exc:
            raise click.BadParameter(str(exc), param_hint="--amount") from exc
        _echo_json(plan.to_dict())
        return

    gateways, estimator = gateways_from_config(keeper, get_simulation_config())
    try:
        state = asyncio.run(RiskEvaluator(keeper, gateways, estimator).read_state())
    except EstimationUnavailable as exc:
        raise click.ClickException(str(exc)) from exc
    plan = build_unwind_plan(keeper, state)
    validate_symmetry(build_leverage_loop_plan(keeper), plan)
    _echo_json({**plan.to_dict(), "state": state.to_dict()})


@keeper_cli.command(name="tick", help="Run a single keeper tick.")
@_gateway_options
def tick_cmd(simulate: bool, gateways_ref: str | None) -> None:
    keeper = _keeper_config()
    gateways, estimator = _build_gateways(
        keeper, simulate=simulate, gateways_ref=gateways_ref
    )

    async def _tick() -> dict[str, Any]:
        controller = RebalanceController(keeper, gateways, estimator)
        try:
            report = await controller.tick()
        finally:
            await gateways.close()
        return report.to_dict()

    _echo_json(asyncio.run(_tick()))


@keeper_cli.command(name="run", help="Run the keeper daemon until SIGINT/SIGTERM.")
@_gateway_options
@click.option("--tick-seconds", type=float, default=None)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also log to this file (rotated at 10 MB, kept 7 days).",
)
@click.option("--max-ticks", type=int, default=None, hidden=True)
@click.pass_context
def run_cmd(
    ctx: click.Context,
    simulate: bool,
    gateways_ref: str | None,
    tick_seconds: float | None,
    log_file: str | None,
    max_ticks: int | None,
) -> None:
    keeper = _keeper_config()
    gateways, estimator = _build_gateways(
        keeper, simulate=simulate, gateways_ref=gateways_ref
    )

    async def _run() -> int:
        controller = RebalanceController(keeper, gateways, estimator)
        daemon = KeeperDaemon(
            controller,
            tick_seconds=tick_seconds,
            log_file=log_file,
            log_level=ctx.obj["log_level"],
            max_ticks=max_ticks,
        )
        await daemon.start()
        return daemon.ticks

    try:
        ticks = asyncio.run(_run())
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json({"ok": True, "result": {"ticks": ticks}})


def main() -> None:
    keeper_cli()


if __name__ == "__main__":
    main()
