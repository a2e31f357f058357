from __future__ import annotations

import json
import math
import os
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from eth_utils import is_address, to_checksum_address
from loguru import logger

from vault_keeper.core.constants.base import (
    BRIDGE_TIMEOUT_S,
    OPPORTUNITY_MARGIN,
    READ_ATTEMPTS,
    SAFETY_THRESHOLD,
    STEP_TIMEOUT_S,
    TICK_SECONDS,
)
from vault_keeper.core.constants.chains import (
    DEFAULT_DESTINATION_CHAIN_ID,
    DEFAULT_ORIGIN_CHAIN_ID,
    resolve_chain_id,
)

_CONFIG_ENV_KEYS = ("VAULT_KEEPER_CONFIG_PATH", "VAULT_KEEPER_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        if require_exists:
            raise ValueError(f"Invalid JSON in {cfg_path}: {exc}") from exc
        logger.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def _decimal(raw: dict[str, Any], key: str, default: Decimal | None = None) -> Decimal:
    value = raw.get(key, default)
    if value is None:
        raise ValueError(f"keeper.{key} is required")
    try:
        out = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"keeper.{key} is not a number: {value!r}") from exc
    if not out.is_finite() or out <= 0:
        raise ValueError(f"keeper.{key} must be positive, got {value!r}")
    return out


def _positive_float(raw: dict[str, Any], key: str, default: float) -> float:
    raw_value = raw.get(key, default)
    try:
        value = float(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"keeper.{key} is not a number: {raw_value!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"keeper.{key} must be positive, got {raw_value!r}")
    return value


def _int(raw: dict[str, Any], key: str, default: int) -> int:
    raw_value = raw.get(key, default)
    try:
        return int(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"keeper.{key} is not a number: {raw_value!r}") from exc


def _required_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"keeper.{key} is required")
    return value.strip()


@dataclass(frozen=True)
class KeeperConfig:
    vault_id: str
    collateral_asset: str
    debt_asset: str
    liquid_staking_token: str
    borrow_amount: Decimal

    origin_chain_id: int = DEFAULT_ORIGIN_CHAIN_ID
    destination_chain_id: int = DEFAULT_DESTINATION_CHAIN_ID

    # Policy
    safety_threshold: Decimal = SAFETY_THRESHOLD
    opportunity_margin: Decimal = OPPORTUNITY_MARGIN

    # Timeouts / pacing
    bridge_timeout_s: float = BRIDGE_TIMEOUT_S
    step_timeout_s: float | None = STEP_TIMEOUT_S
    read_attempts: int = READ_ATTEMPTS
    tick_seconds: float = TICK_SECONDS

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> KeeperConfig:
        vault_id = _required_str(raw, "vault_id")
        if not is_address(vault_id):
            raise ValueError(f"keeper.vault_id is not an EVM address: {vault_id!r}")

        origin = resolve_chain_id(raw.get("origin_chain_id", DEFAULT_ORIGIN_CHAIN_ID))
        destination = resolve_chain_id(
            raw.get("destination_chain_id", DEFAULT_DESTINATION_CHAIN_ID)
        )
        if origin == destination:
            raise ValueError(
                "keeper.origin_chain_id and destination_chain_id must differ"
            )

        step_timeout = raw.get("step_timeout_s", STEP_TIMEOUT_S)
        if step_timeout is not None:
            step_timeout = _positive_float(raw, "step_timeout_s", STEP_TIMEOUT_S)

        read_attempts = _int(raw, "read_attempts", READ_ATTEMPTS)
        if read_attempts < 1:
            raise ValueError("keeper.read_attempts must be >= 1")

        return cls(
            vault_id=to_checksum_address(vault_id),
            collateral_asset=_required_str(raw, "collateral_asset"),
            debt_asset=_required_str(raw, "debt_asset"),
            liquid_staking_token=_required_str(raw, "liquid_staking_token"),
            borrow_amount=_decimal(raw, "borrow_amount"),
            origin_chain_id=origin,
            destination_chain_id=destination,
            safety_threshold=_decimal(raw, "safety_threshold", SAFETY_THRESHOLD),
            opportunity_margin=_decimal(raw, "opportunity_margin", OPPORTUNITY_MARGIN),
            bridge_timeout_s=_positive_float(raw, "bridge_timeout_s", BRIDGE_TIMEOUT_S),
            step_timeout_s=step_timeout,
            read_attempts=read_attempts,
            tick_seconds=_positive_float(raw, "tick_seconds", TICK_SECONDS),
        )

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        for key in ("borrow_amount", "safety_threshold", "opportunity_margin"):
            out[key] = str(out[key])
        return out


def get_keeper_config(config: dict[str, Any] | None = None) -> KeeperConfig:
    source = CONFIG if config is None else config
    keeper = source.get("keeper")
    if not isinstance(keeper, dict):
        raise ValueError("keeper section missing from config")
    return KeeperConfig.from_dict(keeper)


def get_simulation_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    source = CONFIG if config is None else config
    return dict(source.get("simulation", {}))
