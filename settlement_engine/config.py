"""
Settlement settings from the environment.

- SETTLEMENT_ENABLED: 1/true/on/yes (default on)
- SETTLEMENT_POLICY: amount | ratio | none
- SETTLEMENT_MIN_AMOUNT: minimum settlement in whole currency units, e.g. 0.001 (amount policy)
- SETTLEMENT_MAX_RATIO_DEVIATION: allowed |ratio - 1| (ratio policy)
- SETTLEMENT_SNAPSHOT_FILE / SETTLEMENT_PLAN_FILE: JSON file locations
- SETTLEMENT_FEED_URL / SETTLEMENT_FEED_TOKEN / SETTLEMENT_FEED_TIMEOUT: balance feed
- SETTLEMENT_LOG_LEVEL: logging level name
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

POLICIES = ("amount", "ratio", "none")


class ConfigError(Exception):
    pass


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "on", "yes"}


def _parse_float(name: str, value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} is not a number: {value!r}") from exc


def _parse_units(name: str, value: str | None) -> Decimal:
    if value is None or value.strip() == "":
        return Decimal("0")
    try:
        amount = Decimal(value.strip())
    except InvalidOperation as exc:
        raise ConfigError(f"{name} is not a number: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ConfigError(f"{name} must be a non-negative number: {value!r}")
    return amount


def snapshot_file_from_env(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    return Path(env.get("SETTLEMENT_SNAPSHOT_FILE") or "balances.json")


@dataclass
class SettlementConfig:
    enabled: bool = True
    policy: str = "amount"
    min_settlement_amount: Decimal = Decimal("0")  # whole units of each currency
    max_ratio_deviation: float = 0.1
    snapshot_file: Path = Path("balances.json")
    plan_file: Path = Path("settlement_plan.json")
    feed_url: str = ""
    feed_token: str = ""
    feed_timeout: float = 15.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SettlementConfig":
        env = os.environ if environ is None else environ

        policy = env.get("SETTLEMENT_POLICY", "amount").strip().lower() or "amount"
        if policy not in POLICIES:
            raise ConfigError(f"SETTLEMENT_POLICY must be one of {', '.join(POLICIES)}: {policy!r}")

        deviation = _parse_float(
            "SETTLEMENT_MAX_RATIO_DEVIATION", env.get("SETTLEMENT_MAX_RATIO_DEVIATION"), 0.1
        )
        if deviation < 0:
            raise ConfigError(f"SETTLEMENT_MAX_RATIO_DEVIATION cannot be negative: {deviation}")

        timeout = _parse_float("SETTLEMENT_FEED_TIMEOUT", env.get("SETTLEMENT_FEED_TIMEOUT"), 15.0)
        if timeout <= 0:
            raise ConfigError(f"SETTLEMENT_FEED_TIMEOUT must be positive: {timeout}")

        return cls(
            enabled=_parse_bool(env.get("SETTLEMENT_ENABLED"), default=True),
            policy=policy,
            min_settlement_amount=_parse_units("SETTLEMENT_MIN_AMOUNT", env.get("SETTLEMENT_MIN_AMOUNT")),
            max_ratio_deviation=deviation,
            snapshot_file=snapshot_file_from_env(env),
            plan_file=Path(env.get("SETTLEMENT_PLAN_FILE") or "settlement_plan.json"),
            feed_url=env.get("SETTLEMENT_FEED_URL", "").strip().rstrip("/"),
            feed_token=env.get("SETTLEMENT_FEED_TOKEN", "").strip(),
            feed_timeout=timeout,
            log_level=(env.get("SETTLEMENT_LOG_LEVEL") or "INFO").strip().upper(),
        )
