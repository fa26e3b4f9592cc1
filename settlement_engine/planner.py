from __future__ import annotations

import logging
from decimal import ROUND_CEILING, Decimal
from typing import Optional

from .calc import (
    calculate_distribution,
    calculate_distribution_with_ratio_threshold,
    calculate_distribution_with_threshold,
    validate_distribution,
)
from .config import ConfigError, SettlementConfig
from .models import CurrencySnapshot, DistributionResult

logger = logging.getLogger(__name__)


def min_amount_in_units(minimum: Decimal, decimals: int) -> int:
    """Whole-unit minimum -> smallest units, rounded up so `settlement < minimum` is unchanged."""
    scaled = minimum * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_CEILING))


def plan_settlement(snapshot: CurrencySnapshot, config: SettlementConfig) -> Optional[DistributionResult]:
    """
    Run the configured policy for one currency. None means nothing to settle.

    Every plan goes through validate_distribution. A source whose share
    truncates to zero is dropped from the plan, so its percentage is missing
    from the total (balances 1000 and 1 against an empty exchange leave one
    line at 99.90%) and DistributionInvariantViolation is raised.
    """
    if not config.enabled:
        logger.warning("Settlement is disabled via configuration")
        return None

    if config.policy == "amount":
        minimum = min_amount_in_units(config.min_settlement_amount, snapshot.decimals)
        result = calculate_distribution_with_threshold(
            snapshot.sources,
            snapshot.external_balance,
            snapshot.currency,
            minimum,
        )
    elif config.policy == "ratio":
        result = calculate_distribution_with_ratio_threshold(
            snapshot.sources,
            snapshot.external_balance,
            snapshot.currency,
            config.max_ratio_deviation,
        )
    elif config.policy == "none":
        result = calculate_distribution(snapshot.sources, snapshot.external_balance, snapshot.currency)
        if not result.needs_settlement:
            result = None
    else:
        raise ConfigError(f"Unknown settlement policy: {config.policy!r}")

    if result is not None:
        validate_distribution(result)
    return result
