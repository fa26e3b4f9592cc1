from .calc import (
    DistributionError,
    DistributionInvariantViolation,
    InvalidAmount,
    calculate_distribution,
    calculate_distribution_with_ratio_threshold,
    calculate_distribution_with_threshold,
    format_distribution,
    get_priority_order,
    parse_amount,
    validate_distribution,
)
from .models import BalanceSource, CurrencySnapshot, DistributionResult, DistributionTarget

__all__ = [
    "BalanceSource",
    "CurrencySnapshot",
    "DistributionError",
    "DistributionInvariantViolation",
    "DistributionResult",
    "DistributionTarget",
    "InvalidAmount",
    "calculate_distribution",
    "calculate_distribution_with_ratio_threshold",
    "calculate_distribution_with_threshold",
    "format_distribution",
    "get_priority_order",
    "parse_amount",
    "validate_distribution",
]
