"""
Proportional settlement distribution between platform custody and an exchange.

The platform holds one currency on several chains (hot wallets) while the
exchange holds another balance of it. To get back to 1:1 the platform sends
``settlement_amount`` to the exchange, withdrawn from each chain in proportion
to its balance:

    sources 10 / 20 / 30, exchange 40  ->  total 100, target 50 each side
    settle 10: 1.66 + 3.33 + 5.00, remainder 0.01 goes to the largest line

All money math is done on ``int`` in the smallest currency unit. Ratios are
floats and only used for reporting and the ratio policy.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Sequence

from .models import BalanceSource, DistributionResult, DistributionTarget, RawAmount

logger = logging.getLogger(__name__)

TARGET_RATIO = 1.0
PERCENT_TOLERANCE = Decimal("0.01")
_DIGITS = re.compile(r"[0-9]+")


class DistributionError(Exception):
    pass


class InvalidAmount(DistributionError):
    pass


class DistributionInvariantViolation(DistributionError):
    pass


def parse_amount(value: RawAmount, field: str = "amount") -> int:
    """Parse a non-negative integer amount given as int, digit string or integral Decimal."""
    if isinstance(value, bool):
        raise InvalidAmount(f"{field}: boolean is not an amount ({value!r})")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        if not _DIGITS.fullmatch(text):
            raise InvalidAmount(f"{field}: not an integer amount ({value!r})")
        amount = int(text)
    elif isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise InvalidAmount(f"{field}: not an integer amount ({value!r})")
        amount = int(value)
    else:
        raise InvalidAmount(f"{field}: unsupported type {type(value).__name__} ({value!r})")
    if amount < 0:
        raise InvalidAmount(f"{field}: negative amount ({value!r})")
    return amount


def _ratio(platform: int, external: int) -> float:
    if external > 0:
        return platform / external
    if platform > 0:
        return float("inf")
    return 0.0


def _percentage(balance: int, platform: int) -> Decimal:
    if platform <= 0:
        return Decimal("0.00")
    return (Decimal((balance * 10000) // platform) / 100).quantize(PERCENT_TOLERANCE)


def calculate_distribution(
    sources: Sequence[BalanceSource],
    external_balance: RawAmount,
    currency_label: str,
) -> DistributionResult:
    """Compute how much to withdraw from each source to reach a 1:1 split with the exchange."""
    balances = [parse_amount(s.balance, f"balance of {s.source_key}") for s in sources]
    external = parse_amount(external_balance, "external balance")

    platform = sum(balances)
    total = platform + external
    target = total // 2
    settlement = target - external
    ratio = _ratio(platform, external)

    logger.info(
        "Distribution for %s: platform=%s external=%s total=%s target=%s settlement=%s ratio=%.2f",
        currency_label,
        platform,
        external,
        total,
        target,
        settlement,
        ratio,
    )

    if settlement <= 0:
        logger.info("No settlement needed for %s (ratio %.2f)", currency_label, ratio)
        return DistributionResult(
            total_balance=platform,
            target_balance=target,
            settlement_amount=0,
            distributions=(),
            needs_settlement=False,
            current_ratio=ratio,
            target_ratio=TARGET_RATIO,
        )

    rows: List[DistributionTarget] = []
    for source, balance in zip(sources, balances):
        amount = (settlement * balance) // platform if platform > 0 else 0
        row = DistributionTarget(
            source_key=source.source_key,
            amount=amount,
            percentage=_percentage(balance, platform),
            original_balance=balance,
            remaining_balance=balance - amount,
            label=source.label,
        )
        logger.debug(
            "%s: balance=%s percentage=%s%% amount=%s remaining=%s",
            source.label or source.source_key,
            balance,
            row.percentage,
            row.amount,
            row.remaining_balance,
        )
        if amount > 0:
            rows.append(row)

    rounding_error = settlement - sum(r.amount for r in rows)
    if rounding_error and rows:
        largest = 0
        for idx, row in enumerate(rows):
            if row.amount > rows[largest].amount:
                largest = idx
        fixed = rows[largest].amount + rounding_error
        rows[largest] = replace(
            rows[largest],
            amount=fixed,
            remaining_balance=rows[largest].original_balance - fixed,
        )
        logger.debug(
            "Adjusted %s by %s to absorb rounding error", rows[largest].source_key, rounding_error
        )

    return DistributionResult(
        total_balance=platform,
        target_balance=target,
        settlement_amount=settlement,
        distributions=tuple(rows),
        needs_settlement=True,
        current_ratio=ratio,
        target_ratio=TARGET_RATIO,
    )


def calculate_distribution_with_threshold(
    sources: Sequence[BalanceSource],
    external_balance: RawAmount,
    currency_label: str,
    min_settlement_amount: RawAmount,
) -> Optional[DistributionResult]:
    """Like calculate_distribution, but None when the settlement is below the minimum."""
    minimum = parse_amount(min_settlement_amount, "minimum settlement amount")
    result = calculate_distribution(sources, external_balance, currency_label)
    if not result.needs_settlement:
        return None
    if result.settlement_amount < minimum:
        logger.info(
            "Settlement amount %s below threshold %s for %s",
            result.settlement_amount,
            minimum,
            currency_label,
        )
        return None
    return result


def calculate_distribution_with_ratio_threshold(
    sources: Sequence[BalanceSource],
    external_balance: RawAmount,
    currency_label: str,
    max_ratio_deviation: float = 0.1,
) -> Optional[DistributionResult]:
    """Like calculate_distribution, but None while the ratio stays within the allowed deviation."""
    result = calculate_distribution(sources, external_balance, currency_label)
    if not result.needs_settlement:
        return None
    deviation = abs(result.current_ratio - result.target_ratio)
    if deviation <= max_ratio_deviation:
        logger.info(
            "Ratio deviation %.4f within threshold %s for %s",
            deviation,
            max_ratio_deviation,
            currency_label,
        )
        return None
    return result


def validate_distribution(result: DistributionResult) -> bool:
    """Check that the plan adds up; raises DistributionInvariantViolation otherwise."""
    if not result.needs_settlement:
        return True

    distributed = result.total_distributed
    if distributed != result.settlement_amount:
        raise DistributionInvariantViolation(
            f"Sum of distributions ({distributed}) does not equal "
            f"settlement amount ({result.settlement_amount})"
        )

    total_pct = sum((d.percentage for d in result.distributions), Decimal("0"))
    if abs(total_pct - 100) > PERCENT_TOLERANCE:
        raise DistributionInvariantViolation(
            f"Percentages sum to {total_pct:.2f}% instead of 100%"
        )

    for d in result.distributions:
        if d.amount < 0 or d.remaining_balance < 0:
            raise DistributionInvariantViolation(
                f"{d.source_key}: amount {d.amount} exceeds balance {d.original_balance}"
            )
    return True


def get_priority_order(result: DistributionResult) -> List[DistributionTarget]:
    # sorted() is stable, equal amounts keep input order
    return sorted(result.distributions, key=lambda d: d.amount, reverse=True)


def _units(amount: int, decimals: int) -> str:
    if decimals <= 0:
        return str(amount)
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**decimals)
    return f"{sign}{whole}.{frac:0{decimals}d}"


def format_distribution(result: DistributionResult, currency_symbol: str, decimals: int) -> str:
    lines = [
        f"Settlement Distribution for {currency_symbol}:",
        f"  Total Balance: {_units(result.total_balance, decimals)} {currency_symbol}",
        f"  Target Balance: {_units(result.target_balance, decimals)} {currency_symbol}",
        f"  Settlement Amount: {_units(result.settlement_amount, decimals)} {currency_symbol}",
        f"  Current Ratio: {result.current_ratio:.4f} (target: {result.target_ratio:.4f})",
        "",
        "Distribution by Source:",
    ]
    for d in result.distributions:
        name = f"{d.source_key} ({d.label})" if d.label else d.source_key
        lines.extend(
            [
                f"  {name}:",
                f"    Amount: {_units(d.amount, decimals)} {currency_symbol} ({d.percentage:.2f}%)",
                f"    Original: {_units(d.original_balance, decimals)} {currency_symbol}",
                f"    Remaining: {_units(d.remaining_balance, decimals)} {currency_symbol}",
            ]
        )
    return "\n".join(lines)
