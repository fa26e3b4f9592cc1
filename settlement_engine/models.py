from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple, Union

RawAmount = Union[int, str, Decimal]


@dataclass
class BalanceSource:
    source_key: str  # e.g. eip155:1, bip122:000000000019d6689c085ae165831e93
    balance: RawAmount  # smallest unit (wei, satoshi, ...)
    label: Optional[str] = None


@dataclass
class CurrencySnapshot:
    currency: str
    decimals: int
    external_balance: RawAmount
    sources: List[BalanceSource] = field(default_factory=list)


@dataclass(frozen=True)
class DistributionTarget:
    source_key: str
    amount: int
    percentage: Decimal  # 0-100, two decimals
    original_balance: int
    remaining_balance: int
    label: Optional[str] = None


@dataclass(frozen=True)
class DistributionResult:
    total_balance: int
    target_balance: int
    settlement_amount: int
    distributions: Tuple[DistributionTarget, ...]
    needs_settlement: bool
    current_ratio: float
    target_ratio: float = 1.0

    @property
    def total_distributed(self) -> int:
        return sum(d.amount for d in self.distributions)
