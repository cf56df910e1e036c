"""
Minimum investment policies.

A policy maps a loan's requested amount to the smallest ticket an investor may
commit. Policies never look at how much the loan has already raised; the
admission service relaxes the floor to the remaining capacity so the last
sliver of a loan can still be filled.
"""
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Tuple

from lendcircle.core.config import settings

CENT = Decimal("0.01")


class MinimumInvestmentPolicy(ABC):
    """Strategy interface selected by ``MIN_INVESTMENT_POLICY``"""

    name: str = ""

    @abstractmethod
    def minimum_for(self, amount_requested: Decimal) -> Decimal:
        """Return the minimum ticket for a loan of ``amount_requested``"""

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name})>"


class FlatMinimumPolicy(MinimumInvestmentPolicy):
    """Same floor for every loan"""

    name = "flat"

    def __init__(self, minimum: Decimal = Decimal("100.00")):
        self.minimum = Decimal(minimum).quantize(CENT, rounding=ROUND_HALF_UP)

    def minimum_for(self, amount_requested: Decimal) -> Decimal:
        return self.minimum


# (upper bound inclusive, share of the loan); None means no upper bound
DEFAULT_TIERS: Tuple[Tuple[Optional[Decimal], Decimal], ...] = (
    (Decimal("1000"), Decimal("1.00")),
    (Decimal("10000"), Decimal("0.05")),
    (Decimal("100000"), Decimal("0.10")),
    (None, Decimal("0.20")),
)


class TieredMinimumPolicy(MinimumInvestmentPolicy):
    """Floor scaled as a percentage of the loan, by size bracket"""

    name = "tiered"

    def __init__(self, tiers: Sequence[Tuple[Optional[Decimal], Decimal]] = DEFAULT_TIERS):
        if not tiers or tiers[-1][0] is not None:
            raise ValueError("Last tier must be unbounded")
        self.tiers = tuple(tiers)

    def minimum_for(self, amount_requested: Decimal) -> Decimal:
        amount = Decimal(amount_requested)
        for ceiling, share in self.tiers:
            if ceiling is None or amount <= ceiling:
                return (amount * share).quantize(CENT, rounding=ROUND_HALF_UP)
        raise AssertionError("unreachable: last tier is unbounded")


def get_minimum_investment_policy(name: Optional[str] = None) -> MinimumInvestmentPolicy:
    """Build the configured policy"""
    name = (name or settings.MIN_INVESTMENT_POLICY).lower()
    if name == FlatMinimumPolicy.name:
        return FlatMinimumPolicy(settings.FLAT_MIN_INVESTMENT)
    if name == TieredMinimumPolicy.name:
        return TieredMinimumPolicy()
    raise ValueError(f"Unknown minimum investment policy: {name}")
