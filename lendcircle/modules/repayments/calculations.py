from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def simple_interest_total(principal: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """
    Principal plus non-compounding interest over the term.

    total = principal * (1 + (annual_rate / 100) * (term_months / 12))
    """
    principal = Decimal(principal)
    rate = Decimal(annual_rate) / Decimal(100)
    years = Decimal(term_months) / Decimal(12)
    total = principal * (Decimal(1) + rate * years)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def simple_interest(principal: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """Interest portion only"""
    return simple_interest_total(principal, annual_rate, term_months) - Decimal(principal).quantize(CENT, rounding=ROUND_HALF_UP)
