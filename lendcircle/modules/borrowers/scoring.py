"""
Borrower trust score.

A deterministic 1.0-5.0 star rating in half-star steps, derived from the
credit score, the borrower's repayment track record and how much the user has
invested on the platform. No I/O happens here.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from lendcircle.core.config import settings

MIN_RATING = Decimal("1.0")
MAX_RATING = Decimal("5.0")
DEFAULT_RATING = Decimal("3.0")

# (minimum credit score, base rating), checked in order
CREDIT_SCORE_TIERS = (
    (750, Decimal("5.0")),
    (700, Decimal("4.5")),
    (650, Decimal("4.0")),
    (600, Decimal("3.5")),
)

PERFECT_RECORD_MIN_LOANS = 3
PERFECT_RECORD_BONUS = Decimal("0.5")
GOOD_RECORD_BONUS = Decimal("0.25")
INVESTOR_ACTIVITY_THRESHOLD = Decimal("10000")
INVESTOR_ACTIVITY_BONUS = Decimal("0.25")


def base_rating(credit_score: Optional[int]) -> Decimal:
    if credit_score is None:
        return DEFAULT_RATING
    for minimum, rating in CREDIT_SCORE_TIERS:
        if credit_score >= minimum:
            return rating
    return DEFAULT_RATING


def track_record_adjustment(successful_loans_count: int, defaults_count: int, low_success_penalty: Decimal) -> Decimal:
    """Bonus or penalty from the share of loans repaid; zero with no history"""
    total = successful_loans_count + defaults_count
    if total <= 0:
        return Decimal("0")

    # Integer comparisons keep the 0.9 / 0.7 thresholds exact
    if successful_loans_count == total and successful_loans_count >= PERFECT_RECORD_MIN_LOANS:
        return PERFECT_RECORD_BONUS
    if successful_loans_count * 10 >= total * 9:
        return GOOD_RECORD_BONUS
    if successful_loans_count * 10 < total * 7:
        return -low_success_penalty
    return Decimal("0")


def round_to_half(rating: Decimal) -> Decimal:
    halves = (rating * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (halves / 2).quantize(Decimal("0.1"))


def compute_trust_score(
    credit_score: Optional[int],
    successful_loans_count: int = 0,
    defaults_count: int = 0,
    total_invested: Decimal = Decimal("0"),
    low_success_penalty: Optional[Decimal] = None
) -> Decimal:
    """
    Rate a user from 1.0 to 5.0 in 0.5 steps.

    ``low_success_penalty`` is subtracted when fewer than 70% of finished
    loans were repaid. It defaults to ``TRUST_LOW_SUCCESS_PENALTY``.
    """
    if low_success_penalty is None:
        low_success_penalty = settings.TRUST_LOW_SUCCESS_PENALTY

    rating = base_rating(credit_score)
    rating += track_record_adjustment(successful_loans_count or 0, defaults_count or 0, Decimal(low_success_penalty))

    if Decimal(total_invested or 0) > INVESTOR_ACTIVITY_THRESHOLD:
        rating += INVESTOR_ACTIVITY_BONUS

    rating = min(MAX_RATING, max(MIN_RATING, rating))
    return round_to_half(rating)
