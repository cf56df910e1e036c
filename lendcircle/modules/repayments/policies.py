"""
On-time policies decide ``Repayment.is_on_time`` at settlement.

A policy is any callable ``(loan, payment_date) -> bool``.
"""
from datetime import datetime
from typing import Callable, Dict, Optional

from lendcircle.core.config import settings
from lendcircle.modules.loans.models import LoanRequest

OnTimePolicy = Callable[[LoanRequest, datetime], bool]


def always_on_time(loan: LoanRequest, payment_date: datetime) -> bool:
    return True


def on_or_before_due_date(loan: LoanRequest, payment_date: datetime) -> bool:
    """On time when paid no later than the due date set at funding"""
    if loan.due_date is None:
        return True
    return payment_date.date() <= loan.due_date


ON_TIME_POLICIES: Dict[str, OnTimePolicy] = {
    "always": always_on_time,
    "due_date": on_or_before_due_date,
}


def get_on_time_policy(name: Optional[str] = None) -> OnTimePolicy:
    name = (name or settings.ON_TIME_POLICY).lower()
    try:
        return ON_TIME_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown on-time policy: {name}")
