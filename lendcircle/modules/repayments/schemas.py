from pydantic import BaseModel
from datetime import datetime, date
from decimal import Decimal
from typing import Optional


class RepaymentResponse(BaseModel):
    id: int
    loan_id: int
    amount: Decimal
    is_on_time: bool
    payment_date: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class RepaymentQuoteResponse(BaseModel):
    """Payoff preview shown to the borrower before settling"""
    loan_id: int
    currency: str
    principal: Decimal
    interest: Decimal
    total_repayment: Decimal
    interest_rate: Decimal
    repayment_months: int
    due_date: Optional[date] = None
    eligible: bool
    already_settled: bool
