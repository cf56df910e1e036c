from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List


class InvestmentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    is_anonymous: bool = False
    payment_reference: Optional[str] = Field(None, max_length=100)


class InvestmentResponse(BaseModel):
    id: int
    loan_id: int
    investor_id: Optional[int] = None  # None for anonymous investors
    amount: Decimal
    is_anonymous: bool
    created_at: datetime

    class Config:
        from_attributes = True


class FundingStatusResponse(BaseModel):
    loan_id: int
    status: str
    currency: str
    amount_requested: Decimal
    amount_funded: Decimal
    remaining_capacity: Decimal
    minimum_investment: Decimal
    funded_percentage: Decimal
    policy: str


class PortfolioItem(BaseModel):
    investment_id: int
    loan_id: int
    loan_title: str
    loan_status: str
    currency: str
    interest_rate: Decimal
    repayment_months: int
    amount: Decimal
    expected_return: Decimal
    expected_profit: Decimal
    is_anonymous: bool
    created_at: datetime


class PortfolioResponse(BaseModel):
    investments: List[PortfolioItem]
    total_invested: Decimal
    total_expected_return: Decimal
