from pydantic import BaseModel, Field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional


class LoanStatusEnum(str, Enum):
    OPEN = "open"
    FUNDED = "funded"
    COMPLETED = "completed"


class LoanSortEnum(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    AMOUNT_HIGH = "amount_high"
    AMOUNT_LOW = "amount_low"
    RATE_HIGH = "rate_high"
    RATE_LOW = "rate_low"
    FUNDED_HIGH = "funded_high"
    FUNDED_LOW = "funded_low"


class LoanRequestBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    amount_requested: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    interest_rate: Decimal = Field(..., gt=0, max_digits=5, decimal_places=2)
    repayment_months: int = Field(..., gt=0, le=600)
    currency: str = Field("USD", min_length=3, max_length=3)


class LoanRequestCreate(LoanRequestBase):
    pass


class LoanRequestUpdate(BaseModel):
    """Schema for editing an unfunded loan request (all optional)"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    amount_requested: Optional[Decimal] = Field(None, gt=0, max_digits=15, decimal_places=2)
    interest_rate: Optional[Decimal] = Field(None, gt=0, max_digits=5, decimal_places=2)
    repayment_months: Optional[int] = Field(None, gt=0, le=600)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class LoanFilters(BaseModel):
    status: Optional[LoanStatusEnum] = None
    currency: Optional[str] = None
    borrower_id: Optional[int] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    max_months: Optional[int] = None
    sort: LoanSortEnum = LoanSortEnum.NEWEST


class LoanRequestResponse(LoanRequestBase):
    id: int
    borrower_id: int
    status: LoanStatusEnum
    amount_funded: Decimal = Decimal("0.00")
    remaining_capacity: Decimal = Decimal("0.00")
    funded_at: Optional[datetime] = None
    due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
