from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class BorrowerProfileUpdate(BaseModel):
    """Fields a borrower may edit (all optional)"""
    credit_score: Optional[int] = Field(None, ge=300, le=850)
    bio: Optional[str] = Field(None, max_length=2000)
    purpose: Optional[str] = Field(None, max_length=200)


class BorrowerProfileResponse(BaseModel):
    user_id: int
    credit_score: Optional[int] = None
    successful_loans_count: int
    defaults_count: int
    bio: Optional[str] = None
    purpose: Optional[str] = None
    total_repaid: Decimal
    is_verified: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TrustScoreResponse(BaseModel):
    user_id: int
    rating: Decimal
    credit_score: Optional[int] = None
    successful_loans_count: int
    defaults_count: int
    total_invested: Decimal


class UserStatsResponse(BaseModel):
    user_id: int
    total_borrowed: Decimal
    total_invested: Decimal
    rating: Decimal
