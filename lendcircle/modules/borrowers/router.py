from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from lendcircle.core.database import get_db
from lendcircle.core.dependencies import get_current_user_id
from lendcircle.modules.borrowers.schemas import (
    BorrowerProfileUpdate, BorrowerProfileResponse, TrustScoreResponse, UserStatsResponse
)
from lendcircle.modules.borrowers.services import ProfileService

router = APIRouter(prefix="/api/v1/borrowers", tags=["borrowers"])


@router.get("/me", response_model=BorrowerProfileResponse)
async def read_my_profile(
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = ProfileService(db)
    profile = await service.get_profile(current_user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Borrower profile not found")
    return profile


@router.put("/me", response_model=BorrowerProfileResponse)
async def update_my_profile(
    profile_in: BorrowerProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Create or edit the borrower profile. Track record fields are not editable."""
    service = ProfileService(db)
    return await service.update_profile(current_user_id, profile_in)


@router.get("/{user_id}/trust-score", response_model=TrustScoreResponse)
async def read_trust_score(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = ProfileService(db)
    return await service.get_trust_score(user_id)


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
async def read_user_stats(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Total borrowed, total invested and star rating"""
    service = ProfileService(db)
    return await service.get_user_stats(user_id)
