from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from decimal import Decimal
from typing import Optional
import logging

from lendcircle.modules.borrowers.models import BorrowerProfile
from lendcircle.modules.borrowers.schemas import (
    BorrowerProfileUpdate, TrustScoreResponse, UserStatsResponse
)
from lendcircle.modules.borrowers.scoring import compute_trust_score
from lendcircle.modules.funding.ledger import to_money
from lendcircle.modules.funding.models import Investment
from lendcircle.modules.loans.models import LoanRequest

logger = logging.getLogger(__name__)


class ProfileService:
    """Service layer for borrower profiles and trust scores"""

    def __init__(self, db: AsyncSession, low_success_penalty: Optional[Decimal] = None):
        self.db = db
        self.low_success_penalty = low_success_penalty

    async def get_profile(self, user_id: int) -> Optional[BorrowerProfile]:
        result = await self.db.execute(
            select(BorrowerProfile)
            .where(BorrowerProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_profile(self, user_id: int) -> BorrowerProfile:
        """Get the profile, staging an empty one if the user has none. Does not commit."""
        profile = await self.get_profile(user_id)
        if profile is None:
            profile = BorrowerProfile(
                user_id=user_id,
                successful_loans_count=0,
                defaults_count=0,
                total_repaid=Decimal("0.00"),
                is_verified=False
            )
            self.db.add(profile)
            await self.db.flush()
        return profile

    async def update_profile(self, user_id: int, data: BorrowerProfileUpdate) -> BorrowerProfile:
        profile = await self.ensure_profile(user_id)

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(profile, field, value)

        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def record_successful_repayment(self, user_id: int, amount: Decimal) -> None:
        """
        Count a repaid loan on the borrower's record. Does not commit.

        The increment runs in SQL so settlements of different loans by the same
        borrower cannot lose each other's updates.
        """
        await self.ensure_profile(user_id)
        await self.db.execute(
            update(BorrowerProfile)
            .where(BorrowerProfile.user_id == user_id)
            .values(
                successful_loans_count=BorrowerProfile.successful_loans_count + 1,
                total_repaid=BorrowerProfile.total_repaid + amount
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Borrower {user_id} repaid {amount}; successful loan recorded")

    async def get_total_invested(self, user_id: int) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Investment.amount), 0)).where(Investment.investor_id == user_id)
        )
        return to_money(result.scalar_one())

    async def get_total_borrowed(self, user_id: int) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(LoanRequest.amount_requested), 0)).where(LoanRequest.borrower_id == user_id)
        )
        return to_money(result.scalar_one())

    async def get_trust_score(self, user_id: int) -> TrustScoreResponse:
        profile = await self.get_profile(user_id)
        total_invested = await self.get_total_invested(user_id)

        credit_score = profile.credit_score if profile else None
        successful = profile.successful_loans_count if profile else 0
        defaults = profile.defaults_count if profile else 0

        rating = compute_trust_score(
            credit_score,
            successful,
            defaults,
            total_invested,
            low_success_penalty=self.low_success_penalty
        )

        return TrustScoreResponse(
            user_id=user_id,
            rating=rating,
            credit_score=credit_score,
            successful_loans_count=successful,
            defaults_count=defaults,
            total_invested=total_invested
        )

    async def get_user_stats(self, user_id: int) -> UserStatsResponse:
        score = await self.get_trust_score(user_id)
        return UserStatsResponse(
            user_id=user_id,
            total_borrowed=await self.get_total_borrowed(user_id),
            total_invested=score.total_invested,
            rating=score.rating
        )
