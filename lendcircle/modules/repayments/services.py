from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from lendcircle.core.config import settings
from lendcircle.core.exceptions import (
    AlreadySettled, ConcurrencyConflict, InsufficientFunding, NotLoanOwner
)
from lendcircle.modules.borrowers.services import ProfileService
from lendcircle.modules.funding.ledger import FundingLedger, to_money
from lendcircle.modules.loans.models import LoanStatus
from lendcircle.modules.repayments.calculations import simple_interest_total
from lendcircle.modules.repayments.models import Repayment
from lendcircle.modules.repayments.policies import OnTimePolicy, get_on_time_policy
from lendcircle.modules.repayments.schemas import RepaymentQuoteResponse

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SettlementService:
    """
    Finalizes a fully funded loan exactly once.

    The repayment insert, the borrower's track-record update and the loan's
    move to ``completed`` commit together. A second settlement of the same
    loan is stopped by the unique ``repayments.loan_id`` constraint and
    reported as ``AlreadySettled``.
    """

    def __init__(
        self,
        db: AsyncSession,
        on_time: Optional[OnTimePolicy] = None,
        ledger: Optional[FundingLedger] = None,
        clock: Callable[[], datetime] = utcnow,
        max_retries: Optional[int] = None
    ):
        self.db = db
        self.on_time = on_time or get_on_time_policy()
        self.ledger = ledger or FundingLedger(db)
        self.profiles = ProfileService(db)
        self.clock = clock
        self.max_retries = settings.ADMISSION_MAX_RETRIES if max_retries is None else max_retries

    async def get_repayment(self, loan_id: int) -> Optional[Repayment]:
        result = await self.db.execute(
            select(Repayment).where(Repayment.loan_id == loan_id)
        )
        return result.scalar_one_or_none()

    async def quote(self, loan_id: int) -> RepaymentQuoteResponse:
        loan = await self.ledger.get_loan(loan_id)
        principal = await self.ledger.funded_amount(loan_id)
        total = simple_interest_total(principal, loan.interest_rate, loan.repayment_months)
        existing = await self.get_repayment(loan_id)

        return RepaymentQuoteResponse(
            loan_id=loan.id,
            currency=loan.currency,
            principal=principal,
            interest=total - principal,
            total_repayment=total,
            interest_rate=loan.interest_rate,
            repayment_months=loan.repayment_months,
            due_date=loan.due_date,
            eligible=existing is None and principal >= to_money(loan.amount_requested),
            already_settled=existing is not None
        )

    async def settle_repayment(self, loan_id: int, borrower_id: Optional[int] = None) -> Repayment:
        """
        Settle ``loan_id``. When ``borrower_id`` is given only that borrower may settle.

        Raises ``AlreadySettled`` (carrying the existing repayment) on repeat calls.
        """
        attempt = 0
        while True:
            try:
                return await self._settle(loan_id, borrower_id)
            except ConcurrencyConflict:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"Settlement of loan {loan_id} abandoned after {attempt} conflicts")
                    raise
                logger.info(f"Concurrent update on loan {loan_id}, retrying settlement ({attempt}/{self.max_retries})")

    async def _settle(self, loan_id: int, borrower_id: Optional[int]) -> Repayment:
        async with self.ledger.serialize(loan_id):
            try:
                loan = await self.ledger.get_loan(loan_id, for_update=True)
                if borrower_id is not None and loan.borrower_id != borrower_id:
                    raise NotLoanOwner(f"Only the borrower can repay loan request {loan_id}")

                existing = await self.get_repayment(loan_id)
                if existing is not None:
                    raise AlreadySettled(loan_id, existing)

                principal = await self.ledger.funded_amount(loan_id)
                requested = to_money(loan.amount_requested)
                if principal < requested:
                    raise InsufficientFunding(loan_id, principal, requested)

                payment_date = self.clock()
                amount = simple_interest_total(principal, loan.interest_rate, loan.repayment_months)
                repayment = Repayment(
                    loan_id=loan_id,
                    amount=amount,
                    is_on_time=bool(self.on_time(loan, payment_date)),
                    payment_date=payment_date
                )
                self.db.add(repayment)
                await self.profiles.record_successful_repayment(loan.borrower_id, amount)
                loan.status = LoanStatus.COMPLETED
                await self.db.flush()
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                existing = await self.get_repayment(loan_id)
                if existing is not None:
                    raise AlreadySettled(loan_id, existing) from e
                raise ConcurrencyConflict(f"Loan request {loan_id} settlement collided with another write") from e
            except StaleDataError as e:
                await self.db.rollback()
                raise ConcurrencyConflict(f"Loan request {loan_id} changed during settlement") from e
            except AlreadySettled as e:
                await self.db.rollback()
                # rollback expired it
                await self.db.refresh(e.repayment)
                raise
            except Exception as e:
                await self.db.rollback()
                logger.info(f"Settlement of loan {loan_id} rejected: {e}")
                raise

        await self.db.refresh(repayment)
        logger.info(
            f"Loan {loan_id} settled: repayment {repayment.id} of {amount} "
            f"({'on time' if repayment.is_on_time else 'late'})"
        )
        return repayment
