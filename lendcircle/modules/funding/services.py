from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
import logging

from lendcircle.core.config import settings
from lendcircle.core.exceptions import (
    ConcurrencyConflict, InvestmentExceedsCapacity, InvestmentTooSmall, LoanNotOpen, NotLoanOwner
)
from lendcircle.modules.funding.ledger import FundingLedger, to_money, ZERO
from lendcircle.modules.funding.models import Investment
from lendcircle.modules.funding.policy import MinimumInvestmentPolicy, get_minimum_investment_policy
from lendcircle.modules.funding.schemas import (
    InvestmentCreate, InvestmentResponse, FundingStatusResponse, PortfolioItem, PortfolioResponse
)
from lendcircle.modules.loans.models import LoanRequest, LoanStatus
from lendcircle.modules.repayments.calculations import simple_interest_total

logger = logging.getLogger(__name__)


class AdmissionService:
    """Validates prospective investments and commits the accepted ones"""

    def __init__(
        self,
        db: AsyncSession,
        policy: Optional[MinimumInvestmentPolicy] = None,
        ledger: Optional[FundingLedger] = None,
        max_retries: Optional[int] = None
    ):
        self.db = db
        self.policy = policy or get_minimum_investment_policy()
        self.ledger = ledger or FundingLedger(db)
        self.max_retries = settings.ADMISSION_MAX_RETRIES if max_retries is None else max_retries

    async def invest_in_loan(self, loan_id: int, investor_id: int, data: InvestmentCreate) -> Investment:
        """
        Admit and commit an investment.

        ``ConcurrencyConflict`` is retried with fresh reads up to ``max_retries``
        times before it reaches the caller.
        """
        attempt = 0
        while True:
            try:
                return await self._admit(loan_id, investor_id, data)
            except ConcurrencyConflict:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"Investment on loan {loan_id} by investor {investor_id} abandoned after {attempt} conflicts")
                    raise
                logger.info(f"Concurrent update on loan {loan_id}, retrying admission ({attempt}/{self.max_retries})")

    async def _admit(self, loan_id: int, investor_id: int, data: InvestmentCreate) -> Investment:
        amount = to_money(data.amount)

        async with self.ledger.serialize(loan_id):
            try:
                loan = await self.ledger.get_loan(loan_id, for_update=True)
                if loan.status != LoanStatus.OPEN:
                    raise LoanNotOpen(loan_id, LoanStatus(loan.status).value)

                funded = await self.ledger.funded_amount(loan_id)
                remaining = max(ZERO, to_money(loan.amount_requested) - funded)
                effective_min = self.effective_minimum(loan, remaining)

                if amount < effective_min:
                    raise InvestmentTooSmall(amount, effective_min)
                if amount > remaining:
                    raise InvestmentExceedsCapacity(amount, remaining)

                investment = Investment(
                    loan_id=loan_id,
                    investor_id=investor_id,
                    amount=amount,
                    is_anonymous=data.is_anonymous,
                    payment_reference=data.payment_reference
                )
                new_total = await self.ledger.append(loan, investment, funded)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                if not isinstance(e, ConcurrencyConflict):
                    logger.info(f"Investment of {amount} on loan {loan_id} rejected: {e}")
                raise

        await self.db.refresh(investment)
        logger.info(
            f"Investment {investment.id} of {amount} committed on loan {loan_id} "
            f"(funded {new_total} of {loan.amount_requested})"
        )
        if new_total == to_money(loan.amount_requested):
            logger.info(f"Loan {loan_id} fully funded")
        return investment

    def effective_minimum(self, loan: LoanRequest, remaining: Decimal) -> Decimal:
        """Policy floor relaxed to the remaining capacity"""
        return min(self.policy.minimum_for(to_money(loan.amount_requested)), remaining)

    async def get_funded_amount(self, loan_id: int) -> Decimal:
        await self.ledger.get_loan(loan_id)
        return await self.ledger.funded_amount(loan_id)

    async def get_funding_status(self, loan_id: int) -> FundingStatusResponse:
        loan = await self.ledger.get_loan(loan_id)
        funded = await self.ledger.funded_amount(loan_id)
        requested = to_money(loan.amount_requested)
        remaining = max(ZERO, requested - funded)
        percentage = (funded / requested * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        return FundingStatusResponse(
            loan_id=loan.id,
            status=LoanStatus(loan.status).value,
            currency=loan.currency,
            amount_requested=requested,
            amount_funded=funded,
            remaining_capacity=remaining,
            minimum_investment=self.effective_minimum(loan, remaining),
            funded_percentage=percentage,
            policy=self.policy.name
        )

    async def reconcile_funding(self, loan_id: int, user_id: int) -> FundingStatusResponse:
        """Borrower-triggered rewrite of the cached funded amount"""
        loan = await self.ledger.get_loan(loan_id)
        if loan.borrower_id != user_id:
            raise NotLoanOwner(f"Only the borrower can reconcile loan request {loan_id}")
        await self.ledger.reconcile(loan_id)
        return await self.get_funding_status(loan_id)

    async def get_loan_investments(self, loan_id: int, viewer_id: Optional[int] = None) -> List[InvestmentResponse]:
        """Investments of a loan, newest first, with anonymous investors masked"""
        await self.ledger.get_loan(loan_id)
        result = await self.db.execute(
            select(Investment)
            .where(Investment.loan_id == loan_id)
            .order_by(Investment.created_at.desc(), Investment.id.desc())
        )
        responses = []
        for investment in result.scalars().all():
            response = InvestmentResponse.model_validate(investment)
            if investment.is_anonymous and investment.investor_id != viewer_id:
                response.investor_id = None
            responses.append(response)
        return responses

    async def get_portfolio(self, investor_id: int) -> PortfolioResponse:
        """Investor's investments joined with their loans and expected returns"""
        result = await self.db.execute(
            select(Investment, LoanRequest)
            .join(LoanRequest, LoanRequest.id == Investment.loan_id)
            .where(Investment.investor_id == investor_id)
            .order_by(Investment.created_at.desc(), Investment.id.desc())
        )

        items = []
        total_invested = ZERO
        total_expected = ZERO
        for investment, loan in result.all():
            amount = to_money(investment.amount)
            expected = simple_interest_total(amount, loan.interest_rate, loan.repayment_months)
            items.append(PortfolioItem(
                investment_id=investment.id,
                loan_id=loan.id,
                loan_title=loan.title,
                loan_status=LoanStatus(loan.status).value,
                currency=loan.currency,
                interest_rate=loan.interest_rate,
                repayment_months=loan.repayment_months,
                amount=amount,
                expected_return=expected,
                expected_profit=expected - amount,
                is_anonymous=investment.is_anonymous,
                created_at=investment.created_at
            ))
            total_invested += amount
            total_expected += expected

        return PortfolioResponse(
            investments=items,
            total_invested=total_invested,
            total_expected_return=total_expected
        )

    async def get_total_invested(self, investor_id: int) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Investment.amount), 0)).where(Investment.investor_id == investor_id)
        )
        return to_money(result.scalar_one())
