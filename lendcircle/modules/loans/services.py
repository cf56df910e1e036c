from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm.exc import StaleDataError
from decimal import Decimal
from typing import List, Optional
import logging

from lendcircle.core.config import settings
from lendcircle.core.exceptions import (
    ConcurrencyConflict, LoanImmutable, NotLoanOwner, ValidationError
)
from lendcircle.core.security import sanitize_input
from lendcircle.modules.funding.ledger import FundingLedger, to_money, ZERO
from lendcircle.modules.loans.models import LoanRequest, LoanStatus
from lendcircle.modules.loans.schemas import (
    LoanRequestCreate, LoanRequestUpdate, LoanRequestResponse, LoanFilters, LoanSortEnum
)

logger = logging.getLogger(__name__)


class LoanService:
    def __init__(self, db: AsyncSession, ledger: Optional[FundingLedger] = None):
        self.db = db
        self.ledger = ledger or FundingLedger(db)

    @staticmethod
    def validate_terms(amount_requested: Decimal, interest_rate: Decimal, repayment_months: int, currency: str) -> None:
        """Raise ValidationError when terms fall below the configured floors"""
        if amount_requested < settings.MIN_LOAN_AMOUNT:
            raise ValidationError(f"Minimum loan amount is {settings.MIN_LOAN_AMOUNT:.2f}")
        if interest_rate < settings.MIN_INTEREST_RATE:
            raise ValidationError(f"Minimum interest rate is {settings.MIN_INTEREST_RATE:.2f}%")
        if repayment_months <= 0:
            raise ValidationError("Repayment period must be at least one month")
        if currency.upper() not in settings.supported_currencies_list:
            raise ValidationError(f"Unsupported currency: {currency}")

    async def create_loan_request(self, borrower_id: int, loan_in: LoanRequestCreate) -> LoanRequest:
        self.validate_terms(loan_in.amount_requested, loan_in.interest_rate, loan_in.repayment_months, loan_in.currency)

        title = sanitize_input(loan_in.title)
        if not title:
            raise ValidationError("Title is required")

        db_loan = LoanRequest(
            borrower_id=borrower_id,
            title=title,
            description=sanitize_input(loan_in.description) or "",
            amount_requested=to_money(loan_in.amount_requested),
            interest_rate=loan_in.interest_rate,
            repayment_months=loan_in.repayment_months,
            currency=loan_in.currency.upper(),
            amount_funded=ZERO,
            status=LoanStatus.OPEN
        )
        self.db.add(db_loan)
        await self.db.commit()
        await self.db.refresh(db_loan)

        logger.info(f"Loan request {db_loan.id} created by borrower {borrower_id} for {db_loan.amount_requested} {db_loan.currency}")
        return db_loan

    async def get_loan(self, loan_id: int) -> LoanRequest:
        return await self.ledger.get_loan(loan_id)

    async def get_loan_response(self, loan_id: int) -> LoanRequestResponse:
        loan = await self.get_loan(loan_id)
        return self.to_response(loan, await self.ledger.funded_amount(loan_id))

    async def list_loans(self, filters: Optional[LoanFilters] = None, skip: int = 0, limit: int = 100) -> List[LoanRequestResponse]:
        """Browse loan requests with funded amounts taken from the investment sums"""
        filters = filters or LoanFilters()
        totals = FundingLedger.funded_totals()
        funded = func.coalesce(totals.c.funded, 0)

        query = select(LoanRequest, funded.label("funded")).outerjoin(totals, totals.c.loan_id == LoanRequest.id)

        if filters.status is not None:
            query = query.where(LoanRequest.status == LoanStatus(filters.status.value))
        if filters.currency:
            query = query.where(LoanRequest.currency == filters.currency.upper())
        if filters.borrower_id is not None:
            query = query.where(LoanRequest.borrower_id == filters.borrower_id)
        if filters.min_amount is not None:
            query = query.where(LoanRequest.amount_requested >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.where(LoanRequest.amount_requested <= filters.max_amount)
        if filters.min_rate is not None:
            query = query.where(LoanRequest.interest_rate >= filters.min_rate)
        if filters.max_rate is not None:
            query = query.where(LoanRequest.interest_rate <= filters.max_rate)
        if filters.max_months is not None:
            query = query.where(LoanRequest.repayment_months <= filters.max_months)

        ordering = {
            LoanSortEnum.NEWEST: (LoanRequest.created_at.desc(), LoanRequest.id.desc()),
            LoanSortEnum.OLDEST: (LoanRequest.created_at.asc(), LoanRequest.id.asc()),
            LoanSortEnum.AMOUNT_HIGH: (LoanRequest.amount_requested.desc(), LoanRequest.id.desc()),
            LoanSortEnum.AMOUNT_LOW: (LoanRequest.amount_requested.asc(), LoanRequest.id.asc()),
            LoanSortEnum.RATE_HIGH: (LoanRequest.interest_rate.desc(), LoanRequest.id.desc()),
            LoanSortEnum.RATE_LOW: (LoanRequest.interest_rate.asc(), LoanRequest.id.asc()),
            LoanSortEnum.FUNDED_HIGH: (funded.desc(), LoanRequest.id.desc()),
            LoanSortEnum.FUNDED_LOW: (funded.asc(), LoanRequest.id.asc()),
        }
        query = query.order_by(*ordering[filters.sort]).offset(skip).limit(limit)

        result = await self.db.execute(query)
        return [self.to_response(loan, to_money(total)) for loan, total in result.all()]

    async def get_borrower_loans(self, borrower_id: int) -> List[LoanRequestResponse]:
        return await self.list_loans(LoanFilters(borrower_id=borrower_id))

    async def update_loan(self, loan_id: int, borrower_id: int, loan_in: LoanRequestUpdate) -> LoanRequest:
        """Edit terms of a loan request that nobody has invested in yet"""
        async with self.ledger.serialize(loan_id):
            try:
                db_loan = await self._get_editable_loan(loan_id, borrower_id, action="edit")

                update_data = loan_in.model_dump(exclude_unset=True)
                if "title" in update_data:
                    update_data["title"] = sanitize_input(update_data["title"])
                    if not update_data["title"]:
                        raise ValidationError("Title is required")
                if "description" in update_data:
                    update_data["description"] = sanitize_input(update_data["description"]) or ""
                if "currency" in update_data:
                    update_data["currency"] = update_data["currency"].upper()
                if "amount_requested" in update_data:
                    update_data["amount_requested"] = to_money(update_data["amount_requested"])

                self.validate_terms(
                    update_data.get("amount_requested", db_loan.amount_requested),
                    update_data.get("interest_rate", db_loan.interest_rate),
                    update_data.get("repayment_months", db_loan.repayment_months),
                    update_data.get("currency", db_loan.currency)
                )

                for field, value in update_data.items():
                    setattr(db_loan, field, value)

                await self.db.flush()
                await self.db.commit()
            except StaleDataError as e:
                await self.db.rollback()
                raise ConcurrencyConflict(f"Loan request {loan_id} changed while being edited") from e
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(db_loan)
        logger.info(f"Loan request {loan_id} updated by borrower {borrower_id}")
        return db_loan

    async def delete_loan(self, loan_id: int, borrower_id: int) -> None:
        async with self.ledger.serialize(loan_id):
            try:
                db_loan = await self._get_editable_loan(loan_id, borrower_id, action="delete")
                await self.db.delete(db_loan)
                await self.db.commit()
            except StaleDataError as e:
                await self.db.rollback()
                raise ConcurrencyConflict(f"Loan request {loan_id} changed while being deleted") from e
            except Exception:
                await self.db.rollback()
                raise

        logger.info(f"Loan request {loan_id} deleted by borrower {borrower_id}")

    async def _get_editable_loan(self, loan_id: int, borrower_id: int, action: str) -> LoanRequest:
        db_loan = await self.ledger.get_loan(loan_id, for_update=True)
        if db_loan.borrower_id != borrower_id:
            raise NotLoanOwner(f"Only the borrower can {action} loan request {loan_id}")
        if db_loan.status != LoanStatus.OPEN or await self.ledger.has_investments(loan_id):
            raise LoanImmutable(f"Cannot {action} loan request that has received funding")
        return db_loan

    @staticmethod
    def to_response(loan: LoanRequest, funded: Decimal) -> LoanRequestResponse:
        response = LoanRequestResponse.model_validate(loan)
        response.amount_funded = funded
        response.remaining_capacity = max(ZERO, to_money(loan.amount_requested) - funded)
        return response
