from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from typing import List, Optional
from lendcircle.core.database import get_db
from lendcircle.core.dependencies import get_current_user_id
from lendcircle.core.exceptions import LendingError, to_http_exception
from lendcircle.modules.loans.schemas import (
    LoanRequestCreate, LoanRequestUpdate, LoanRequestResponse, LoanFilters, LoanStatusEnum, LoanSortEnum
)
from lendcircle.modules.loans.services import LoanService

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.post("", response_model=LoanRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_loan_request(
    loan: LoanRequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """
    Publish a loan request.

    - Amount must be at least the platform minimum
    - Interest rate must be at least the platform floor
    """
    service = LoanService(db)
    try:
        db_loan = await service.create_loan_request(current_user_id, loan)
    except LendingError as e:
        raise to_http_exception(e)
    return service.to_response(db_loan, Decimal("0.00"))


@router.get("", response_model=List[LoanRequestResponse])
async def browse_loans(
    status_filter: Optional[LoanStatusEnum] = Query(None, alias="status"),
    currency: Optional[str] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    min_rate: Optional[Decimal] = None,
    max_rate: Optional[Decimal] = None,
    max_months: Optional[int] = None,
    sort: LoanSortEnum = LoanSortEnum.NEWEST,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Browse loan requests with filters and sorting"""
    filters = LoanFilters(
        status=status_filter,
        currency=currency,
        min_amount=min_amount,
        max_amount=max_amount,
        min_rate=min_rate,
        max_rate=max_rate,
        max_months=max_months,
        sort=sort
    )
    service = LoanService(db)
    return await service.list_loans(filters, skip=skip, limit=limit)


@router.get("/mine", response_model=List[LoanRequestResponse])
async def read_my_loans(
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = LoanService(db)
    return await service.get_borrower_loans(current_user_id)


@router.get("/{loan_id}", response_model=LoanRequestResponse)
async def read_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = LoanService(db)
    try:
        return await service.get_loan_response(loan_id)
    except LendingError as e:
        raise to_http_exception(e)


@router.put("/{loan_id}", response_model=LoanRequestResponse)
async def update_loan(
    loan_id: int,
    loan_in: LoanRequestUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Edit a loan request. Only allowed before the first investment."""
    service = LoanService(db)
    try:
        db_loan = await service.update_loan(loan_id, current_user_id, loan_in)
    except LendingError as e:
        raise to_http_exception(e)
    return service.to_response(db_loan, Decimal("0.00"))


@router.delete("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Delete a loan request. Only allowed before the first investment."""
    service = LoanService(db)
    try:
        await service.delete_loan(loan_id, current_user_id)
    except LendingError as e:
        raise to_http_exception(e)
