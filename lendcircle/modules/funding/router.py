from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from lendcircle.core.database import get_db
from lendcircle.core.dependencies import get_current_user_id
from lendcircle.core.exceptions import LendingError, to_http_exception
from lendcircle.modules.funding.schemas import (
    InvestmentCreate, InvestmentResponse, FundingStatusResponse, PortfolioResponse
)
from lendcircle.modules.funding.services import AdmissionService

router = APIRouter(prefix="/api/v1", tags=["funding"])


@router.post("/loans/{loan_id}/investments", response_model=InvestmentResponse, status_code=status.HTTP_201_CREATED)
async def invest_in_loan(
    loan_id: int,
    investment: InvestmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """
    Commit an investment after the external payment step succeeded.

    - Rejected when below the loan's minimum ticket
    - Rejected when it would take the loan past its requested amount
    - The loan moves to `funded` when the last amount is committed
    """
    service = AdmissionService(db)
    try:
        return await service.invest_in_loan(loan_id, current_user_id, investment)
    except LendingError as e:
        raise to_http_exception(e)


@router.get("/loans/{loan_id}/investments", response_model=List[InvestmentResponse])
async def read_loan_investments(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Investments in a loan; anonymous investors are hidden"""
    service = AdmissionService(db)
    try:
        return await service.get_loan_investments(loan_id, viewer_id=current_user_id)
    except LendingError as e:
        raise to_http_exception(e)


@router.get("/loans/{loan_id}/funding", response_model=FundingStatusResponse)
async def read_funding_status(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = AdmissionService(db)
    try:
        return await service.get_funding_status(loan_id)
    except LendingError as e:
        raise to_http_exception(e)


@router.post("/loans/{loan_id}/funding/reconcile", response_model=FundingStatusResponse)
async def reconcile_funding(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Rewrite the cached funded amount from the committed investments. Borrower only."""
    service = AdmissionService(db)
    try:
        return await service.reconcile_funding(loan_id, current_user_id)
    except LendingError as e:
        raise to_http_exception(e)


@router.get("/investments/mine", response_model=PortfolioResponse)
async def read_my_portfolio(
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = AdmissionService(db)
    return await service.get_portfolio(current_user_id)
