from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from lendcircle.core.database import get_db
from lendcircle.core.dependencies import get_current_user_id
from lendcircle.core.exceptions import AlreadySettled, LendingError, to_http_exception
from lendcircle.modules.repayments.schemas import RepaymentResponse, RepaymentQuoteResponse
from lendcircle.modules.repayments.services import SettlementService

router = APIRouter(prefix="/api/v1/loans", tags=["repayments"])


@router.get("/{loan_id}/repayment/quote", response_model=RepaymentQuoteResponse)
async def quote_repayment(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """Principal, interest and total payoff for a loan"""
    service = SettlementService(db)
    try:
        return await service.quote(loan_id)
    except LendingError as e:
        raise to_http_exception(e)


@router.post("/{loan_id}/repayment", response_model=RepaymentResponse, status_code=status.HTTP_201_CREATED)
async def settle_repayment(
    loan_id: int,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    """
    Repay a fully funded loan.

    - Only the borrower can repay
    - Repeating the call returns the existing repayment with 200
    """
    service = SettlementService(db)
    try:
        return await service.settle_repayment(loan_id, borrower_id=current_user_id)
    except AlreadySettled as e:
        response.status_code = status.HTTP_200_OK
        return e.repayment
    except LendingError as e:
        raise to_http_exception(e)


@router.get("/{loan_id}/repayment", response_model=RepaymentResponse)
async def read_repayment(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id)
):
    service = SettlementService(db)
    repayment = await service.get_repayment(loan_id)
    if repayment is None:
        raise HTTPException(status_code=404, detail="Repayment not found")
    return repayment
