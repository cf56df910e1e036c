"""
Domain errors for loan funding.

Every error carries the HTTP status the routers answer with. Rejections are
raised before anything is written, so callers never need to roll back.
"""
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException, status


class LendingError(Exception):
    """Base exception for all lending errors."""
    status_code = status.HTTP_400_BAD_REQUEST


def to_http_exception(error: LendingError) -> HTTPException:
    """Translate a domain error for the routers"""
    return HTTPException(status_code=error.status_code, detail=str(error))


class ValidationError(LendingError):
    """Loan terms below a configured floor or otherwise malformed."""
    pass


class LoanNotFound(LendingError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, loan_id: int):
        super().__init__(f"Loan request {loan_id} not found")
        self.loan_id = loan_id


class LoanImmutable(LendingError):
    """Raised when editing or deleting a loan that already has investments."""
    status_code = status.HTTP_409_CONFLICT


class NotLoanOwner(LendingError):
    status_code = status.HTTP_403_FORBIDDEN


# ============================================================
# Admission
# ============================================================

class AdmissionError(LendingError):
    """Base for rejected investments."""
    pass


class InvestmentTooSmall(AdmissionError):
    def __init__(self, amount: Decimal, minimum: Decimal):
        super().__init__(f"Minimum investment is {minimum:.2f} for this loan (got {amount:.2f})")
        self.amount = amount
        self.minimum = minimum


class InvestmentExceedsCapacity(AdmissionError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, amount: Decimal, remaining: Decimal):
        super().__init__(f"Investment amount {amount:.2f} exceeds remaining loan amount {remaining:.2f}")
        self.amount = amount
        self.remaining = remaining


class LoanNotOpen(AdmissionError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, loan_id: int, loan_status: str):
        super().__init__(f"Loan request {loan_id} is {loan_status} and not accepting investments")
        self.loan_id = loan_id
        self.loan_status = loan_status


class ConcurrencyConflict(LendingError):
    """Another writer changed the loan between our read and our write. Safe to retry."""
    status_code = status.HTTP_409_CONFLICT


# ============================================================
# Settlement
# ============================================================

class SettlementError(LendingError):
    pass


class AlreadySettled(SettlementError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, loan_id: int, repayment=None):
        super().__init__(f"Loan request {loan_id} has already been repaid")
        self.loan_id = loan_id
        self.repayment = repayment


class InsufficientFunding(SettlementError):
    def __init__(self, loan_id: int, funded: Decimal, requested: Decimal):
        super().__init__(f"Loan request {loan_id} is funded {funded:.2f} of {requested:.2f}")
        self.loan_id = loan_id
        self.funded = funded
        self.requested = requested


# ============================================================
# Exchange rates
# ============================================================

class RateProviderUnavailable(LendingError):
    """The exchange-rate provider could not be reached or answered with an error."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, base: Optional[str] = None):
        super().__init__(message)
        self.base = base
