from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, Text, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from lendcircle.core.database import Base
import enum


class LoanStatus(str, enum.Enum):
    """Loan request lifecycle"""
    OPEN = "open"
    FUNDED = "funded"
    COMPLETED = "completed"


class LoanRequest(Base):
    """
    A borrower's published request for funding.

    ``amount_funded`` is a denormalized cache of the sum of the loan's
    investments and is always rewritten from that sum. ``version`` is bumped
    on every UPDATE and rejects writes made from a stale read.
    """
    __tablename__ = "loan_requests"
    __table_args__ = (
        CheckConstraint("amount_requested > 0", name="ck_loan_requests_amount_positive"),
        CheckConstraint("amount_funded <= amount_requested", name="ck_loan_requests_not_overfunded"),
        CheckConstraint("repayment_months > 0", name="ck_loan_requests_term_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    borrower_id = Column(Integer, nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Terms
    amount_requested = Column(Numeric(15, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)  # APR percent
    repayment_months = Column(Integer, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    # Funding
    amount_funded = Column(Numeric(15, 2), default=0, nullable=False)
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.OPEN, nullable=False, index=True)
    funded_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)

    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<LoanRequest(id={self.id}, amount={self.amount_requested}, status={self.status})>"
