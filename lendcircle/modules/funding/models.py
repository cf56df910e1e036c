from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Boolean, CheckConstraint, Index
from sqlalchemy.sql import func
from lendcircle.core.database import Base


class Investment(Base):
    """
    A committed capital contribution to a loan request.

    Rows are append-only. Only the admission service inserts them.
    """
    __tablename__ = "investments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_investments_amount_positive"),
        Index("ix_investments_loan_created", "loan_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan_requests.id", ondelete="RESTRICT"), nullable=False, index=True)
    investor_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    payment_reference = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Investment(id={self.id}, loan={self.loan_id}, investor={self.investor_id}, amount={self.amount})>"
