from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from lendcircle.core.database import Base


class Repayment(Base):
    """Final payoff of a funded loan. At most one per loan."""
    __tablename__ = "repayments"
    __table_args__ = (
        UniqueConstraint("loan_id", name="uq_repayments_loan_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan_requests.id", ondelete="RESTRICT"), nullable=False)

    amount = Column(Numeric(15, 2), nullable=False)
    is_on_time = Column(Boolean, default=True, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Repayment(id={self.id}, loan={self.loan_id}, amount={self.amount})>"
