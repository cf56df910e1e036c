from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Text, CheckConstraint
from sqlalchemy.sql import func
from lendcircle.core.database import Base


class BorrowerProfile(Base):
    """Borrower track record and credit information feeding the trust score"""
    __tablename__ = "borrower_profiles"
    __table_args__ = (
        CheckConstraint(
            "credit_score IS NULL OR (credit_score >= 300 AND credit_score <= 850)",
            name="ck_borrower_profiles_credit_score_range"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)

    credit_score = Column(Integer, nullable=True)
    successful_loans_count = Column(Integer, default=0, nullable=False)
    defaults_count = Column(Integer, default=0, nullable=False)

    bio = Column(Text, nullable=True)
    purpose = Column(String(200), nullable=True)

    total_repaid = Column(Numeric(15, 2), default=0, nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    verification_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<BorrowerProfile(user_id={self.user_id}, credit_score={self.credit_score})>"
