from sqlalchemy import Column, String, Integer, Text, Date, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from khata.core.database import Base
from khata.modules.users.models import generate_uuid


class LoanStatus(str, enum.Enum):
    """Loan lifecycle status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WAITING_ON_PAYMENT = "waiting on payment"
    PAID_BACK = "paid back"


# Every legal move; anything not listed is refused.
ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.ACCEPTED, LoanStatus.REJECTED},
    LoanStatus.ACCEPTED: {LoanStatus.WAITING_ON_PAYMENT},
    LoanStatus.WAITING_ON_PAYMENT: {LoanStatus.PAID_BACK},
    LoanStatus.REJECTED: set(),
    LoanStatus.PAID_BACK: set(),
}


def can_transition(current: LoanStatus, target: LoanStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[LoanStatus(current)]


class Loan(Base):
    """Informal loan (udhaar) between an owner (lender) and a partner (borrower)"""
    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Parties
    owner_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    partner_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    owner_wallet_address = Column(String(42), nullable=True)
    partner_wallet_address = Column(String(42), nullable=True)

    # Terms (whole PKR)
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    loan_date = Column(Date, nullable=True)
    expected_return_date = Column(Date, nullable=True)

    # Chain linkage
    tx_hash = Column(String(66), nullable=True)
    onchain_loan_id = Column(String(66), unique=True, nullable=True)
    payment_tx_hash = Column(String(66), nullable=True)

    status = Column(
        SQLEnum(LoanStatus, name="loan_status", values_callable=lambda e: [m.value for m in e]),
        default=LoanStatus.PENDING,
        nullable=False,
        index=True,
    )
    paid_back_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[owner_user_id], lazy="selectin")
    partner = relationship("User", foreign_keys=[partner_user_id], lazy="selectin")

    def __repr__(self):
        return f"<Loan(id={self.id}, amount={self.amount}, status={self.status})>"
