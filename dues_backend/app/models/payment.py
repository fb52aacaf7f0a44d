"""
Payment database model.

Client-submitted proof of payment and its review outcome.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base
from dues_backend.app.models.billing_enums import PaymentStatus, PaymentUptoMode


class Payment(Base):
    """
    Payment model.

    Strict review workflow: PENDING -> APPROVED | REJECTED.
    The most recently approved payment's paid_through_date is the client's watermark.
    """
    __tablename__ = "payments"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Submission
    amount = Column(Numeric(12, 2), nullable=False)
    upto_mode = Column(Enum(PaymentUptoMode), nullable=False)
    declared_upto_date = Column(Date, nullable=True)
    proof_url = Column(String(1024), nullable=False)
    payment_method = Column(String(50), nullable=True)

    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)

    # Approval outcome
    paid_through_date = Column(Date, nullable=True)
    unapplied_amount = Column(Numeric(12, 2), nullable=True)
    approved_by_admin_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Rejection outcome
    rejection_reason = Column(Text, nullable=True)
    rejected_amount = Column(Numeric(12, 2), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payment(id={self.id}, client={self.client_id}, status='{self.status.value}', amount={self.amount})>"
