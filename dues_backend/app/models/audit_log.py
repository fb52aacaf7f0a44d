"""
Audit Log Database Model.

Tracks billing actions (submissions, approvals, reversals, adjustments).
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - PAYMENT_SUBMITTED / PAYMENT_APPROVED / PAYMENT_REJECTED / PAYMENT_DELETED
    - ADVANCE_CREATED / ADVANCE_DEACTIVATED
    - DUE_ADJUSTMENT_CREATED / DUE_ADJUSTMENT_DELETED
    - CLIENT_CREATED / CLIENT_RATES_CHANGED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # Client whose ledger the action touched
    client_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, client={self.client_id})>"
