"""
Advance balance and consumption ledger models.

An advance is prepaid credit; every draw against it is an explicit
consumption row keyed by (advance, day), so re-running a day's aggregation
can only reconcile against what it already drew.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base


class AdvanceBalance(Base):
    """
    Advance Balance model.

    remaining_amount >= 0. Writes go through a compare-and-swap on `version`.
    """
    __tablename__ = "advance_balances"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    advance_amount = Column(Numeric(12, 2), nullable=False)
    advance_members = Column(Integer, nullable=False, default=0)
    remaining_amount = Column(Numeric(12, 2), nullable=False)
    remaining_members = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)

    notes = Column(String(255), nullable=True)
    proof_url = Column(String(1024), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<AdvanceBalance(id={self.id}, client={self.client_id}, remaining={self.remaining_amount})>"


class AdvanceConsumption(Base):
    """Amount of one advance applied to one client day."""
    __tablename__ = "advance_consumptions"
    __table_args__ = (
        UniqueConstraint("advance_id", "due_date", name="uq_advance_consumption_day"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    advance_id = Column(Integer, ForeignKey('advance_balances.id'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    due_date = Column(Date, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<AdvanceConsumption(advance={self.advance_id}, date={self.due_date}, amount={self.amount})>"
