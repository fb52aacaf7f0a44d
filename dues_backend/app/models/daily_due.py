"""
Daily Due database model.

Materialised per-day obligation, always reproducible from meetings,
rates, adjustments and the advance consumption ledger.
"""

from sqlalchemy import Column, Integer, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base


class DailyDue(Base):
    """
    Daily Due model.

    amount = gross_amount - advance_adjustment + manual_adjustment, never negative.
    Rows are rewritten whole on recompute; dues on or before the client's
    paid-through date count as settled.
    """
    __tablename__ = "daily_dues"
    __table_args__ = (
        UniqueConstraint("client_id", "date", name="uq_daily_due_client_date"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    gross_amount = Column(Numeric(12, 2), nullable=False)
    meeting_count = Column(Integer, nullable=False, default=0)
    advance_adjustment = Column(Numeric(12, 2), nullable=False, default=0)
    manual_adjustment = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<DailyDue(client={self.client_id}, date={self.date}, amount={self.amount})>"
