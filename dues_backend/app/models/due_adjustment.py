"""
Due Adjustment database model.

Admin-entered surcharge (positive) or credit (negative) for one client day.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base


class DueAdjustment(Base):
    __tablename__ = "due_adjustments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=True)
    created_by_admin_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<DueAdjustment(id={self.id}, client={self.client_id}, date={self.date}, amount={self.amount})>"
