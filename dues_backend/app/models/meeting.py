"""
Meeting database model.

A logged attendance record. Billing only reads it.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base
from dues_backend.app.models.enums import MemberCategory, MeetingStatus


class Meeting(Base):
    """
    Meeting model.

    Billable only when attendance proof is attached and status is not NOT_LIVE.
    """
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    scheduled_date = Column(Date, nullable=False, index=True)

    member_count = Column(Integer, default=0, nullable=False)
    member_category = Column(Enum(MemberCategory), default=MemberCategory.DOMESTIC, nullable=False)

    # Opaque reference to the attendance screenshot
    proof_url = Column(String(1024), nullable=True)
    status = Column(Enum(MeetingStatus), default=MeetingStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def has_proof(self) -> bool:
        return bool(self.proof_url and self.proof_url.strip())

    def __repr__(self):
        return f"<Meeting(id={self.id}, client={self.client_id}, date={self.scheduled_date}, members={self.member_count})>"
