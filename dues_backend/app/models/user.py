"""
User database model.

Clients and admins share one table; a CLIENT row doubles as the client's
rate configuration.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Numeric
from sqlalchemy.sql import func
from dues_backend.app.db.session import Base
from dues_backend.app.models.enums import UserRole


class User(Base):
    """
    User model.

    Rates are per member per meeting. Foreign and premium rates are optional
    and fall back to the domestic rate and the system default respectively.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.CLIENT, nullable=False)

    # Pricing (clients only)
    price_per_member = Column(Numeric(12, 2), nullable=True)
    foreign_member_rate = Column(Numeric(12, 2), nullable=True)
    premium_member_rate = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
