from datetime import datetime, timezone

from app.db import Base
from sqlalchemy import Column, DateTime, Integer, String


class BuyerContact(Base):
    """Email/phone captured at checkout, used to look up a buyer's order history."""

    __tablename__ = "buyer_contacts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
