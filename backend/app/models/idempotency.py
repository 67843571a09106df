import enum
from datetime import datetime, timezone

from app.db import Base
from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String


class IdempotencyStatus(enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class IdempotencyRecord(Base):
    """
    Once-only marker for a side-effecting operation, e.g. the finalization of
    one checkout session. `response_body` holds what the first caller got back
    so later callers can be answered identically.
    """

    __tablename__ = "idempotency_records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(128), unique=True, nullable=False, index=True)
    operation = Column(String(64), nullable=False)
    tenant_id = Column(String(64), nullable=True, index=True)
    status = Column(
        Enum(IdempotencyStatus), nullable=False, default=IdempotencyStatus.IN_PROGRESS
    )
    owner = Column(String(128), nullable=True)  # host:pid that claimed the key
    response_body = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime, nullable=True)
