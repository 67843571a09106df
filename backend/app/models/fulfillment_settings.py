from app.db import Base
from sqlalchemy import Boolean, Column, Integer, String, Text


class TenantFulfillmentSettings(Base):
    __tablename__ = "tenant_fulfillment_settings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), unique=True, nullable=False, index=True)

    pickup_enabled = Column(Boolean, nullable=False, default=True)
    pickup_instructions = Column(Text, nullable=True)

    delivery_enabled = Column(Boolean, nullable=False, default=False)
    delivery_fee_cents = Column(Integer, nullable=False, default=0)
    delivery_min_free_cents = Column(Integer, nullable=True)  # free delivery threshold

    shipping_enabled = Column(Boolean, nullable=False, default=False)
    shipping_flat_rate_cents = Column(Integer, nullable=True)
