from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db import Base


class Order(Base):
    """Receipt of a finalized checkout, as confirmed by the payment collaborator."""

    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    gateway_type = Column(String(16), nullable=False)
    gateway_transaction_id = Column(String(128), nullable=True)
    status = Column(String(32), nullable=False, default="paid")
    customer_email = Column(String(255), nullable=True, index=True)
    customer_phone = Column(String(64), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    fulfillment_method = Column(String(16), nullable=False)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    fulfillment_fee_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    shipping_address = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )


class OrderLine(Base):
    __tablename__ = "order_lines"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    sku = Column(String(64), nullable=False)
    name = Column(String(255), nullable=True)
    qty = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="lines")
