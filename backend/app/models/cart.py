from app.db import Base
from sqlalchemy import Column, DateTime, Index, Integer, String, func
from sqlalchemy.orm import relationship


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (Index("ix_carts_tenant_gateway", "tenant_id", "gateway_type"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False)
    gateway_type = Column(String(16), nullable=False)  # square | paypal
    tenant_name = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="active")  # active | paid
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.position",
    )
