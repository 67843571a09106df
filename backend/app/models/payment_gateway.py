from app.db import Base
from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint, func


class TenantPaymentGateway(Base):
    __tablename__ = "tenant_payment_gateways"
    __table_args__ = (UniqueConstraint("tenant_id", "gateway_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    gateway_type = Column(String(16), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    display_name = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<TenantPaymentGateway tenant={self.tenant_id} type={self.gateway_type} active={self.is_active}>"
