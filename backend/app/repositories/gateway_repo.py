from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.payment_gateway import TenantPaymentGateway


class PaymentGatewayRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_tenant(self, tenant_id: str) -> List[TenantPaymentGateway]:
        # default first, then active, then oldest
        return (
            self.db.query(TenantPaymentGateway)
            .filter(TenantPaymentGateway.tenant_id == tenant_id)
            .order_by(
                TenantPaymentGateway.is_default.desc(),
                TenantPaymentGateway.is_active.desc(),
                TenantPaymentGateway.id,
            )
            .all()
        )

    def get(self, tenant_id: str, gateway_type: str) -> Optional[TenantPaymentGateway]:
        return (
            self.db.query(TenantPaymentGateway)
            .filter(
                TenantPaymentGateway.tenant_id == tenant_id,
                TenantPaymentGateway.gateway_type == gateway_type,
            )
            .first()
        )

    def upsert(
        self,
        tenant_id: str,
        gateway_type: str,
        is_active: bool = True,
        is_default: bool = False,
        display_name: Optional[str] = None,
    ) -> TenantPaymentGateway:
        if is_default:
            # only one default per tenant
            (
                self.db.query(TenantPaymentGateway)
                .filter(
                    TenantPaymentGateway.tenant_id == tenant_id,
                    TenantPaymentGateway.gateway_type != gateway_type,
                    TenantPaymentGateway.is_default.is_(True),
                )
                .update({"is_default": False}, synchronize_session="fetch")
            )
        g = self.get(tenant_id, gateway_type)
        if g:
            g.is_active = is_active
            g.is_default = is_default
            g.display_name = display_name
        else:
            g = TenantPaymentGateway(
                tenant_id=tenant_id,
                gateway_type=gateway_type,
                is_active=is_active,
                is_default=is_default,
                display_name=display_name,
            )
            self.db.add(g)
        self.db.flush()
        return g
