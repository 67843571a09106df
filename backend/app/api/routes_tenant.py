from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.repositories.gateway_repo import PaymentGatewayRepository
from app.services.fulfillment_service import FulfillmentService
from app.services.gateway_directory import gateway_to_dict

router = APIRouter(prefix="/api/tenants/{tenant_id}", tags=["tenant"])


@router.get("/payment-gateways/public", summary="Public gateway directory")
def public_gateways(tenant_id: str, db: Session = Depends(get_db)):
    repo = PaymentGatewayRepository(db)
    return {"gateways": [gateway_to_dict(g) for g in repo.list_for_tenant(tenant_id)]}


@router.get("/fulfillment-options", summary="Offered fulfillment methods with fees")
def fulfillment_options(tenant_id: str, subtotal_cents: int = Query(0, ge=0), db: Session = Depends(get_db)):
    return {"options": FulfillmentService(db).options(tenant_id, subtotal_cents)}
