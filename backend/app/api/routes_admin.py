from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.repositories.gateway_repo import PaymentGatewayRepository
from app.schemas.checkout_schema import FulfillmentSettingsIn, GatewayConfigIn
from app.services.fulfillment_service import FulfillmentException, FulfillmentService
from app.services.gateway_directory import gateway_to_dict

router = APIRouter(prefix="/api/admin/tenants/{tenant_id}", tags=["admin"])


@router.get("/payment-gateways", summary="List a tenant's payment gateways")
def list_gateways(tenant_id: str, db: Session = Depends(get_db)):
    repo = PaymentGatewayRepository(db)
    return {"gateways": [gateway_to_dict(g) for g in repo.list_for_tenant(tenant_id)]}


@router.put("/payment-gateways", summary="Create or update a payment gateway")
def upsert_gateway(tenant_id: str, payload: GatewayConfigIn, db: Session = Depends(get_db)):
    repo = PaymentGatewayRepository(db)
    g = repo.upsert(
        tenant_id,
        payload.gateway_type.value,
        is_active=payload.is_active,
        is_default=payload.is_default,
        display_name=payload.display_name,
    )
    db.commit()
    return gateway_to_dict(g)


def _settings_to_dict(s):
    # return simple dicts to avoid a separate response schema
    return {
        "pickup_enabled": s.pickup_enabled,
        "pickup_instructions": s.pickup_instructions,
        "delivery_enabled": s.delivery_enabled,
        "delivery_fee_cents": s.delivery_fee_cents,
        "delivery_min_free_cents": s.delivery_min_free_cents,
        "shipping_enabled": s.shipping_enabled,
        "shipping_flat_rate_cents": s.shipping_flat_rate_cents,
    }


@router.get("/fulfillment-settings", summary="Fulfillment settings")
def get_fulfillment_settings(tenant_id: str, db: Session = Depends(get_db)):
    s = FulfillmentService(db).get_settings(tenant_id)
    if not s:
        raise HTTPException(status_code=404, detail="No fulfillment settings for tenant")
    return _settings_to_dict(s)


@router.put("/fulfillment-settings", summary="Save fulfillment settings")
def save_fulfillment_settings(tenant_id: str, payload: FulfillmentSettingsIn, db: Session = Depends(get_db)):
    svc = FulfillmentService(db)
    try:
        s = svc.save_settings(tenant_id, payload.model_dump())
    except FulfillmentException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _settings_to_dict(s)
