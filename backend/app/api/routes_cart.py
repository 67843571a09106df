from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.checkout_schema import CartItemIn
from app.services.cart_service import CartService
from app.services.pricing import compute_totals

router = APIRouter(prefix="/api/carts", tags=["cart"])


def _cart_body(snapshot):
    totals = compute_totals(snapshot.items)
    return {
        "tenant_id": snapshot.tenant_id,
        "gateway_type": snapshot.gateway_type.value,
        "tenant_name": snapshot.tenant_name,
        "status": snapshot.status,
        "items": [it.model_dump() for it in snapshot.items],
        "subtotal_cents": totals.subtotal_cents,
    }


@router.get("/{tenant_id}/{gateway_type}", summary="Get cart")
def get_cart(tenant_id: str, gateway_type: str, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        cart = svc.get_cart(tenant_id, gateway_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if cart is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    return _cart_body(cart)


@router.post("/{tenant_id}/{gateway_type}/items", summary="Add item to cart")
def add_item(tenant_id: str, gateway_type: str, payload: CartItemIn, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        cart = svc.add_item(tenant_id, gateway_type, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _cart_body(cart)


@router.delete("/{tenant_id}/{gateway_type}/items/{product_id}", summary="Remove item")
def remove_item(
    tenant_id: str,
    gateway_type: str,
    product_id: str,
    variant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        cart = svc.remove_item(tenant_id, gateway_type, product_id, variant_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _cart_body(cart)


@router.delete("/{tenant_id}/{gateway_type}", summary="Empty cart")
def clear_cart(tenant_id: str, gateway_type: str, db: Session = Depends(get_db)):
    svc = CartService(db)
    try:
        svc.clear(tenant_id, gateway_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}
