from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.services.order_service import OrderService, OrderServiceException

router = APIRouter(tags=["orders"])


@router.get("/buyer", summary="Order history for a buyer")
def buyer_orders(
    email: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    try:
        return {"orders": svc.list_for_buyer(email=email, phone=phone)}
    except OrderServiceException as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{order_number}", summary="Single order receipt")
def get_order(order_number: str, db: Session = Depends(get_db)):
    svc = OrderService(db)
    try:
        return svc.get(order_number)
    except OrderServiceException as e:
        raise HTTPException(status_code=404, detail=str(e))
