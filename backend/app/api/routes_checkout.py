from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from app.adapters.mock_payment import PaymentDeclined, PaymentError
from app.services.checkout_orchestrator import (
    CheckoutOrchestrator,
    CheckoutRedirect,
    CheckoutStepError,
    CheckoutValidationError,
    SessionNotFound,
)
from app.utils.logging import get_logger

router = APIRouter(prefix="/api/checkout/sessions", tags=["checkout"])
logger = get_logger(__name__)


def get_orchestrator(request: Request) -> CheckoutOrchestrator:
    return request.app.state.checkout


def _session(orch: CheckoutOrchestrator, session_id: str):
    try:
        return orch.get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _run(fn, *args):
    """Call a transition and map checkout errors onto HTTP status codes."""
    try:
        return fn(*args)
    except CheckoutRedirect as e:
        return {"redirect_to": e.location, "reason": e.reason}
    except CheckoutStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CheckoutValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentDeclined as e:
        raise HTTPException(status_code=402, detail=f"Payment declined: {e}")
    except PaymentError as e:
        raise HTTPException(status_code=400, detail=f"Payment failed: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Unexpected checkout error")
        raise HTTPException(status_code=500, detail=f"Internal server error: {type(e).__name__}")


@router.post("", summary="Start checkout for a tenant cart")
def start_checkout(
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    gateway_type: Optional[str] = Query(None, alias="gatewayType"),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    result = _run(orch.start, tenant_id, gateway_type)
    if isinstance(result, dict):
        return result
    return orch.view(result)


@router.get("/{session_id}", summary="Current checkout state")
def get_checkout(session_id: str, orch: CheckoutOrchestrator = Depends(get_orchestrator)):
    s = _session(orch, session_id)
    return orch.view(s)


@router.post("/{session_id}/customer-info")
def submit_customer_info(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    _run(orch.submit_customer_info, s, payload)
    return orch.view(s)


@router.post("/{session_id}/fulfillment")
def submit_fulfillment(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    _run(orch.submit_fulfillment, s, payload.get("method"), payload.get("fee_cents"))
    return orch.view(s)


@router.post("/{session_id}/shipping-address")
def submit_shipping_address(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    _run(orch.submit_shipping_address, s, payload)
    return orch.view(s)


@router.post("/{session_id}/back")
def go_back(session_id: str, orch: CheckoutOrchestrator = Depends(get_orchestrator)):
    s = _session(orch, session_id)
    location = _run(orch.back, s)
    if location:
        return {"redirect_to": location}
    return orch.view(s)


@router.post("/{session_id}/payment-method")
def select_payment_method(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    _run(orch.select_payment_method, s, payload.get("gateway_type"))
    return orch.view(s)


@router.post("/{session_id}/payment", summary="Pay with the selected gateway")
def submit_payment(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    location = _run(orch.submit_payment, s, payload.get("payment_token"))
    return {"redirect_to": location, "completion": s.completion}


@router.post("/{session_id}/complete", summary="Confirm a payment made by the client")
def complete_checkout(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    orch: CheckoutOrchestrator = Depends(get_orchestrator),
):
    s = _session(orch, session_id)
    location = _run(
        orch.complete, s, payload.get("order_number"), payload.get("gateway_transaction_id")
    )
    return {"redirect_to": location, "completion": s.completion}
