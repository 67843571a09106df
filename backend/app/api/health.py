from fastapi import APIRouter, Request
from sqlalchemy import text

from app.db import engine

router = APIRouter()


@router.get("/health", tags=["health"])
def health(request: Request):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False

    adapters = {}
    checkout = getattr(request.app.state, "checkout", None)
    for gateway_type, collaborator in (checkout.collaborators.items() if checkout else []):
        try:
            adapters[gateway_type.value] = collaborator.health_check()
        except Exception:
            adapters[gateway_type.value] = False

    return {
        "status": "ok" if db_ok and adapters and all(adapters.values()) else "degraded",
        "db": db_ok,
        "payment_adapters": adapters,
        "active_checkout_sessions": len(checkout.registry) if checkout else 0,
    }
