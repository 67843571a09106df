from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.adapters.mock_payment import default_collaborators
from app.api.health import router as health_router
from app.api.routes_admin import router as admin_router
from app.api.routes_cart import router as cart_router
from app.api.routes_checkout import router as checkout_router
from app.api.routes_order import router as order_router
from app.api.routes_tenant import router as tenant_router
from app.config import settings
from app.db import SessionLocal, init_db
from app.repositories.idempotency_repo import IdempotencyRepository
from app.services.cart_store import DatabaseCartStore
from app.services.checkout_orchestrator import CheckoutOrchestrator
from app.services.fulfillment_service import FulfillmentPolicy
from app.services.gateway_directory import build_gateway_directory
from app.services.order_service import OrderHistoryStore
from app.utils.logging import get_logger

logger = get_logger("app.main")


def build_orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        cart_store=DatabaseCartStore(SessionLocal),
        gateway_directory=build_gateway_directory(),
        collaborators=default_collaborators(),
        history=OrderHistoryStore(SessionLocal),
        fulfillment_policy=FulfillmentPolicy(SessionLocal),
        idempotency=IdempotencyRepository(SessionLocal),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    # scheduler for expiring idle checkout sessions
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        app.state.checkout.expire_idle_sessions,
        "interval",
        seconds=settings.SESSION_SWEEP_INTERVAL_SECONDS,
        id="expire_checkout_sessions",
    )
    scheduler.start()
    logger.info("Checkout service started")

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Tenant Checkout - Backend", version="0.1.0", lifespan=lifespan)
app.state.checkout = build_orchestrator()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(cart_router, tags=["cart"])

app.include_router(checkout_router, tags=["checkout"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])

app.include_router(tenant_router, tags=["tenant"])

app.include_router(admin_router, tags=["admin"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
