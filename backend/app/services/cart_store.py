from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.models.cart import Cart
from app.repositories.cart_repo import CartRepository
from app.schemas.checkout_schema import CartLineItem, CartSnapshot
from app.utils.logging import get_logger
from app.utils.transactions import smart_transaction

logger = get_logger(__name__)


def to_snapshot(cart: Cart) -> CartSnapshot:
    return CartSnapshot(
        tenant_id=cart.tenant_id,
        gateway_type=cart.gateway_type,
        tenant_name=cart.tenant_name,
        status=cart.status,
        items=[CartLineItem.model_validate(it) for it in cart.items],
    )


class CartStore:
    """
    The narrow capability checkout needs from whoever owns cart state:
    read a (tenant, gateway) cart and clear it once the order is paid.

    Stores whose contents load asynchronously may also implement
    `wait_until_ready(timeout) -> bool`; checkout uses it instead of a
    blind sleep while waiting for hydration.
    """

    def get_cart(self, tenant_id: str, gateway_type: str) -> Optional[CartSnapshot]:
        raise NotImplementedError

    def clear_cart(self, tenant_id: str, gateway_type: str) -> None:
        raise NotImplementedError


class DatabaseCartStore(CartStore):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def wait_until_ready(self, timeout: float) -> bool:
        # rows are readable as soon as they are committed
        return True

    def get_cart(self, tenant_id: str, gateway_type: str) -> Optional[CartSnapshot]:
        with self.session_factory() as s:
            repo = CartRepository(s)
            cart = repo.get_active(tenant_id, gateway_type) or repo.get_latest(tenant_id, gateway_type)
            if cart is None:
                return None
            return to_snapshot(cart)

    def clear_cart(self, tenant_id: str, gateway_type: str) -> None:
        with self.session_factory() as s, smart_transaction(s, "clear cart"):
            repo = CartRepository(s)
            cart = repo.get_active(tenant_id, gateway_type)
            if cart is None:
                logger.info(f"clear_cart: no active cart for tenant={tenant_id} gateway={gateway_type}")
                return
            repo.clear(cart, status="paid")
            logger.info(f"Cleared cart {cart.id} for tenant={tenant_id} gateway={gateway_type}")
