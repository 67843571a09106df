from typing import Optional

from sqlalchemy.orm import Session

from app.models.cart import Cart
from app.repositories.cart_repo import CartRepository
from app.schemas.checkout_schema import CartItemIn, CartSnapshot, GatewayType
from app.services.cart_store import to_snapshot
from app.services.events import cart_events


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)

    @staticmethod
    def _gateway(gateway_type: str) -> str:
        try:
            return GatewayType(gateway_type).value
        except ValueError:
            raise ValueError(f"Unsupported gateway type: {gateway_type}")

    def get_cart(self, tenant_id: str, gateway_type: str) -> Optional[CartSnapshot]:
        cart = self.cart_repo.get_active(tenant_id, self._gateway(gateway_type))
        return to_snapshot(cart) if cart else None

    def get_or_create_cart(self, tenant_id: str, gateway_type: str, tenant_name: Optional[str] = None) -> Cart:
        gateway_type = self._gateway(gateway_type)
        c = self.cart_repo.get_active(tenant_id, gateway_type)
        if c:
            if tenant_name and not c.tenant_name:
                c.tenant_name = tenant_name
            return c
        c = self.cart_repo.create(tenant_id, gateway_type, tenant_name)
        self.db.commit()
        return c

    def add_item(self, tenant_id: str, gateway_type: str, payload: CartItemIn) -> CartSnapshot:
        if payload.quantity <= 0:
            raise ValueError("Quantity must be positive")
        if payload.list_price_cents is not None and payload.list_price_cents < payload.unit_price_cents:
            raise ValueError("List price must not be below unit price")
        cart = self.get_or_create_cart(tenant_id, gateway_type, payload.tenant_name)
        self.cart_repo.add_or_update_item(
            cart,
            payload.product_id,
            payload.variant_id,
            name=payload.name,
            sku=payload.sku,
            quantity=payload.quantity,
            unit_price_cents=payload.unit_price_cents,
            list_price_cents=payload.list_price_cents,
            image_url=payload.image_url,
        )
        self.db.commit()
        cart_events.publish()
        return to_snapshot(cart)

    def remove_item(
        self, tenant_id: str, gateway_type: str, product_id: str, variant_id: Optional[str] = None
    ) -> CartSnapshot:
        cart = self.cart_repo.get_active(tenant_id, self._gateway(gateway_type))
        if not cart or not self.cart_repo.remove_item(cart, product_id, variant_id):
            raise ValueError("Cart item not found")
        self.db.commit()
        cart_events.publish()
        return to_snapshot(cart)

    def clear(self, tenant_id: str, gateway_type: str) -> None:
        """Empty an active cart without checking out (status stays active)."""
        cart = self.cart_repo.get_active(tenant_id, self._gateway(gateway_type))
        if not cart:
            return
        self.cart_repo.clear(cart, status="active")
        self.db.commit()
        cart_events.publish()
