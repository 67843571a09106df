from typing import Optional

from sqlalchemy.orm import Session

from app.models.cart import Cart
from app.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active(self, tenant_id: str, gateway_type: str) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(
                Cart.tenant_id == tenant_id,
                Cart.gateway_type == gateway_type,
                Cart.status == "active",
            )
            .order_by(Cart.id.desc())
            .first()
        )

    def get_latest(self, tenant_id: str, gateway_type: str) -> Optional[Cart]:
        """Most recent cart for the pair, whatever its status."""
        return (
            self.db.query(Cart)
            .filter(Cart.tenant_id == tenant_id, Cart.gateway_type == gateway_type)
            .order_by(Cart.id.desc())
            .first()
        )

    def create(self, tenant_id: str, gateway_type: str, tenant_name: Optional[str] = None) -> Cart:
        c = Cart(tenant_id=tenant_id, gateway_type=gateway_type, tenant_name=tenant_name, status="active")
        self.db.add(c)
        self.db.flush()
        return c

    def add_or_update_item(self, cart: Cart, product_id: str, variant_id: Optional[str], **fields) -> CartItem:
        item = next(
            (it for it in cart.items if it.product_id == product_id and it.variant_id == variant_id),
            None,
        )
        if item:
            for k, v in fields.items():
                setattr(item, k, v)
        else:
            position = max((it.position for it in cart.items), default=-1) + 1
            item = CartItem(
                cart_id=cart.id,
                product_id=product_id,
                variant_id=variant_id,
                position=position,
                **fields,
            )
            self.db.add(item)
            cart.items.append(item)
        self.db.flush()
        return item

    def remove_item(self, cart: Cart, product_id: str, variant_id: Optional[str] = None) -> bool:
        it = next(
            (i for i in cart.items if i.product_id == product_id and i.variant_id == variant_id),
            None,
        )
        if not it:
            return False
        cart.items.remove(it)
        self.db.flush()
        return True

    def clear(self, cart: Cart, status: str = "paid") -> Cart:
        cart.items.clear()
        cart.status = status
        self.db.flush()
        return cart
