from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.models.order import Order, OrderLine
from app.repositories.order_repo import OrderRepository
from app.schemas.checkout_schema import (
    CartSnapshot,
    CustomerInfo,
    FulfillmentMethod,
    GatewayType,
    OrderTotals,
    ShippingAddress,
)
from app.utils.logging import get_logger
from app.utils.transactions import smart_transaction

logger = get_logger(__name__)


class OrderServiceException(Exception):
    pass


def order_to_dict(order: Order) -> Dict:
    return {
        "orderNumber": order.order_number,
        "tenantId": order.tenant_id,
        "gatewayType": order.gateway_type,
        "gatewayTransactionId": order.gateway_transaction_id,
        "status": order.status,
        "fulfillmentMethod": order.fulfillment_method,
        "subtotalCents": order.subtotal_cents,
        "platformFeeCents": order.platform_fee_cents,
        "fulfillmentFeeCents": order.fulfillment_fee_cents,
        "totalCents": order.total_cents,
        "shippingAddress": order.shipping_address,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "lines": [
            {"productId": l.product_id, "sku": l.sku, "name": l.name, "qty": l.qty, "priceCents": l.price_cents}
            for l in order.lines
        ],
    }


class OrderService:
    """Buyer-facing order history queries."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository(db)

    def list_for_buyer(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Dict]:
        if not email and not phone:
            raise OrderServiceException("Either email or phone is required")
        return [order_to_dict(o) for o in self.repo.list_for_buyer(email=email, phone=phone)]

    def get(self, order_number: str) -> Dict:
        o = self.repo.get_by_number(order_number)
        if not o:
            raise OrderServiceException("Order not found")
        return order_to_dict(o)


class OrderHistoryStore:
    """
    Durable record written when a checkout finalizes: the buyer's contact
    details (for later history lookup) and a receipt of what was paid.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def save_contact(self, session_id: str, email: Optional[str], phone: Optional[str]) -> None:
        with self.session_factory() as s, smart_transaction(s, "save buyer contact"):
            OrderRepository(s).save_contact(session_id, email, phone)

    def record_order(
        self,
        order_number: str,
        cart: CartSnapshot,
        totals: OrderTotals,
        customer_info: CustomerInfo,
        fulfillment_method: FulfillmentMethod,
        payment_method: GatewayType,
        shipping_address: Optional[ShippingAddress] = None,
        gateway_transaction_id: Optional[str] = None,
    ) -> None:
        with self.session_factory() as s:
            repo = OrderRepository(s)
            with smart_transaction(s, f"record order {order_number}"):
                if repo.get_by_number(order_number):
                    logger.info(f"Order {order_number} already recorded, skipping")
                    return
                order = Order(
                    order_number=order_number,
                    tenant_id=cart.tenant_id,
                    gateway_type=payment_method.value,
                    gateway_transaction_id=gateway_transaction_id,
                    status="paid",
                    customer_email=customer_info.email,
                    customer_phone=customer_info.phone,
                    customer_name=f"{customer_info.first_name} {customer_info.last_name}",
                    fulfillment_method=fulfillment_method.value,
                    subtotal_cents=totals.subtotal_cents,
                    platform_fee_cents=totals.platform_fee_cents,
                    fulfillment_fee_cents=totals.fulfillment_fee_cents,
                    total_cents=totals.total_cents,
                    shipping_address=shipping_address.model_dump() if shipping_address else None,
                )
                for it in cart.items:
                    order.lines.append(
                        OrderLine(
                            product_id=it.product_id,
                            sku=it.sku,
                            name=it.name,
                            qty=it.quantity,
                            price_cents=it.unit_price_cents,
                        )
                    )
                s.add(order)
            logger.info(f"Recorded order {order_number} total={totals.total_cents} tenant={cart.tenant_id}")
