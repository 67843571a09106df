from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from app.config import settings
from app.schemas.checkout_schema import CartLineItem, OrderTotals, PaymentItem


def platform_fee_cents(subtotal_cents: int, rate: Optional[Decimal] = None) -> int:
    """
    Platform surcharge on the item subtotal, rounded half-up to the nearest cent.
    e.g. 50 * 0.03 = 1.5 -> 2.
    """
    rate = settings.PLATFORM_FEE_RATE if rate is None else Decimal(str(rate))
    fee = (Decimal(subtotal_cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(fee)


def compute_totals(
    items: Iterable[CartLineItem],
    fulfillment_fee_cents: int = 0,
    rate: Optional[Decimal] = None,
) -> OrderTotals:
    if fulfillment_fee_cents < 0:
        raise ValueError("Fulfillment fee must not be negative")
    subtotal = sum(it.unit_price_cents * it.quantity for it in items)
    fee = platform_fee_cents(subtotal, rate)
    return OrderTotals(
        subtotal_cents=subtotal,
        platform_fee_cents=fee,
        fulfillment_fee_cents=fulfillment_fee_cents,
        total_cents=subtotal + fee + fulfillment_fee_cents,
    )


def to_payment_items(items: Iterable[CartLineItem]) -> List[PaymentItem]:
    # every cart line passes through, in cart order
    return [
        PaymentItem(
            id=it.product_id,
            name=it.name,
            sku=it.sku,
            quantity=it.quantity,
            unit_price=it.unit_price_cents,
            list_price=it.list_price_cents,
            image_url=it.image_url,
            inventory_item_id=it.product_id,
            variant_id=it.variant_id,
        )
        for it in items
    ]
