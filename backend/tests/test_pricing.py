from decimal import Decimal

import pytest

from app.schemas.checkout_schema import CartLineItem
from app.services.pricing import compute_totals, platform_fee_cents, to_payment_items


def _item(pid, price, qty=1, **kw):
    return CartLineItem(product_id=pid, name=f"Item {pid}", sku=f"SKU-{pid}", quantity=qty, unit_price_cents=price, **kw)


def test_totals_with_delivery_fee():
    t = compute_totals([_item("a", 2500, qty=4)], fulfillment_fee_cents=500)
    assert t.subtotal_cents == 10000
    assert t.platform_fee_cents == 300
    assert t.fulfillment_fee_cents == 500
    assert t.total_cents == 10800


def test_empty_cart_totals_are_zero():
    t = compute_totals([], fulfillment_fee_cents=0)
    assert t.subtotal_cents == 0
    assert t.platform_fee_cents == 0
    assert t.total_cents == 0


def test_platform_fee_rounds_half_up():
    # 50 * 0.03 = 1.5
    assert platform_fee_cents(50) == 2
    # 49 * 0.03 = 1.47
    assert platform_fee_cents(49) == 1
    # 150 * 0.03 = 4.5
    assert platform_fee_cents(150) == 5


def test_custom_rate():
    assert platform_fee_cents(1000, Decimal("0.05")) == 50


def test_negative_fulfillment_fee_rejected():
    with pytest.raises(ValueError):
        compute_totals([_item("a", 100)], fulfillment_fee_cents=-1)


def test_payment_items_keep_cart_order_and_prices():
    items = [
        _item("p2", 1999, qty=2, list_price_cents=2499, variant_id="v-red"),
        _item("p1", 500),
        _item("p3", 0),
    ]
    mapped = to_payment_items(items)
    assert [m.id for m in mapped] == ["p2", "p1", "p3"]
    assert [m.unit_price for m in mapped] == [1999, 500, 0]
    assert mapped[0].inventory_item_id == "p2"
    assert mapped[0].list_price == 2499
    assert mapped[0].variant_id == "v-red"
    assert mapped[1].list_price is None


def test_list_price_below_unit_price_is_invalid():
    with pytest.raises(ValueError):
        _item("x", 1000, list_price_cents=900)
