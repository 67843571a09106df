# backend/app/schemas/checkout_schema.py
import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GatewayType(str, enum.Enum):
    SQUARE = "square"
    PAYPAL = "paypal"


class FulfillmentMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    SHIPPING = "shipping"


class CheckoutStep(str, enum.Enum):
    REVIEW = "review"
    FULFILLMENT = "fulfillment"
    SHIPPING = "shipping"
    PAYMENT = "payment"


class CartLineItem(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    product_id: str
    name: str
    sku: str
    quantity: int = Field(..., ge=1)
    unit_price_cents: int = Field(..., ge=0)
    list_price_cents: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    variant_id: Optional[str] = None

    @model_validator(mode="after")
    def _list_price_not_below_unit(self):
        if self.list_price_cents is not None and self.list_price_cents < self.unit_price_cents:
            raise ValueError("list_price_cents must be >= unit_price_cents")
        return self


class CartSnapshot(BaseModel):
    """Read-only view of one tenant's cart for one gateway."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    gateway_type: GatewayType
    items: List[CartLineItem] = []
    tenant_name: Optional[str] = None
    status: str = "active"


class CustomerInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    email: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class ShippingAddress(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal_cents: int
    platform_fee_cents: int
    fulfillment_fee_cents: int
    total_cents: int


class PaymentItem(BaseModel):
    """Cart line in the shape the payment collaborators expect (prices in cents)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    sku: str
    quantity: int
    unit_price: int
    list_price: Optional[int] = None
    image_url: Optional[str] = None
    inventory_item_id: str
    variant_id: Optional[str] = None


class PaymentContext(BaseModel):
    """Contract handed to whichever payment collaborator is active."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    amount_cents: int
    customer_info: CustomerInfo
    shipping_address: Optional[ShippingAddress] = None
    fulfillment_method: FulfillmentMethod
    cart_items: List[PaymentItem]
    payment_token: Optional[str] = None


class PaymentConfirmation(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_number: str
    gateway_transaction_id: Optional[str] = None


# --- request bodies ---

class CartItemIn(BaseModel):
    product_id: str
    name: str
    sku: str
    quantity: int = Field(..., gt=0)
    unit_price_cents: int = Field(..., ge=0)
    list_price_cents: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    variant_id: Optional[str] = None
    tenant_name: Optional[str] = None


class GatewayConfigIn(BaseModel):
    gateway_type: GatewayType
    is_active: bool = True
    is_default: bool = False
    display_name: Optional[str] = None


class FulfillmentSettingsIn(BaseModel):
    pickup_enabled: bool = True
    pickup_instructions: Optional[str] = None
    delivery_enabled: bool = False
    delivery_fee_cents: int = Field(0, ge=0)
    delivery_min_free_cents: Optional[int] = Field(None, ge=0)
    shipping_enabled: bool = False
    shipping_flat_rate_cents: Optional[int] = Field(None, ge=0)
