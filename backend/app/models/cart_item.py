from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db import Base


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)  # insertion order
    product_id = Column(String(64), nullable=False, index=True)
    variant_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False, default=0)  # effective (sale) price
    list_price_cents = Column(Integer, nullable=True)  # original price when on sale
    image_url = Column(String(512), nullable=True)

    cart = relationship("Cart", back_populates="items")
