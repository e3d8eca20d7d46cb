"""Order Item model."""
from decimal import Decimal

from sqlalchemy import Column, String, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship, validates

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 999


class OrderItem(EntityMixin, Base):
    """Line item snapshot, prices frozen at order time."""

    __tablename__ = 'order_items'

    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('products.id'), nullable=False)
    variant_id = Column(String(36), ForeignKey('product_variants.id'), nullable=True)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        expected = Decimal(str(self.unit_price)) * self.quantity
        if Decimal(str(self.subtotal)) != expected:
            raise ValueError(
                f'subtotal {self.subtotal} does not match unit_price * quantity ({expected})'
            )

    @validates('quantity')
    def validate_quantity(self, key, value):
        value = int(value)
        if not MIN_LINE_QUANTITY <= value <= MAX_LINE_QUANTITY:
            raise ValueError(f'quantity must be between {MIN_LINE_QUANTITY} and {MAX_LINE_QUANTITY}')
        return value

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
