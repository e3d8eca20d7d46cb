"""Order model."""
from decimal import Decimal

from sqlalchemy import Column, String, Text, Float, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin
import enum


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    PAID = 'paid'
    PREPARING = 'preparing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class ShippingMethod(str, enum.Enum):
    """Supported shipping methods."""
    PICKUP = 'pickup'
    LOCAL = 'local'
    NATIONAL_FLAT = 'national_flat'
    INTERNATIONAL_TIERED = 'international_tiered'


# Forward order of the lifecycle; cancellation is allowed from any non-terminal status
ORDER_STATUS_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PREPARING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class Order(EntityMixin, Base):
    """A placed purchase. Totals are always computed server-side."""

    __tablename__ = 'orders'

    _init_defaults = {'status': OrderStatus.PENDING.value, 'delivery_fee': Decimal('0.00')}

    customer_id = Column(String(36), ForeignKey('customers.id'), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    subtotal = Column(Numeric(12, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    shipping_method = Column(String(30), nullable=False)
    delivery_distance = Column(Float, nullable=True)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)
    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    payment_reference = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    delivery = relationship('Delivery', back_populates='order', uselist=False, cascade='all, delete-orphan')

    @validates('status')
    def validate_status(self, key, value):
        return OrderStatus(value).value

    @validates('shipping_method')
    def validate_shipping_method(self, key, value):
        return ShippingMethod(value).value

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_ORDER_STATUSES

    def __repr__(self):
        return f"<Order(id={self.id}, total={self.total}, status={self.status})>"
