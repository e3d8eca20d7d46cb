"""International shipping tier model."""
from decimal import Decimal

from sqlalchemy import Column, String, Numeric, DateTime
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin


class ShippingTier(EntityMixin, Base):
    """Weight bracket with a flat price in the secondary currency."""

    __tablename__ = 'shipping_tiers'

    max_weight_kg = Column(Numeric(8, 3), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    dimensions = Column(String(100), nullable=False, default='', server_default='')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @validates('max_weight_kg')
    def validate_max_weight(self, key, value):
        value = Decimal(str(value))
        if value <= 0:
            raise ValueError('max_weight_kg must be greater than 0')
        return value

    @validates('price')
    def validate_price(self, key, value):
        value = Decimal(str(value))
        if value < 0:
            raise ValueError('price must be >= 0')
        return value

    def to_dict(self):
        return {
            'max_weight_kg': Decimal(str(self.max_weight_kg)),
            'price': Decimal(str(self.price)),
            'dimensions': self.dimensions or '',
        }

    def __repr__(self):
        return f"<ShippingTier(max_weight_kg={self.max_weight_kg}, price={self.price})>"
