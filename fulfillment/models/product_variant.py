"""Product Variant model."""
from decimal import Decimal

from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin


class ProductVariant(EntityMixin, Base):
    """Size/color SKU of a Product. Its stock supersedes the product stock."""

    __tablename__ = 'product_variants'

    _init_defaults = {'stock': 0, 'active': True}

    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    sku = Column(String(100), nullable=True)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    price_adjustment = Column(Numeric(10, 2), nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default='true')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    product = relationship('Product', back_populates='variants')

    @validates('stock')
    def validate_stock(self, key, value):
        if value is None or int(value) < 0:
            raise ValueError(f'variant stock must be >= 0, got {value}')
        return int(value)

    @property
    def label(self) -> str:
        parts = [p for p in (self.size, self.color) if p]
        return ' / '.join(parts) or (self.sku or self.id)

    @property
    def adjustment(self) -> Decimal:
        return Decimal(str(self.price_adjustment or 0))

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, stock={self.stock})>"
