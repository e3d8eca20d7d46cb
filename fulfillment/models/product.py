"""Product model."""
from decimal import Decimal

from sqlalchemy import Column, String, Text, Boolean, Integer, Numeric, DateTime
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin

DEFAULT_WEIGHT_KG = Decimal('0.5')


class Product(EntityMixin, Base):
    """Sellable item. Price and stock are only trusted from storage."""

    __tablename__ = 'products'

    _init_defaults = {'stock': 0, 'active': True, 'pickup_enabled': False}

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    active = Column(Boolean, nullable=False, default=True, server_default='true')
    weight_kg = Column(Numeric(8, 3), nullable=True)
    pickup_enabled = Column(Boolean, nullable=False, default=False, server_default='false')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')

    @validates('stock')
    def validate_stock(self, key, value):
        if value is None or int(value) < 0:
            raise ValueError(f'stock must be >= 0, got {value}')
        return int(value)

    @validates('price')
    def validate_price(self, key, value):
        if value is None or Decimal(str(value)) < 0:
            raise ValueError(f'price must be >= 0, got {value}')
        return Decimal(str(value))

    @property
    def effective_weight_kg(self) -> Decimal:
        """Weight used for shipping, 0.5 kg when unset."""
        if not self.weight_kg:
            return DEFAULT_WEIGHT_KG
        return Decimal(str(self.weight_kg))

    @property
    def active_variants(self):
        return [v for v in (self.variants or []) if v.active]

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
