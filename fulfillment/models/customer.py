"""Customer model."""
from sqlalchemy import Column, String, Text, Float, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin


class Customer(EntityMixin, Base):
    """Buyer identity, looked up by phone."""

    __tablename__ = 'customers'

    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    orders = relationship('Order', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
