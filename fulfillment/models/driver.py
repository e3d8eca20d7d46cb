"""Driver model."""
from sqlalchemy import Column, String, Boolean, Float, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin


class Driver(EntityMixin, Base):
    """Courier account. Location fields are only meaningful while tracking."""

    __tablename__ = 'drivers'

    _init_defaults = {'active': True, 'is_tracking': False}

    user_id = Column(String(36), nullable=False, unique=True)
    full_name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default='true')
    is_tracking = Column(Boolean, nullable=False, default=False, server_default='false')
    last_location_lat = Column(Float, nullable=True)
    last_location_lon = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    deliveries = relationship('Delivery', back_populates='driver')

    def __repr__(self):
        return f"<Driver(id={self.id}, full_name='{self.full_name}', tracking={self.is_tracking})>"
