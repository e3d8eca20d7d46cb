"""Delivery model."""
from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.mixins import EntityMixin
import enum


class DeliveryStatus(str, enum.Enum):
    """Delivery tracking status."""
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    IN_TRANSIT = 'in_transit'
    DELIVERED = 'delivered'
    FAILED = 'failed'


DELIVERY_STATUS_SEQUENCE = (
    DeliveryStatus.PENDING,
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)

TERMINAL_DELIVERY_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED})


class Delivery(EntityMixin, Base):
    """Fulfillment tracking record, 1:1 with Order."""

    __tablename__ = 'deliveries'

    _init_defaults = {'status': DeliveryStatus.PENDING.value}

    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value, index=True)
    driver_id = Column(String(36), ForeignKey('drivers.id'), nullable=True, index=True)

    # Last position reported by the assigned driver
    driver_latitude = Column(Float, nullable=True)
    driver_longitude = Column(Float, nullable=True)
    driver_location_updated_at = Column(DateTime(timezone=True), nullable=True)

    picked_at = Column(DateTime(timezone=True), nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    actual_delivery = Column(DateTime(timezone=True), nullable=True)
    driver_notes = Column(Text, nullable=True)

    # Notification log
    last_notification_status = Column(String(20), nullable=True)
    last_notification_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    order = relationship('Order', back_populates='delivery')
    driver = relationship('Driver', back_populates='deliveries')

    @validates('status')
    def validate_status(self, key, value):
        return DeliveryStatus(value).value

    @property
    def is_terminal(self) -> bool:
        return DeliveryStatus(self.status) in TERMINAL_DELIVERY_STATUSES

    def __repr__(self):
        return f"<Delivery(id={self.id}, order_id={self.order_id}, status={self.status})>"
