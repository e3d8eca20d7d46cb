"""Models package - exports all SQLAlchemy models."""
from fulfillment.models.mixins import new_id, utcnow

# Catalog
from fulfillment.models.product import Product, DEFAULT_WEIGHT_KG
from fulfillment.models.product_variant import ProductVariant

# Orders
from fulfillment.models.customer import Customer
from fulfillment.models.order import (
    Order, OrderStatus, ShippingMethod, ORDER_STATUS_SEQUENCE, TERMINAL_ORDER_STATUSES
)
from fulfillment.models.order_item import OrderItem, MIN_LINE_QUANTITY, MAX_LINE_QUANTITY

# Fulfillment
from fulfillment.models.delivery import (
    Delivery, DeliveryStatus, DELIVERY_STATUS_SEQUENCE, TERMINAL_DELIVERY_STATUSES
)
from fulfillment.models.driver import Driver

# Configuration
from fulfillment.models.shipping_tier import ShippingTier
from fulfillment.models.store_settings import StoreSettings, StoreConfig

__all__ = [
    'new_id', 'utcnow',
    'Product', 'ProductVariant', 'DEFAULT_WEIGHT_KG',
    'Customer', 'Order', 'OrderStatus', 'ShippingMethod', 'ORDER_STATUS_SEQUENCE', 'TERMINAL_ORDER_STATUSES',
    'OrderItem', 'MIN_LINE_QUANTITY', 'MAX_LINE_QUANTITY',
    'Delivery', 'DeliveryStatus', 'DELIVERY_STATUS_SEQUENCE', 'TERMINAL_DELIVERY_STATUSES',
    'Driver', 'ShippingTier', 'StoreSettings', 'StoreConfig',
]
