"""
Order assembly service.

Turns a checkout request into a persisted Order with its items and Delivery.
Every price, distance and fee is recomputed server-side; all validation and
tariff checks run before the first write, and the writes share one unit of
work that is rolled back (or compensated) on failure.
"""
import logging
import numbers
from collections import namedtuple
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from fulfillment.exceptions import (
    FulfillmentError, ValidationError, ShippingUnavailableError, InsufficientStockError, PersistenceError,
)
from fulfillment.models import (
    Customer, Order, OrderItem, Delivery, OrderStatus, ShippingMethod, MIN_LINE_QUANTITY, MAX_LINE_QUANTITY,
)
from fulfillment.services.pricing_service import PricingResult, price_cart
from fulfillment.services.settings_service import SettingsService
from fulfillment.services.tariff_service import (
    parse_shipping_method, resolve_tariff, shipping_options, to_base_currency,
)
from fulfillment.utils.formatters import mask_phone, quantize_money
from fulfillment.utils.geo import detect_country, distance_km, is_valid_coordinate

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_PHONE_LENGTH = 20
MAX_EMAIL_LENGTH = 255
MAX_ADDRESS_LENGTH = 500
MAX_NOTES_LENGTH = 500

OrderResult = namedtuple('OrderResult', ['order_id', 'subtotal', 'delivery_fee', 'total', 'order'])


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

def _text(data: Dict[str, Any], key: str, max_length: int, required: bool = False) -> Optional[str]:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{key} is required')
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{key} must be a string')
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f'{key} must be at most {max_length} characters')
    return value


def _number(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f'{key} must be a number')
    return float(value)


def _validate_items(items) -> List[Dict[str, Any]]:
    if not isinstance(items, list) or not items:
        raise ValidationError('Cart is empty')

    cleaned = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError('Invalid cart item')
        product_id = item.get('product_id')
        if product_id is None or str(product_id).strip() == '':
            raise ValidationError('product_id is required')
        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError('quantity must be an integer')
        if not MIN_LINE_QUANTITY <= quantity <= MAX_LINE_QUANTITY:
            raise ValidationError(f'quantity must be between {MIN_LINE_QUANTITY} and {MAX_LINE_QUANTITY}')
        variant_id = item.get('variant_id')
        cleaned.append({
            'product_id': str(product_id),
            'quantity': quantity,
            'variant_id': str(variant_id) if variant_id else None,
        })
    return cleaned


def validate_order_request(data) -> Dict[str, Any]:
    """Check shape and limits of a checkout request; returns normalized values."""
    if not isinstance(data, dict):
        raise ValidationError('Invalid request body')

    items = _validate_items(data.get('items'))

    customer = data.get('customer')
    if not isinstance(customer, dict):
        raise ValidationError('customer is required')
    customer_values = {
        'name': _text(customer, 'name', MAX_NAME_LENGTH, required=True),
        'phone': _text(customer, 'phone', MAX_PHONE_LENGTH, required=True),
        'email': _text(customer, 'email', MAX_EMAIL_LENGTH),
        'address': _text(customer, 'address', MAX_ADDRESS_LENGTH),
        'latitude': _number(customer, 'latitude'),
        'longitude': _number(customer, 'longitude'),
    }

    delivery = data.get('delivery')
    if not isinstance(delivery, dict):
        raise ValidationError('delivery is required')
    method = parse_shipping_method(delivery.get('shipping_method'))
    latitude = _number(delivery, 'latitude')
    longitude = _number(delivery, 'longitude')
    if (latitude is None) != (longitude is None):
        raise ValidationError('latitude and longitude must be sent together')
    if latitude is not None and not is_valid_coordinate(latitude, longitude):
        raise ValidationError('Invalid delivery coordinates')

    return {
        'items': items,
        'customer': customer_values,
        'shipping_method': method,
        'latitude': latitude,
        'longitude': longitude,
        'notes': _text(data, 'notes', MAX_NOTES_LENGTH),
    }


def _has_location(latitude, longitude) -> bool:
    return latitude is not None and longitude is not None and (latitude, longitude) != (0.0, 0.0)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class OrderAssemblyService:

    def __init__(self, uow, settings: Optional[SettingsService] = None,
                 distance_fn: Callable[..., float] = distance_km):
        self.uow = uow
        self.settings = settings or SettingsService(uow)
        self.distance_fn = distance_fn

    def _distance_from_store(self, config, latitude, longitude) -> Optional[float]:
        if not _has_location(latitude, longitude):
            return None
        return self.distance_fn((config.store_latitude, config.store_longitude), (latitude, longitude))

    def create_order(self, data) -> OrderResult:
        request = validate_order_request(data)
        method = request['shipping_method']
        phone = request['customer']['phone']

        # Everything up to the tariff is read-only
        config, tiers = self.settings.load()
        pricing = price_cart(request['items'], self.uow.products)

        distance = self._distance_from_store(config, request['latitude'], request['longitude'])
        if method is ShippingMethod.LOCAL and distance is None:
            raise ShippingUnavailableError('A delivery location is required for local delivery')

        quote = resolve_tariff(
            method, config, tiers,
            distance_km=distance or 0,
            total_weight_kg=pricing.total_weight_kg,
            pickup_eligible=pricing.pickup_eligible,
        )
        if not quote.available:
            raise ShippingUnavailableError(quote.reason)

        delivery_fee = to_base_currency(quote, config)
        total = quantize_money(pricing.subtotal + delivery_fee)

        try:
            order = self._persist(request, pricing, distance, delivery_fee, total)
            self.uow.commit()
        except FulfillmentError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to persist order for customer {mask_phone(phone)}")
            raise PersistenceError() from e

        logger.info(
            f"Order {order.id} created: {len(pricing.lines)} lines, method={method.value}, "
            f"subtotal={pricing.subtotal}, fee={delivery_fee}, total={total}, customer={mask_phone(phone)}"
        )
        return OrderResult(order.id, pricing.subtotal, delivery_fee, total, order)

    def _persist(self, request: Dict[str, Any], pricing: PricingResult, distance: Optional[float],
                 delivery_fee: Decimal, total: Decimal) -> Order:
        customer_values = dict(request['customer'])
        # The delivery point becomes the customer's location when none is given
        if customer_values['latitude'] is None and _has_location(request['latitude'], request['longitude']):
            customer_values['latitude'] = request['latitude']
            customer_values['longitude'] = request['longitude']
        customer = self._upsert_customer(customer_values)

        order = Order(
            customer_id=customer.id,
            status=OrderStatus.PENDING.value,
            subtotal=pricing.subtotal,
            delivery_fee=delivery_fee,
            total=total,
            shipping_method=request['shipping_method'].value,
            delivery_distance=round(distance, 3) if distance is not None else None,
            delivery_latitude=request['latitude'],
            delivery_longitude=request['longitude'],
            delivery_address=request['customer']['address'],
            notes=request['notes'],
        )
        self.uow.orders.add(order)

        # Conditional decrement; a concurrent order may have taken the stock since pricing
        for line in pricing.lines:
            if line.variant_id:
                taken = self.uow.products.decrement_variant_stock(line.variant_id, line.quantity)
            else:
                taken = self.uow.products.decrement_stock(line.product_id, line.quantity)
            if not taken:
                available = self.uow.products.current_stock(line.product_id, line.variant_id)
                logger.warning(f"Stock race lost for {line.product_name}: wanted {line.quantity}, left {available}")
                raise InsufficientStockError(line.product_name, line.quantity, available)

        self.uow.orders.add_items(order, [
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
            for line in pricing.lines
        ])

        # The order stands even if its delivery record cannot be created
        try:
            with self.uow.savepoint():
                self.uow.deliveries.add(Delivery(order_id=order.id))
        except Exception:
            logger.exception(f"Could not create delivery for order {order.id}")

        return order

    def _upsert_customer(self, values: Dict[str, Any]) -> Customer:
        customer = self.uow.customers.get_by_phone(values['phone'])
        if customer is None:
            return self.uow.customers.add(Customer(**values))
        changes = {key: value for key, value in values.items() if value is not None and key != 'phone'}
        return self.uow.customers.update(customer, changes)

    def quote(self, items, latitude=None, longitude=None) -> Dict[str, Any]:
        """Shipping options for a cart; read-only."""
        cleaned = _validate_items(items)
        if latitude is not None or longitude is not None:
            if not is_valid_coordinate(latitude, longitude):
                raise ValidationError('Invalid coordinates')
            latitude, longitude = float(latitude), float(longitude)

        config, tiers = self.settings.load()
        pricing = price_cart(cleaned, self.uow.products)
        distance = self._distance_from_store(config, latitude, longitude)

        return {
            'subtotal': pricing.subtotal,
            'total_weight_kg': pricing.total_weight_kg,
            'distance_km': round(distance, 3) if distance is not None else None,
            'country': detect_country(latitude, longitude) if _has_location(latitude, longitude) else None,
            'options': shipping_options(
                config, tiers,
                distance_km=distance,
                total_weight_kg=pricing.total_weight_kg,
                pickup_eligible=pricing.pickup_eligible,
            ),
        }
