"""
Driver location tracking.

Drivers report positions while tracking is on; each report is copied onto
their active deliveries and published on an in-process feed. Transport
(push or polling) is left to whoever subscribes.
"""
import logging
import threading
from collections import namedtuple
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fulfillment.exceptions import FulfillmentError, NotFoundError, ValidationError, PersistenceError
from fulfillment.models import Driver, utcnow
from fulfillment.utils.formatters import datetime_json, money_json
from fulfillment.utils.geo import distance_km, estimate_eta, format_staleness, is_valid_coordinate

logger = logging.getLogger(__name__)

DriverPosition = namedtuple('DriverPosition', [
    'driver_id', 'latitude', 'longitude', 'recorded_at', 'delivery_ids',
])


class PositionFeed:
    """Thread-safe publish/subscribe of driver positions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[DriverPosition], None]] = []

    def subscribe(self, callback: Callable[[DriverPosition], None]) -> Callable[[DriverPosition], None]:
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Callable[[DriverPosition], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, position: DriverPosition) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(position)
            except Exception:
                logger.exception(f"Position subscriber failed for driver {position.driver_id}")


def _coordinates(latitude, longitude):
    if not is_valid_coordinate(latitude, longitude):
        raise ValidationError('Invalid coordinates')
    return float(latitude), float(longitude)


class DriverLocationTracker:

    def __init__(self, uow, feed: Optional[PositionFeed] = None, clock: Callable[[], datetime] = utcnow):
        self.uow = uow
        self.feed = feed or PositionFeed()
        self.clock = clock

    def _get_driver(self, driver_id: str) -> Driver:
        driver = self.uow.drivers.get(driver_id)
        if driver is None:
            raise NotFoundError(f'Driver {driver_id} not found')
        return driver

    def report_position(self, driver_id: str, latitude, longitude) -> DriverPosition:
        """Record a position and copy it to every non-terminal delivery of the driver."""
        lat, lon = _coordinates(latitude, longitude)
        driver = self._get_driver(driver_id)
        if not driver.active:
            raise ValidationError('Driver is not active')
        if not driver.is_tracking:
            raise ValidationError('Tracking is not enabled for this driver')

        try:
            position = self._store_position(driver, lat, lon)
            self.uow.commit()
        except FulfillmentError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to store position for driver {driver.id}")
            raise PersistenceError('Failed to store driver position') from e

        logger.debug(f"Driver {driver.id} at ({lat:.5f}, {lon:.5f}), {len(position.delivery_ids)} active deliveries")
        self.feed.publish(position)
        return position

    def _store_position(self, driver: Driver, lat: float, lon: float) -> DriverPosition:
        now = self.clock()
        self.uow.drivers.update(driver, {
            'last_location_lat': lat,
            'last_location_lon': lon,
            'location_updated_at': now,
        })
        deliveries = self.uow.deliveries.active_for_driver(driver.id)
        for delivery in deliveries:
            self.uow.deliveries.update(delivery, {
                'driver_latitude': lat,
                'driver_longitude': lon,
                'driver_location_updated_at': now,
            })
        return DriverPosition(driver.id, lat, lon, now, tuple(d.id for d in deliveries))

    def set_tracking(self, driver_id: str, enabled: bool, latitude=None, longitude=None) -> Driver:
        """Toggle tracking; an initial position may come along when enabling."""
        driver = self._get_driver(driver_id)
        coordinates = None
        if enabled and (latitude is not None or longitude is not None):
            coordinates = _coordinates(latitude, longitude)
            if not driver.active:
                raise ValidationError('Driver is not active')

        position = None
        try:
            self.uow.drivers.update(driver, {'is_tracking': bool(enabled)})
            if coordinates is not None:
                position = self._store_position(driver, *coordinates)
            self.uow.commit()
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to toggle tracking for driver {driver.id}")
            raise PersistenceError('Failed to update tracking') from e

        logger.info(f"Driver {driver.id} tracking {'enabled' if enabled else 'disabled'}")
        if position is not None:
            self.feed.publish(position)
        return driver

    def tracking_view(self, order_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Everything a customer tracking page shows for one order."""
        order = self.uow.orders.get(order_id)
        if order is None:
            raise NotFoundError(f'Order {order_id} not found')
        now = now or self.clock()

        view: Dict[str, Any] = {
            'order': {
                'id': order.id,
                'status': order.status,
                'shipping_method': order.shipping_method,
                'subtotal': money_json(order.subtotal),
                'delivery_fee': money_json(order.delivery_fee),
                'total': money_json(order.total),
                'delivery_address': order.delivery_address,
                'delivery_latitude': order.delivery_latitude,
                'delivery_longitude': order.delivery_longitude,
                'created_at': datetime_json(order.created_at),
            },
            'items': [
                {
                    'product_id': item.product_id,
                    'variant_id': item.variant_id,
                    'product_name': item.product_name,
                    'quantity': item.quantity,
                    'unit_price': money_json(item.unit_price),
                    'subtotal': money_json(item.subtotal),
                }
                for item in self.uow.orders.get_items(order.id)
            ],
            'delivery': None,
            'driver': None,
        }

        delivery = self.uow.deliveries.get_for_order(order.id)
        if delivery is None:
            return view

        view['delivery'] = {
            'id': delivery.id,
            'status': delivery.status,
            'picked_at': datetime_json(delivery.picked_at),
            'estimated_delivery': datetime_json(delivery.estimated_delivery),
            'actual_delivery': datetime_json(delivery.actual_delivery),
        }
        if not delivery.driver_id:
            return view

        driver = self.uow.drivers.get(delivery.driver_id)
        position = {
            'id': delivery.driver_id,
            'name': driver.full_name if driver else None,
            'latitude': delivery.driver_latitude,
            'longitude': delivery.driver_longitude,
            'updated_at': datetime_json(delivery.driver_location_updated_at),
            'last_seen': format_staleness(delivery.driver_location_updated_at, now),
            'distance_km': None,
            'eta_minutes': None,
            'eta_text': None,
        }
        if (delivery.driver_latitude is not None and order.delivery_latitude is not None
                and not delivery.is_terminal):
            remaining = distance_km(
                (delivery.driver_latitude, delivery.driver_longitude),
                (order.delivery_latitude, order.delivery_longitude),
            )
            eta = estimate_eta(remaining)
            position.update({
                'distance_km': round(remaining, 2),
                'eta_minutes': eta.minutes,
                'eta_text': eta.text,
            })
        view['driver'] = position
        return view
