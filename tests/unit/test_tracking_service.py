"""
Unit tests for driver location tracking.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fulfillment.exceptions import ValidationError, NotFoundError
from fulfillment.models import Order, OrderItem, Delivery, DeliveryStatus
from fulfillment.services.tracking_service import DriverLocationTracker, PositionFeed

from conftest import make_driver


NOW = datetime(2024, 5, 1, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def feed():
    return PositionFeed()


@pytest.fixture
def tracker(uow, feed):
    return DriverLocationTracker(uow, feed, clock=lambda: NOW)


def add_assigned_order(store, driver, status=DeliveryStatus.ASSIGNED.value):
    order = Order(subtotal=Decimal('20.00'), delivery_fee=Decimal('9.50'), total=Decimal('29.50'),
                  shipping_method='local', delivery_latitude=-34.9100, delivery_longitude=-56.1500)
    store.orders[order.id] = order
    store.order_items[order.id] = [
        OrderItem(order_id=order.id, product_id='p1', product_name='Camiseta', quantity=2,
                  unit_price=Decimal('10.00'), subtotal=Decimal('20.00')),
    ]
    delivery = Delivery(order_id=order.id, driver_id=driver.id, status=status)
    store.deliveries[delivery.id] = delivery
    return order, delivery


class TestReportPosition:

    def test_updates_driver_and_active_deliveries(self, tracker, store, driver):
        _, active = add_assigned_order(store, driver)
        _, finished = add_assigned_order(store, driver, status=DeliveryStatus.DELIVERED.value)

        position = tracker.report_position(driver.id, -34.905, -56.16)

        assert driver.last_location_lat == -34.905
        assert driver.location_updated_at == NOW
        assert active.driver_latitude == -34.905
        assert active.driver_location_updated_at == NOW
        assert finished.driver_latitude is None
        assert position.delivery_ids == (active.id,)

    def test_publishes_on_feed(self, tracker, feed, driver):
        received = []
        callback = feed.subscribe(received.append)
        tracker.report_position(driver.id, -34.9, -56.1)
        feed.unsubscribe(callback)
        tracker.report_position(driver.id, -34.8, -56.0)

        assert len(received) == 1
        assert received[0].driver_id == driver.id
        assert received[0].latitude == -34.9

    def test_failing_subscriber_does_not_break_report(self, tracker, feed, driver):
        def broken(position):
            raise RuntimeError('socket closed')
        feed.subscribe(broken)
        tracker.report_position(driver.id, -34.9, -56.1)
        assert driver.last_location_lat == -34.9

    def test_enable_rejected_for_inactive_driver(self, tracker, store):
        driver = store.add_driver(make_driver(active=False, is_tracking=False))
        with pytest.raises(ValidationError):
            tracker.set_tracking(driver.id, True, -34.9, -56.1)
        assert driver.is_tracking is False
        assert driver.last_location_lat is None

    def test_enable_with_bad_position_changes_nothing(self, tracker, store):
        driver = store.add_driver(make_driver(is_tracking=False))
        with pytest.raises(ValidationError):
            tracker.set_tracking(driver.id, True, 95, 0)
        assert driver.is_tracking is False

    def test_enable_with_position_publishes(self, tracker, feed, store):
        driver = store.add_driver(make_driver(is_tracking=False))
        received = []
        feed.subscribe(received.append)
        tracker.set_tracking(driver.id, True, -34.9, -56.1)
        assert [p.driver_id for p in received] == [driver.id]

    def test_requires_tracking(self, tracker, store):
        driver = store.add_driver(make_driver(is_tracking=False))
        with pytest.raises(ValidationError):
            tracker.report_position(driver.id, -34.9, -56.1)

    def test_requires_active_driver(self, tracker, store):
        driver = store.add_driver(make_driver(active=False))
        with pytest.raises(ValidationError):
            tracker.report_position(driver.id, -34.9, -56.1)

    @pytest.mark.parametrize('lat, lon', [(95, 0), (0, 200), (None, -56.1), ('north', 'west')])
    def test_invalid_coordinates(self, tracker, driver, lat, lon):
        with pytest.raises(ValidationError):
            tracker.report_position(driver.id, lat, lon)

    def test_unknown_driver(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.report_position('missing', -34.9, -56.1)


class TestSetTracking:

    def test_enable_with_position(self, tracker, store):
        driver = store.add_driver(make_driver(is_tracking=False))
        tracker.set_tracking(driver.id, True, -34.9, -56.1)
        assert driver.is_tracking is True
        assert driver.last_location_lat == -34.9

    def test_disable(self, tracker, driver):
        tracker.set_tracking(driver.id, False)
        assert driver.is_tracking is False
        with pytest.raises(ValidationError):
            tracker.report_position(driver.id, -34.9, -56.1)


class TestTrackingView:

    def test_order_without_driver(self, tracker, store, product):
        order = Order(subtotal=Decimal('10.00'), total=Decimal('15.00'), shipping_method='national_flat')
        store.orders[order.id] = order
        delivery = Delivery(order_id=order.id)
        store.deliveries[delivery.id] = delivery

        view = tracker.tracking_view(order.id)
        assert view['order']['status'] == 'pending'
        assert view['delivery']['status'] == 'pending'
        assert view['driver'] is None

    def test_driver_position_with_eta(self, tracker, store, driver):
        order, delivery = add_assigned_order(store, driver)
        tracker.report_position(driver.id, -34.9011, -56.1645)

        view = tracker.tracking_view(order.id, now=NOW + timedelta(minutes=4))
        assert view['items'][0]['product_name'] == 'Camiseta'
        assert view['items'][0]['subtotal'] == 20.0
        assert view['driver']['name'] == 'Driver One'
        assert view['driver']['last_seen'] == '4 min ago'
        assert 1.0 < view['driver']['distance_km'] < 2.0
        assert view['driver']['eta_text'].endswith('min')

    def test_unknown_order(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.tracking_view('missing')
