"""
Unit tests for order assembly over the in-memory repositories.
"""

import threading
import pytest
from decimal import Decimal

from fulfillment.exceptions import (
    ValidationError, ShippingUnavailableError, InsufficientStockError, UnknownProductError, PersistenceError,
)
from fulfillment.models import OrderStatus, DeliveryStatus
from fulfillment.repositories import InMemoryUnitOfWork
from fulfillment.services.cache_service import CacheService
from fulfillment.services.order_service import OrderAssemblyService, validate_order_request
from fulfillment.services.settings_service import SettingsService

from conftest import make_product, order_request


def three_km(a, b):
    return 3.0


@pytest.fixture
def service(uow, settings_service, store_settings):
    return OrderAssemblyService(uow, settings_service, distance_fn=three_km)


class TestValidateOrderRequest:

    def test_normalizes_request(self):
        request = validate_order_request(order_request([{'product_id': 'p1', 'quantity': 2}]))
        assert request['items'] == [{'product_id': 'p1', 'quantity': 2, 'variant_id': None}]
        assert request['shipping_method'].value == 'local'

    @pytest.mark.parametrize('items', [[], None, [{'product_id': 'p1', 'quantity': 0}],
                                       [{'product_id': 'p1', 'quantity': 1000}],
                                       [{'product_id': 'p1', 'quantity': '2'}],
                                       [{'quantity': 1}]])
    def test_invalid_items(self, items):
        with pytest.raises(ValidationError):
            validate_order_request(order_request(items))

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            validate_order_request(order_request([{'product_id': 'p1', 'quantity': 1}], name='x' * 101))

    def test_phone_required(self):
        with pytest.raises(ValidationError):
            validate_order_request(order_request([{'product_id': 'p1', 'quantity': 1}], phone=''))

    def test_unknown_shipping_method(self):
        with pytest.raises(ValidationError):
            validate_order_request(order_request([{'product_id': 'p1', 'quantity': 1}], method='teleport'))

    def test_notes_length(self):
        body = order_request([{'product_id': 'p1', 'quantity': 1}])
        body['notes'] = 'n' * 501
        with pytest.raises(ValidationError):
            validate_order_request(body)


class TestCreateOrder:

    def test_local_order_totals(self, service, uow, store, product):
        result = service.create_order(order_request([{'product_id': product.id, 'quantity': 2}]))

        assert result.subtotal == Decimal('20.00')
        assert result.delivery_fee == Decimal('9.50')
        assert result.total == Decimal('29.50')

        order = uow.orders.get(result.order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.delivery_distance == 3.0
        assert product.stock == 8

        items = uow.orders.get_items(order.id)
        assert len(items) == 1
        assert items[0].unit_price == Decimal('10.00')

        delivery = uow.deliveries.get_for_order(order.id)
        assert delivery.status == DeliveryStatus.PENDING.value
        assert delivery.driver_id is None

    def test_client_distance_is_ignored(self, service, uow, product):
        body = order_request([{'product_id': product.id, 'quantity': 1}])
        body['delivery']['distance'] = 0.1
        result = service.create_order(body)
        assert uow.orders.get(result.order_id).delivery_distance == 3.0

    def test_local_beyond_cap_rejected_before_writes(self, uow, settings_service, store_settings, store, product):
        service = OrderAssemblyService(uow, settings_service, distance_fn=lambda a, b: 6.0)
        with pytest.raises(ShippingUnavailableError):
            service.create_order(order_request([{'product_id': product.id, 'quantity': 1}]))
        assert store.orders == {}
        assert store.customers == {}
        assert product.stock == 10

    def test_just_over_cap_rejected(self, uow, settings_service, store_settings, store, product):
        service = OrderAssemblyService(uow, settings_service, distance_fn=lambda a, b: 4.0004)
        with pytest.raises(ShippingUnavailableError):
            service.create_order(order_request([{'product_id': product.id, 'quantity': 1}]))
        assert store.orders == {}

    def test_local_requires_location(self, service, product):
        body = order_request([{'product_id': product.id, 'quantity': 1}], latitude=0, longitude=0)
        with pytest.raises(ShippingUnavailableError):
            service.create_order(body)

    def test_international_fee_converted(self, service, uow, product):
        # 3 x 0.3 kg = 0.9 kg -> first tier, 200 at the default rate of 8.5
        result = service.create_order(
            order_request([{'product_id': product.id, 'quantity': 3}], method='international_tiered')
        )
        assert result.delivery_fee == Decimal('23.53')
        assert result.total == Decimal('53.53')

    def test_pickup_needs_eligible_product(self, service, store, product):
        with pytest.raises(ShippingUnavailableError):
            service.create_order(order_request([{'product_id': product.id, 'quantity': 1}], method='pickup'))

        pickup = store.add_product(make_product(name='Taza', pickup_enabled=True))
        result = service.create_order(order_request([{'product_id': pickup.id, 'quantity': 1}], method='pickup'))
        assert result.delivery_fee == Decimal('0.00')

    def test_customer_upserted_by_phone(self, service, store, product):
        service.create_order(order_request([{'product_id': product.id, 'quantity': 1}]))
        service.create_order(order_request([{'product_id': product.id, 'quantity': 1}], name='Ana María'))
        assert len(store.customers) == 1
        assert list(store.customers.values())[0].name == 'Ana María'

    def test_customer_location_from_delivery_point(self, service, store, product):
        service.create_order(order_request([{'product_id': product.id, 'quantity': 1}],
                                           latitude=-34.88, longitude=-56.15))
        customer = list(store.customers.values())[0]
        assert (customer.latitude, customer.longitude) == (-34.88, -56.15)

        service.create_order(order_request([{'product_id': product.id, 'quantity': 1}],
                                           latitude=-34.87, longitude=-56.14))
        assert (customer.latitude, customer.longitude) == (-34.87, -56.14)

    def test_customer_location_sent_explicitly_wins(self, service, store, product):
        body = order_request([{'product_id': product.id, 'quantity': 1}], latitude=-34.88, longitude=-56.15)
        body['customer'].update({'latitude': -34.91, 'longitude': -56.17})
        service.create_order(body)
        customer = list(store.customers.values())[0]
        assert (customer.latitude, customer.longitude) == (-34.91, -56.17)

    def test_unknown_product(self, service, store):
        with pytest.raises(UnknownProductError):
            service.create_order(order_request([{'product_id': 'nope', 'quantity': 1}]))
        assert store.orders == {}

    def test_variant_line(self, service, uow, variant_product):
        variant = variant_product.active_variants[0]
        result = service.create_order(order_request(
            [{'product_id': variant_product.id, 'variant_id': variant.id, 'quantity': 2}]
        ))
        assert result.subtotal == Decimal('45.00')
        assert variant.stock == 1
        assert variant_product.stock == 0


class TestAtomicity:

    def test_stock_race_rolls_back_everything(self, service, uow, store, product):
        other = store.add_product(make_product(name='Gorra', stock=5))

        # Stock disappears between pricing and the conditional decrement
        real_decrement = uow.products.decrement_stock

        def decrement(product_id, quantity):
            if product_id == other.id:
                other.stock = 0
            return real_decrement(product_id, quantity)
        uow.products.decrement_stock = decrement

        with pytest.raises(InsufficientStockError) as exc:
            service.create_order(order_request([
                {'product_id': product.id, 'quantity': 2},
                {'product_id': other.id, 'quantity': 1},
            ]))

        assert 'Available: 0' in exc.value.message
        assert product.stock == 10
        assert store.orders == {}
        assert store.customers == {}
        assert store.deliveries == {}

    def test_delivery_failure_does_not_fail_order(self, service, uow, store, product):
        def broken_add(delivery):
            raise RuntimeError('deliveries table unavailable')
        uow.deliveries.add = broken_add

        result = service.create_order(order_request([{'product_id': product.id, 'quantity': 1}]))
        assert result.order_id in store.orders
        assert store.deliveries == {}
        assert product.stock == 9

    def test_unexpected_failure_becomes_persistence_error(self, service, uow, store, product):
        def broken_add_items(order, items):
            raise RuntimeError('disk full')
        uow.orders.add_items = broken_add_items

        with pytest.raises(PersistenceError):
            service.create_order(order_request([{'product_id': product.id, 'quantity': 1}]))
        assert store.orders == {}
        assert product.stock == 10

    def test_concurrent_orders_for_last_unit(self, store, store_settings):
        last = store.add_product(make_product(stock=1))
        outcomes = []
        barrier = threading.Barrier(2)

        def place(phone):
            uow = InMemoryUnitOfWork(store)
            service = OrderAssemblyService(uow, SettingsService(uow, CacheService()), distance_fn=three_km)
            barrier.wait()
            try:
                service.create_order(order_request([{'product_id': last.id, 'quantity': 1}], phone=phone))
                outcomes.append('ok')
            except InsufficientStockError:
                outcomes.append('insufficient')

        threads = [threading.Thread(target=place, args=(f'+5989900000{i}',)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ['insufficient', 'ok']
        assert last.stock == 0
        assert len(store.orders) == 1
