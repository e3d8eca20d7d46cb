"""
Integration tests for the SQLAlchemy repositories.
"""

from datetime import datetime, timezone
from decimal import Decimal

from fulfillment.models import Order, Delivery, ProductVariant
from fulfillment.repositories import SqlUnitOfWork

from conftest import make_product, make_driver


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def add_order(uow):
    order = uow.orders.add(Order(subtotal=Decimal('10'), total=Decimal('10'), shipping_method='pickup'))
    delivery = uow.deliveries.add(Delivery(order_id=order.id))
    uow.commit()
    return order.id, delivery.id


class TestProductRepo:

    def test_conditional_decrement(self, session, db_product):
        uow = SqlUnitOfWork(session)
        assert uow.products.decrement_stock(db_product, 11) is False
        assert uow.products.decrement_stock(db_product, 4) is True
        uow.commit()
        assert uow.products.current_stock(db_product) == 6

    def test_variant_decrement(self, session):
        product = make_product(stock=0)
        product.variants = [ProductVariant(size='S', stock=2)]
        session.add(product)
        session.commit()
        variant_id = product.variants[0].id

        uow = SqlUnitOfWork(session)
        assert uow.products.decrement_variant_stock(variant_id, 3) is False
        assert uow.products.decrement_variant_stock(variant_id, 2) is True
        assert uow.products.current_stock(product.id, variant_id) == 0

    def test_get_many_loads_variants(self, session, db_product):
        uow = SqlUnitOfWork(session)
        found = uow.products.get_many([db_product, 'missing'])
        assert list(found) == [db_product]
        assert found[db_product].active_variants == []


class TestDeliveryRepo:

    def test_claim_is_compare_and_swap(self, session):
        first = make_driver()
        second = make_driver(user_id='user-2', full_name='Driver Two')
        session.add_all([first, second])
        session.commit()
        first_id, second_id = first.id, second.id

        uow = SqlUnitOfWork(session)
        _, delivery_id = add_order(uow)

        assert uow.deliveries.claim(delivery_id, first_id, NOW) is True
        assert uow.deliveries.claim(delivery_id, second_id, NOW) is False
        uow.commit()

        delivery = uow.deliveries.get(delivery_id)
        assert delivery.driver_id == first_id
        assert delivery.status == 'assigned'
        assert [d.id for d in uow.deliveries.active_for_driver(first_id)] == [delivery_id]

    def test_savepoint_keeps_outer_writes(self, session):
        uow = SqlUnitOfWork(session)
        order_id, _ = add_order(uow)

        order = uow.orders.get(order_id)
        uow.orders.update(order, {'notes': 'kept'})
        try:
            with uow.savepoint():
                # order_id is unique on deliveries
                uow.deliveries.add(Delivery(order_id=order_id))
        except Exception:
            pass
        uow.commit()

        assert uow.orders.get(order_id).notes == 'kept'
        assert session.query(Delivery).filter_by(order_id=order_id).count() == 1


class TestSettingsRepo:

    def test_tiers_sorted_and_replaced(self, session, db_settings):
        uow = SqlUnitOfWork(session)
        assert [t.max_weight_kg for t in uow.settings.list_tiers()] == [Decimal('1.0'), Decimal('2.0')]
        assert uow.settings.get_settings().store_name == 'Tienda Test'
