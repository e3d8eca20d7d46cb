"""
In-memory implementation of the repositories.

Used by the unit tests and for local experiments without a database. There is
no real transaction here: every write registers a compensating action and
``rollback`` replays them newest first (best-effort compensation). Conditional
writes run under the store lock so compare-and-swap semantics match the SQL
implementation.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from fulfillment.models import (
    Product, ProductVariant, Customer, Order, OrderItem, Delivery, Driver,
    ShippingTier, StoreSettings, DeliveryStatus,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Shared tables; several units of work may operate on one store."""

    def __init__(self):
        self.lock = threading.RLock()
        self.products: Dict[str, Product] = {}
        self.variants: Dict[str, ProductVariant] = {}
        self.customers: Dict[str, Customer] = {}
        self.orders: Dict[str, Order] = {}
        self.order_items: Dict[str, List[OrderItem]] = {}
        self.deliveries: Dict[str, Delivery] = {}
        self.drivers: Dict[str, Driver] = {}
        self.settings: Optional[StoreSettings] = None
        self.tiers: List[ShippingTier] = []

    def add_product(self, product: Product) -> Product:
        """Seed a product and its variants."""
        with self.lock:
            self.products[product.id] = product
            for variant in product.variants or []:
                variant.product_id = product.id
                self.variants[variant.id] = variant
        return product

    def add_driver(self, driver: Driver) -> Driver:
        with self.lock:
            self.drivers[driver.id] = driver
        return driver


class _Repo:

    def __init__(self, store: InMemoryStore, undo: Callable[[Callable[[], None]], None]):
        self.store = store
        self._undo = undo

    def _apply(self, entity, values: Dict[str, object]):
        """Set attributes and register the restore of the previous values."""
        with self.store.lock:
            previous = {key: getattr(entity, key) for key in values}
            for key, value in values.items():
                setattr(entity, key, value)

        def restore():
            with self.store.lock:
                for key, value in previous.items():
                    setattr(entity, key, value)
        self._undo(restore)
        return entity


class InMemoryProductRepo(_Repo):

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        with self.store.lock:
            return {pid: self.store.products[pid] for pid in set(product_ids) if pid in self.store.products}

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return self.store.variants.get(variant_id)

    def current_stock(self, product_id: str, variant_id: Optional[str] = None) -> int:
        if variant_id:
            variant = self.store.variants.get(variant_id)
            return variant.stock if variant else 0
        product = self.store.products.get(product_id)
        return product.stock if product else 0

    def _decrement(self, entity, quantity: int) -> bool:
        with self.store.lock:
            if entity is None or entity.stock < quantity:
                return False
            entity.stock -= quantity

            def restore():
                with self.store.lock:
                    entity.stock += quantity
            self._undo(restore)
            return True

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        return self._decrement(self.store.products.get(product_id), quantity)

    def decrement_variant_stock(self, variant_id: str, quantity: int) -> bool:
        return self._decrement(self.store.variants.get(variant_id), quantity)


class InMemoryCustomerRepo(_Repo):

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        with self.store.lock:
            for customer in self.store.customers.values():
                if customer.phone == phone:
                    return customer
        return None

    def add(self, customer: Customer) -> Customer:
        with self.store.lock:
            if self.get_by_phone(customer.phone):
                raise ValueError(f'duplicate customer phone {customer.phone}')
            self.store.customers[customer.id] = customer
        self._undo(lambda: self.store.customers.pop(customer.id, None))
        return customer

    def update(self, customer: Customer, values: Dict[str, object]) -> Customer:
        return self._apply(customer, values)


class InMemoryOrderRepo(_Repo):

    def add(self, order: Order) -> Order:
        with self.store.lock:
            self.store.orders[order.id] = order
        self._undo(lambda: self.delete(order.id))
        return order

    def add_items(self, order: Order, items: List[OrderItem]) -> None:
        for item in items:
            item.order_id = order.id
        with self.store.lock:
            self.store.order_items.setdefault(order.id, []).extend(items)

        def remove():
            with self.store.lock:
                kept = [i for i in self.store.order_items.get(order.id, []) if i not in items]
                self.store.order_items[order.id] = kept
        self._undo(remove)

    def get(self, order_id: str) -> Optional[Order]:
        return self.store.orders.get(order_id)

    def get_items(self, order_id: str) -> List[OrderItem]:
        return list(self.store.order_items.get(order_id, []))

    def update(self, order: Order, values: Dict[str, object]) -> Order:
        return self._apply(order, values)

    def delete(self, order_id: str) -> None:
        with self.store.lock:
            self.store.orders.pop(order_id, None)
            self.store.order_items.pop(order_id, None)
            for delivery_id, delivery in list(self.store.deliveries.items()):
                if delivery.order_id == order_id:
                    del self.store.deliveries[delivery_id]


class InMemoryDeliveryRepo(_Repo):

    def add(self, delivery: Delivery) -> Delivery:
        with self.store.lock:
            if self.get_for_order(delivery.order_id):
                raise ValueError(f'order {delivery.order_id} already has a delivery')
            self.store.deliveries[delivery.id] = delivery
        self._undo(lambda: self.store.deliveries.pop(delivery.id, None))
        return delivery

    def get(self, delivery_id: str) -> Optional[Delivery]:
        return self.store.deliveries.get(delivery_id)

    def get_for_order(self, order_id: str) -> Optional[Delivery]:
        with self.store.lock:
            for delivery in self.store.deliveries.values():
                if delivery.order_id == order_id:
                    return delivery
        return None

    def claim(self, delivery_id: str, driver_id: str, now: datetime) -> bool:
        with self.store.lock:
            delivery = self.store.deliveries.get(delivery_id)
            if delivery is None or delivery.driver_id is not None:
                return False
            previous_status = delivery.status
            delivery.driver_id = driver_id
            delivery.status = DeliveryStatus.ASSIGNED.value
            delivery.updated_at = now

            def release():
                with self.store.lock:
                    delivery.driver_id = None
                    delivery.status = previous_status
            self._undo(release)
            return True

    def active_for_driver(self, driver_id: str) -> List[Delivery]:
        with self.store.lock:
            return [
                d for d in self.store.deliveries.values()
                if d.driver_id == driver_id and not d.is_terminal
            ]

    def update(self, delivery: Delivery, values: Dict[str, object]) -> Delivery:
        return self._apply(delivery, values)


class InMemoryDriverRepo(_Repo):

    def get(self, driver_id: str) -> Optional[Driver]:
        return self.store.drivers.get(driver_id)

    def update(self, driver: Driver, values: Dict[str, object]) -> Driver:
        return self._apply(driver, values)


class InMemorySettingsRepo(_Repo):

    def get_settings(self) -> Optional[StoreSettings]:
        return self.store.settings

    def save_settings(self, settings: StoreSettings) -> StoreSettings:
        previous = self.store.settings
        self.store.settings = settings

        def restore():
            self.store.settings = previous
        self._undo(restore)
        return settings

    def list_tiers(self) -> List[ShippingTier]:
        # Storage order on purpose; callers sort
        return list(self.store.tiers)

    def replace_tiers(self, tiers: List[ShippingTier]) -> None:
        previous = self.store.tiers
        self.store.tiers = list(tiers)

        def restore():
            self.store.tiers = previous
        self._undo(restore)


class InMemoryUnitOfWork:
    """Repositories over an InMemoryStore with compensating rollback."""

    def __init__(self, store: Optional[InMemoryStore] = None):
        self.store = store or InMemoryStore()
        self._compensations: List[Callable[[], None]] = []
        self.products = InMemoryProductRepo(self.store, self._register)
        self.customers = InMemoryCustomerRepo(self.store, self._register)
        self.orders = InMemoryOrderRepo(self.store, self._register)
        self.deliveries = InMemoryDeliveryRepo(self.store, self._register)
        self.drivers = InMemoryDriverRepo(self.store, self._register)
        self.settings = InMemorySettingsRepo(self.store, self._register)

    def _register(self, compensation: Callable[[], None]) -> None:
        self._compensations.append(compensation)

    def commit(self) -> None:
        self._compensations.clear()

    def rollback(self) -> None:
        self._unwind(0)

    def _unwind(self, mark: int) -> None:
        while len(self._compensations) > mark:
            compensation = self._compensations.pop()
            try:
                compensation()
            except Exception:
                # Nothing else can undo this write; leave a trace for manual reconciliation
                logger.exception("[RECONCILE] Compensating action failed, store may be inconsistent")

    @contextmanager
    def savepoint(self):
        mark = len(self._compensations)
        try:
            yield self
        except Exception:
            self._unwind(mark)
            raise
