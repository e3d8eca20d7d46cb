"""Repository interfaces injected into the fulfillment services."""
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from fulfillment.models import (
    Product, ProductVariant, Customer, Order, OrderItem, Delivery, Driver,
    ShippingTier, StoreSettings,
)


class ProductRepo(Protocol):
    """Catalog access plus compare-and-swap stock decrements."""

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """Products by id; unknown ids are simply absent from the result."""
        ...

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        ...

    def current_stock(self, product_id: str, variant_id: Optional[str] = None) -> int:
        ...

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Subtract ``quantity`` only if enough stock remains. True when applied."""
        ...

    def decrement_variant_stock(self, variant_id: str, quantity: int) -> bool:
        ...


class CustomerRepo(Protocol):

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        ...

    def add(self, customer: Customer) -> Customer:
        ...

    def update(self, customer: Customer, values: Dict[str, object]) -> Customer:
        ...


class OrderRepo(Protocol):

    def add(self, order: Order) -> Order:
        ...

    def add_items(self, order: Order, items: List[OrderItem]) -> None:
        ...

    def get(self, order_id: str) -> Optional[Order]:
        ...

    def get_items(self, order_id: str) -> List[OrderItem]:
        ...

    def update(self, order: Order, values: Dict[str, object]) -> Order:
        ...


class DeliveryRepo(Protocol):

    def add(self, delivery: Delivery) -> Delivery:
        ...

    def get(self, delivery_id: str) -> Optional[Delivery]:
        ...

    def get_for_order(self, order_id: str) -> Optional[Delivery]:
        ...

    def claim(self, delivery_id: str, driver_id: str, now: datetime) -> bool:
        """Assign the driver only while ``driver_id`` is still null. True when applied."""
        ...

    def active_for_driver(self, driver_id: str) -> List[Delivery]:
        """Deliveries assigned to the driver whose status is not terminal."""
        ...

    def update(self, delivery: Delivery, values: Dict[str, object]) -> Delivery:
        ...


class DriverRepo(Protocol):

    def get(self, driver_id: str) -> Optional[Driver]:
        ...

    def update(self, driver: Driver, values: Dict[str, object]) -> Driver:
        ...


class SettingsRepo(Protocol):

    def get_settings(self) -> Optional[StoreSettings]:
        ...

    def save_settings(self, settings: StoreSettings) -> StoreSettings:
        ...

    def list_tiers(self) -> List[ShippingTier]:
        ...

    def replace_tiers(self, tiers: List[ShippingTier]) -> None:
        ...


class UnitOfWork(Protocol):
    """
    Group of repositories sharing one transaction.

    ``rollback`` discards every write since the last ``commit``; ``savepoint``
    scopes a block whose failure only discards the block's own writes.
    """

    products: ProductRepo
    customers: CustomerRepo
    orders: OrderRepo
    deliveries: DeliveryRepo
    drivers: DriverRepo
    settings: SettingsRepo

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def savepoint(self) -> AbstractContextManager:
        ...
