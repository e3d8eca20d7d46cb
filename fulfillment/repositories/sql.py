"""SQLAlchemy implementation of the repositories."""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from fulfillment.models import (
    Product, ProductVariant, Customer, Order, OrderItem, Delivery, Driver,
    ShippingTier, StoreSettings, DeliveryStatus, TERMINAL_DELIVERY_STATUSES,
)

logger = logging.getLogger(__name__)


def _apply(session: Session, entity, values: Dict[str, object]):
    """Set attributes on a persistent entity and flush."""
    for key, value in values.items():
        setattr(entity, key, value)
    session.flush()
    return entity


class SqlProductRepo:

    def __init__(self, session: Session):
        self.session = session

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        products = (
            self.session.query(Product)
            .options(selectinload(Product.variants))
            .filter(Product.id.in_(ids))
            .all()
        )
        return {p.id: p for p in products}

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return self.session.query(ProductVariant).filter_by(id=variant_id).first()

    def current_stock(self, product_id: str, variant_id: Optional[str] = None) -> int:
        if variant_id:
            value = self.session.query(ProductVariant.stock).filter_by(id=variant_id).scalar()
        else:
            value = self.session.query(Product.stock).filter_by(id=product_id).scalar()
        return int(value or 0)

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        # Single conditional write: check-and-decrement cannot interleave
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1

    def decrement_variant_stock(self, variant_id: str, quantity: int) -> bool:
        result = self.session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1


class SqlCustomerRepo:

    def __init__(self, session: Session):
        self.session = session

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        return self.session.query(Customer).filter_by(phone=phone).first()

    def add(self, customer: Customer) -> Customer:
        self.session.add(customer)
        self.session.flush()
        return customer

    def update(self, customer: Customer, values: Dict[str, object]) -> Customer:
        return _apply(self.session, customer, values)


class SqlOrderRepo:

    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def add_items(self, order: Order, items: List[OrderItem]) -> None:
        for item in items:
            item.order_id = order.id
            self.session.add(item)
        self.session.flush()

    def get(self, order_id: str) -> Optional[Order]:
        return self.session.query(Order).filter_by(id=order_id).first()

    def get_items(self, order_id: str) -> List[OrderItem]:
        return self.session.query(OrderItem).filter_by(order_id=order_id).all()

    def update(self, order: Order, values: Dict[str, object]) -> Order:
        return _apply(self.session, order, values)


class SqlDeliveryRepo:

    def __init__(self, session: Session):
        self.session = session

    def add(self, delivery: Delivery) -> Delivery:
        self.session.add(delivery)
        self.session.flush()
        return delivery

    def get(self, delivery_id: str) -> Optional[Delivery]:
        return self.session.query(Delivery).filter_by(id=delivery_id).first()

    def get_for_order(self, order_id: str) -> Optional[Delivery]:
        return self.session.query(Delivery).filter_by(order_id=order_id).first()

    def claim(self, delivery_id: str, driver_id: str, now: datetime) -> bool:
        result = self.session.execute(
            update(Delivery)
            .where(Delivery.id == delivery_id, Delivery.driver_id.is_(None))
            .values(driver_id=driver_id, status=DeliveryStatus.ASSIGNED.value, updated_at=now)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1

    def active_for_driver(self, driver_id: str) -> List[Delivery]:
        terminal = [s.value for s in TERMINAL_DELIVERY_STATUSES]
        return (
            self.session.query(Delivery)
            .filter(Delivery.driver_id == driver_id, Delivery.status.notin_(terminal))
            .all()
        )

    def update(self, delivery: Delivery, values: Dict[str, object]) -> Delivery:
        return _apply(self.session, delivery, values)


class SqlDriverRepo:

    def __init__(self, session: Session):
        self.session = session

    def get(self, driver_id: str) -> Optional[Driver]:
        return self.session.query(Driver).filter_by(id=driver_id).first()

    def update(self, driver: Driver, values: Dict[str, object]) -> Driver:
        return _apply(self.session, driver, values)


class SqlSettingsRepo:

    def __init__(self, session: Session):
        self.session = session

    def get_settings(self) -> Optional[StoreSettings]:
        return self.session.query(StoreSettings).order_by(StoreSettings.updated_at).first()

    def save_settings(self, settings: StoreSettings) -> StoreSettings:
        if settings not in self.session:
            self.session.add(settings)
        self.session.flush()
        return settings

    def list_tiers(self) -> List[ShippingTier]:
        return self.session.query(ShippingTier).order_by(ShippingTier.max_weight_kg).all()

    def replace_tiers(self, tiers: List[ShippingTier]) -> None:
        self.session.query(ShippingTier).delete(synchronize_session=False)
        self.session.add_all(tiers)
        self.session.flush()


class SqlUnitOfWork:
    """Repositories bound to one SQLAlchemy session (one real transaction)."""

    def __init__(self, session: Session):
        self.session = session
        self.products = SqlProductRepo(session)
        self.customers = SqlCustomerRepo(session)
        self.orders = SqlOrderRepo(session)
        self.deliveries = SqlDeliveryRepo(session)
        self.drivers = SqlDriverRepo(session)
        self.settings = SqlSettingsRepo(session)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def savepoint(self):
        return self.session.begin_nested()
