"""
Status synchronization between Orders and Deliveries.

Changing one side may force the other:

    order shipped      -> delivery in_transit
    order delivered    -> delivery delivered (actual_delivery stamped)
    order cancelled    -> delivery failed
    delivery in_transit -> order shipped (picked_at stamped)
    delivery delivered  -> order delivered (actual_delivery stamped)
    delivery failed     -> order cancelled

Only one direction is applied per call, so there is no ping-pong.
"""
import logging
from collections import namedtuple
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fulfillment.exceptions import (
    FulfillmentError, ValidationError, NotFoundError, InvalidTransitionError,
    AlreadyClaimedError, PersistenceError,
)
from fulfillment.models import (
    Order, Delivery, OrderStatus, DeliveryStatus, ORDER_STATUS_SEQUENCE,
    DELIVERY_STATUS_SEQUENCE, utcnow,
)
from fulfillment.services.notification_service import LoggingNotifier, Notifier, StatusChange

logger = logging.getLogger(__name__)

ORDER = 'order'
DELIVERY = 'delivery'

PAYMENT_APPROVED = 'approved'
PAYMENT_REJECTED = 'rejected'
PAYMENT_PENDING = 'pending'
PAYMENT_OUTCOMES = (PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_PENDING)

# Field updates for each entity; an empty dict leaves the entity untouched
StatusUpdates = namedtuple('StatusUpdates', ['order', 'delivery'])

_ORDER_TO_DELIVERY = {
    OrderStatus.SHIPPED: DeliveryStatus.IN_TRANSIT,
    OrderStatus.DELIVERED: DeliveryStatus.DELIVERED,
    OrderStatus.CANCELLED: DeliveryStatus.FAILED,
}

_DELIVERY_TO_ORDER = {
    DeliveryStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
    DeliveryStatus.FAILED: OrderStatus.CANCELLED,
}


def _delivery_side_effects(status: DeliveryStatus, now: datetime) -> Dict[str, object]:
    if status is DeliveryStatus.IN_TRANSIT:
        return {'picked_at': now}
    if status is DeliveryStatus.DELIVERED:
        return {'actual_delivery': now}
    return {}


def next_statuses(source: str, field: str, new_value, now: datetime) -> StatusUpdates:
    """
    Field updates implied by setting ``field`` of ``source`` to ``new_value``.

    Pure mapping; the current state of either entity is not consulted.
    """
    if field != 'status':
        raise ValidationError(f'Unsupported field: {field}')

    if source == ORDER:
        status = _parse(OrderStatus, new_value)
        forced = _ORDER_TO_DELIVERY.get(status)
        delivery = {}
        if forced is DeliveryStatus.DELIVERED:
            delivery = {'status': forced.value, 'actual_delivery': now}
        elif forced is not None:
            delivery = {'status': forced.value}
        return StatusUpdates({'status': status.value}, delivery)

    if source == DELIVERY:
        status = _parse(DeliveryStatus, new_value)
        forced = _DELIVERY_TO_ORDER.get(status)
        order = {'status': forced.value} if forced is not None else {}
        return StatusUpdates(order, {'status': status.value, **_delivery_side_effects(status, now)})

    raise ValidationError(f'Unknown source: {source}')


def _parse(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f'Invalid status: {value}')


def is_forward(current: OrderStatus, new: OrderStatus) -> bool:
    """Cancellation is always forward; otherwise compare lifecycle positions."""
    if new is OrderStatus.CANCELLED:
        return True
    if current is OrderStatus.CANCELLED:
        return False
    return ORDER_STATUS_SEQUENCE.index(new) > ORDER_STATUS_SEQUENCE.index(current)


def _is_delivery_forward(current: DeliveryStatus, new: DeliveryStatus) -> bool:
    if new is DeliveryStatus.FAILED:
        return True
    if current is DeliveryStatus.FAILED:
        return False
    return DELIVERY_STATUS_SEQUENCE.index(new) > DELIVERY_STATUS_SEQUENCE.index(current)


class StatusSynchronizer:
    """Applies status changes through a unit of work and notifies afterwards."""

    def __init__(self, uow, notifier: Optional[Notifier] = None, clock: Callable[[], datetime] = utcnow):
        self.uow = uow
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

    # Lookups

    def _get_order(self, order_id: str) -> Order:
        order = self.uow.orders.get(order_id)
        if order is None:
            raise NotFoundError(f'Order {order_id} not found')
        return order

    def _get_delivery(self, delivery_id: str) -> Delivery:
        delivery = self.uow.deliveries.get(delivery_id)
        if delivery is None:
            raise NotFoundError(f'Delivery {delivery_id} not found')
        return delivery

    # Operations

    def set_order_status(self, order_id: str, new_status) -> Order:
        status = _parse(OrderStatus, new_status)
        order = self._get_order(order_id)
        self._transition_order(order, status)
        return order

    def set_delivery_status(self, delivery_id: str, new_status) -> Delivery:
        status = _parse(DeliveryStatus, new_status)
        delivery = self._get_delivery(delivery_id)
        current = DeliveryStatus(delivery.status)
        if status is current:
            return delivery

        order = self._get_order(delivery.order_id)
        if order.is_terminal:
            raise InvalidTransitionError(f'Order {order.id} is {order.status} and can no longer change')
        if delivery.is_terminal:
            raise InvalidTransitionError(f'Delivery {delivery.id} is {delivery.status} and can no longer change')
        if not _is_delivery_forward(current, status):
            raise InvalidTransitionError(f'Delivery cannot go from {current.value} to {status.value}')
        if status is DeliveryStatus.ASSIGNED:
            raise InvalidTransitionError('Deliveries are assigned by claiming them')
        if status is DeliveryStatus.IN_TRANSIT and not delivery.driver_id:
            raise InvalidTransitionError('A delivery needs a driver before it can be in transit')

        now = self.clock()
        updates = next_statuses(DELIVERY, 'status', status.value, now)
        changes = []
        try:
            self.uow.deliveries.update(delivery, updates.delivery)
            changes.append(StatusChange(DELIVERY, delivery.id, current.value, status.value,
                                        {'order_id': order.id}))
            forced = updates.order.get('status')
            if forced and forced != order.status and is_forward(OrderStatus(order.status), OrderStatus(forced)):
                previous = order.status
                self.uow.orders.update(order, updates.order)
                changes.append(StatusChange(ORDER, order.id, previous, forced, {'delivery_id': delivery.id}))
            self.uow.commit()
        except FulfillmentError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to update delivery {delivery.id} status")
            raise PersistenceError('Failed to update delivery status') from e

        logger.info(f"Delivery {delivery.id}: {current.value} -> {status.value}")
        self._notify(changes, delivery)
        return delivery

    def claim_delivery(self, delivery_id: str, driver_id: str) -> Delivery:
        driver = self.uow.drivers.get(driver_id)
        if driver is None:
            raise NotFoundError(f'Driver {driver_id} not found')
        if not driver.active:
            raise ValidationError('Driver is not active')

        delivery = self._get_delivery(delivery_id)
        if delivery.is_terminal:
            raise InvalidTransitionError(f'Delivery {delivery.id} is {delivery.status} and can no longer change')
        previous = delivery.status

        try:
            claimed = self.uow.deliveries.claim(delivery.id, driver.id, self.clock())
            if not claimed:
                raise AlreadyClaimedError(delivery.id)
            self.uow.commit()
        except FulfillmentError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to claim delivery {delivery.id}")
            raise PersistenceError('Failed to claim delivery') from e

        logger.info(f"Delivery {delivery.id} claimed by driver {driver.id}")
        self._notify(
            [StatusChange(DELIVERY, delivery.id, previous, DeliveryStatus.ASSIGNED.value,
                          {'order_id': delivery.order_id, 'driver_id': driver.id,
                           'driver_name': driver.full_name})],
            delivery,
        )
        return delivery

    def apply_payment_outcome(self, order_id: str, outcome: str, payment_reference: Optional[str] = None) -> Order:
        """
        Map a payment collaborator result onto the order.

        Only pending orders move; anything else is acknowledged unchanged so
        repeated or late callbacks are harmless.
        """
        if outcome not in PAYMENT_OUTCOMES:
            raise ValidationError(f'Invalid payment outcome: {outcome}')
        order = self._get_order(order_id)

        if outcome == PAYMENT_PENDING:
            logger.info(f"Payment pending for order {order.id}")
            return order
        if order.status != OrderStatus.PENDING.value:
            logger.info(f"Payment {outcome} for order {order.id} acknowledged, order already {order.status}")
            return order

        if outcome == PAYMENT_APPROVED:
            extra = {'payment_reference': payment_reference} if payment_reference else {}
            self._transition_order(order, OrderStatus.PAID, extra)
        else:
            self._transition_order(order, OrderStatus.CANCELLED)
        return order

    # Internals

    def _transition_order(self, order: Order, status: OrderStatus, extra: Optional[Dict[str, object]] = None) -> None:
        current = OrderStatus(order.status)
        if status is current:
            return
        if order.is_terminal:
            raise InvalidTransitionError(f'Order {order.id} is {order.status} and can no longer change')
        if not is_forward(current, status):
            raise InvalidTransitionError(f'Order cannot go from {current.value} to {status.value}')

        now = self.clock()
        updates = next_statuses(ORDER, 'status', status.value, now)
        delivery = self.uow.deliveries.get_for_order(order.id)
        changes = []
        try:
            self.uow.orders.update(order, {**updates.order, **(extra or {})})
            changes.append(StatusChange(ORDER, order.id, current.value, status.value, {}))
            # Terminal deliveries keep their final state
            if delivery is not None and updates.delivery and not delivery.is_terminal:
                previous = delivery.status
                if updates.delivery['status'] != previous:
                    self.uow.deliveries.update(delivery, updates.delivery)
                    changes.append(StatusChange(DELIVERY, delivery.id, previous,
                                                updates.delivery['status'], {'order_id': order.id}))
            self.uow.commit()
        except FulfillmentError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.exception(f"Failed to update order {order.id} status")
            raise PersistenceError('Failed to update order status') from e

        logger.info(f"Order {order.id}: {current.value} -> {status.value}")
        self._notify(changes, delivery)

    def _notify(self, changes: List[StatusChange], delivery: Optional[Delivery]) -> None:
        """Tell the notifier; failures are logged and never undo the change."""
        delivered = True
        for change in changes:
            try:
                self.notifier.notify(change)
            except Exception:
                delivered = False
                logger.exception(f"Notification failed for {change.entity} {change.entity_id} ({change.new})")

        if not delivered or delivery is None:
            return
        try:
            self.uow.deliveries.update(delivery, {
                'last_notification_status': delivery.status,
                'last_notification_at': self.clock(),
            })
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            logger.exception(f"Could not record notification for delivery {delivery.id}")
