"""
Status change notifications.

Notifiers are told about committed status changes. They never take part in
the transaction: a failing notifier is logged by the caller and the change
stands.
"""
import logging
from collections import namedtuple
from typing import Protocol

from fulfillment.utils.formatters import mask_phone

logger = logging.getLogger(__name__)

# entity is 'order' or 'delivery'
StatusChange = namedtuple('StatusChange', ['entity', 'entity_id', 'previous', 'new', 'payload'])


class Notifier(Protocol):

    def notify(self, change: StatusChange) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes each change to the application log."""

    def notify(self, change: StatusChange) -> None:
        payload = dict(change.payload or {})
        if 'phone' in payload:
            payload['phone'] = mask_phone(payload['phone'])
        logger.info(
            f"[NOTIFY] {change.entity} {change.entity_id}: {change.previous} -> {change.new} {payload}"
        )


class FanoutNotifier:
    """Forward every change to several notifiers in order; the first failure propagates."""

    def __init__(self, *notifiers):
        self.notifiers = list(notifiers)

    def notify(self, change: StatusChange) -> None:
        for notifier in self.notifiers:
            notifier.notify(change)
