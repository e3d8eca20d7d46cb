"""Request-scoped wiring shared by the API blueprints."""
from flask import current_app, request

from fulfillment.database import get_session
from fulfillment.exceptions import ValidationError
from fulfillment.repositories import SqlUnitOfWork
from fulfillment.services.cache_service import get_cache
from fulfillment.services.settings_service import SettingsService
from fulfillment.services.status_service import StatusSynchronizer
from fulfillment.services.tracking_service import DriverLocationTracker


def json_body() -> dict:
    """Parsed JSON object of the current request."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def get_uow() -> SqlUnitOfWork:
    return SqlUnitOfWork(get_session())


def get_settings_service(uow) -> SettingsService:
    return SettingsService(uow, get_cache(), ttl=current_app.config.get('CACHE_SETTINGS_TTL', 300))


def get_synchronizer(uow) -> StatusSynchronizer:
    return StatusSynchronizer(uow, current_app.extensions['notifier'])


def get_tracker(uow) -> DriverLocationTracker:
    return DriverLocationTracker(uow, current_app.extensions['position_feed'])
