"""
Store settings blueprint.
Changes take effect on the next request (cached values are invalidated).
"""
from decimal import Decimal

from flask import Blueprint, jsonify, request

from fulfillment.blueprints.common import json_body, get_uow, get_settings_service
from fulfillment.exceptions import ValidationError

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def _settings_response():
    uow = get_uow()
    return jsonify(_jsonable(get_settings_service(uow).describe()))


@settings_bp.route('', methods=['GET'])
def get_settings():
    return _settings_response()


@settings_bp.route('', methods=['PUT'])
def update_settings():
    uow = get_uow()
    get_settings_service(uow).update_settings(json_body())
    return _settings_response()


@settings_bp.route('/shipping-tiers', methods=['PUT'])
def replace_shipping_tiers():
    """Replace the whole tier list: {"shipping_tiers": [{max_weight_kg, price, dimensions?}, ...]}."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        data = data.get('shipping_tiers')
    if not isinstance(data, list):
        raise ValidationError('shipping_tiers must be a list')

    uow = get_uow()
    get_settings_service(uow).replace_tiers(data)
    return _settings_response()
