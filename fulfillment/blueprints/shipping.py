"""
Shipping blueprint: checkout quote for every method.
"""
from flask import Blueprint, jsonify, current_app

from fulfillment.blueprints.common import json_body, get_uow, get_settings_service
from fulfillment.services.order_service import OrderAssemblyService
from fulfillment.utils.formatters import money_json

shipping_bp = Blueprint('shipping', __name__, url_prefix='/api/shipping')


@shipping_bp.route('/quote', methods=['POST'])
def quote():
    data = json_body()
    uow = get_uow()
    service = OrderAssemblyService(uow, get_settings_service(uow))
    result = service.quote(data.get('items'), data.get('latitude'), data.get('longitude'))

    currencies = {
        'BASE': current_app.config.get('BASE_CURRENCY'),
        'SECONDARY': current_app.config.get('SECONDARY_CURRENCY'),
    }
    return jsonify({
        'subtotal': money_json(result['subtotal']),
        'total_weight_kg': float(result['total_weight_kg']),
        'distance_km': float(result['distance_km']) if result['distance_km'] is not None else None,
        'country': result['country'],
        'options': [
            {
                'method': option['method'],
                'fee': money_json(option['fee']),
                'fee_base_currency': money_json(option['fee_base_currency']),
                'currency': currencies[option['currency']],
                'available': option['available'],
                'reason': option['reason'],
            }
            for option in result['options']
        ],
    })
