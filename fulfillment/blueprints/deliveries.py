"""
Deliveries blueprint: driver claims and delivery-driven status changes.
"""
from flask import Blueprint, jsonify

from fulfillment.blueprints.common import json_body, get_uow, get_synchronizer
from fulfillment.exceptions import ValidationError
from fulfillment.utils.formatters import datetime_json

deliveries_bp = Blueprint('deliveries', __name__, url_prefix='/api/deliveries')


def _delivery_json(delivery, order_status=None):
    return {
        'id': delivery.id,
        'order_id': delivery.order_id,
        'status': delivery.status,
        'driver_id': delivery.driver_id,
        'picked_at': datetime_json(delivery.picked_at),
        'actual_delivery': datetime_json(delivery.actual_delivery),
        'order_status': order_status,
    }


@deliveries_bp.route('/<delivery_id>/claim', methods=['POST'])
def claim(delivery_id):
    """Assign the delivery to the first driver who asks."""
    data = json_body()
    driver_id = data.get('driver_id')
    if not driver_id:
        raise ValidationError('driver_id is required')

    uow = get_uow()
    delivery = get_synchronizer(uow).claim_delivery(delivery_id, str(driver_id))
    return jsonify({'success': True, 'delivery': _delivery_json(delivery)})


@deliveries_bp.route('/<delivery_id>/status', methods=['POST'])
def set_status(delivery_id):
    data = json_body()
    uow = get_uow()
    delivery = get_synchronizer(uow).set_delivery_status(delivery_id, data.get('status'))
    order = uow.orders.get(delivery.order_id)
    return jsonify({
        'success': True,
        'delivery': _delivery_json(delivery, order.status if order else None),
    })
