"""
Orders blueprint: checkout, order-driven status changes and tracking.
"""
from flask import Blueprint, jsonify, current_app

from fulfillment.blueprints.common import (
    json_body, get_uow, get_settings_service, get_synchronizer, get_tracker,
)
from fulfillment.blueprints.metrics import orders_created_total, order_rejections_total
from fulfillment.exceptions import FulfillmentError
from fulfillment.services.order_service import OrderAssemblyService
from fulfillment.utils.formatters import money_json, datetime_json

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['POST'])
def create_order():
    """Create an order from a checkout request."""
    uow = get_uow()
    service = OrderAssemblyService(uow, get_settings_service(uow))
    try:
        result = service.create_order(json_body())
    except FulfillmentError as e:
        order_rejections_total.labels(kind=e.kind).inc()
        raise

    orders_created_total.labels(shipping_method=result.order.shipping_method).inc()
    return jsonify({
        'success': True,
        'order_id': result.order_id,
        'subtotal': money_json(result.subtotal),
        'delivery_fee': money_json(result.delivery_fee),
        'total': money_json(result.total),
        'currency': current_app.config.get('BASE_CURRENCY'),
    }), 201


@orders_bp.route('/<order_id>/tracking', methods=['GET'])
def tracking(order_id):
    uow = get_uow()
    return jsonify(get_tracker(uow).tracking_view(order_id))


@orders_bp.route('/<order_id>/status', methods=['POST'])
def set_status(order_id):
    """Move an order through its lifecycle; the delivery follows."""
    data = json_body()
    uow = get_uow()
    order = get_synchronizer(uow).set_order_status(order_id, data.get('status'))
    delivery = uow.deliveries.get_for_order(order.id)
    return jsonify({
        'success': True,
        'order_id': order.id,
        'status': order.status,
        'payment_reference': order.payment_reference,
        'delivery': {
            'id': delivery.id,
            'status': delivery.status,
            'actual_delivery': datetime_json(delivery.actual_delivery),
        } if delivery else None,
    })
