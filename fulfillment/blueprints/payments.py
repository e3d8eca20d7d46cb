"""
Payments webhook blueprint.
Receives payment outcomes from the payment collaborator.
"""
import logging
import hmac
import hashlib

from flask import Blueprint, request, jsonify, current_app

from fulfillment.blueprints.common import json_body, get_uow, get_synchronizer
from fulfillment.exceptions import ValidationError

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__, url_prefix='/webhooks')


def verify_signature(request_data: bytes, signature: str) -> bool:
    """
    Verify the HMAC-SHA256 signature of a webhook body.

    Without a configured secret every request is accepted (dev only).
    """
    secret = current_app.config.get('PAYMENT_WEBHOOK_SECRET')
    if not secret:
        logger.info("Skipping payment webhook signature verification (no secret configured)")
        return True

    if not signature:
        logger.warning("Missing X-Signature header in payment webhook")
        return False

    expected_signature = hmac.new(
        secret.encode('utf-8'),
        request_data,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(signature, expected_signature)


@payments_bp.route('/payments', methods=['POST'])
def payment_webhook():
    """
    Apply a payment outcome to its order.

    Body: {"order_id": ..., "outcome": "approved|rejected|pending", "payment_reference": ...}
    """
    signature = request.headers.get('X-Signature', '')
    if not verify_signature(request.get_data(), signature):
        logger.warning("Invalid payment webhook signature")
        return jsonify({'error': 'Invalid signature'}), 401

    data = json_body()
    order_id = data.get('order_id')
    if not order_id:
        raise ValidationError('order_id is required')
    outcome = data.get('outcome')
    logger.info(f"Received payment webhook: order={order_id}, outcome={outcome}")

    uow = get_uow()
    order = get_synchronizer(uow).apply_payment_outcome(
        str(order_id), outcome, data.get('payment_reference')
    )
    return jsonify({'status': 'ok', 'order_id': order.id, 'order_status': order.status})
