"""
Drivers blueprint: position reports and tracking toggle.
"""
from flask import Blueprint, jsonify

from fulfillment.blueprints.common import json_body, get_uow, get_tracker
from fulfillment.utils.formatters import datetime_json

drivers_bp = Blueprint('drivers', __name__, url_prefix='/api/drivers')


@drivers_bp.route('/<driver_id>/location', methods=['POST'])
def report_location(driver_id):
    data = json_body()
    uow = get_uow()
    position = get_tracker(uow).report_position(driver_id, data.get('latitude'), data.get('longitude'))
    return jsonify({
        'success': True,
        'driver_id': position.driver_id,
        'latitude': position.latitude,
        'longitude': position.longitude,
        'recorded_at': datetime_json(position.recorded_at),
        'deliveries_updated': len(position.delivery_ids),
    })


@drivers_bp.route('/<driver_id>/tracking', methods=['POST'])
def set_tracking(driver_id):
    """Enable or disable location sharing, optionally with a first position."""
    data = json_body()
    uow = get_uow()
    driver = get_tracker(uow).set_tracking(
        driver_id,
        bool(data.get('enabled')),
        data.get('latitude'),
        data.get('longitude'),
    )
    return jsonify({
        'success': True,
        'driver_id': driver.id,
        'is_tracking': driver.is_tracking,
        'latitude': driver.last_location_lat,
        'longitude': driver.last_location_lon,
        'location_updated_at': datetime_json(driver.location_updated_at),
    })
