"""
Integration tests for delivery claims, delivery status and driver tracking endpoints.
"""

import pytest

from fulfillment.models import Order, Delivery, Driver

from conftest import order_request, make_driver


@pytest.fixture
def delivery_id(client, db_settings, db_product):
    body = order_request([{'product_id': db_product, 'quantity': 1}], method='national_flat')
    order_id = client.post('/api/orders', json=body).get_json()['order_id']
    return client.get(f'/api/orders/{order_id}/tracking').get_json()['delivery']['id']


@pytest.fixture
def second_driver(session):
    driver = make_driver(user_id='user-2', full_name='Driver Two')
    session.add(driver)
    session.commit()
    return driver.id


class TestClaim:

    def test_claim(self, client, session, delivery_id, db_driver):
        response = client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': db_driver})
        assert response.status_code == 200
        data = response.get_json()['delivery']
        assert data['driver_id'] == db_driver
        assert data['status'] == 'assigned'

    def test_second_claim_conflicts(self, client, session, delivery_id, db_driver, second_driver):
        client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': db_driver})
        response = client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': second_driver})

        assert response.status_code == 409
        assert response.get_json() == {'error': f'Delivery {delivery_id} was already claimed'}
        assert session.query(Delivery).filter_by(id=delivery_id).one().driver_id == db_driver

    def test_driver_required(self, client, delivery_id):
        response = client.post(f'/api/deliveries/{delivery_id}/claim', json={})
        assert response.status_code == 400

    def test_unknown_driver(self, client, delivery_id):
        response = client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': 'ghost'})
        assert response.status_code == 404


class TestDeliveryStatus:

    def test_in_transit_ships_order(self, client, session, delivery_id, db_driver):
        client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': db_driver})
        response = client.post(f'/api/deliveries/{delivery_id}/status', json={'status': 'in_transit'})

        data = response.get_json()['delivery']
        assert data['status'] == 'in_transit'
        assert data['order_status'] == 'shipped'
        assert data['picked_at'] is not None

    def test_failed_cancels_order(self, client, session, delivery_id):
        response = client.post(f'/api/deliveries/{delivery_id}/status', json={'status': 'failed'})
        assert response.get_json()['delivery']['order_status'] == 'cancelled'

        order_id = response.get_json()['delivery']['order_id']
        assert session.query(Order).filter_by(id=order_id).one().status == 'cancelled'

    def test_invalid_status(self, client, delivery_id):
        response = client.post(f'/api/deliveries/{delivery_id}/status', json={'status': 'teleported'})
        assert response.status_code == 400

    def test_notification_recorded(self, client, session, delivery_id):
        client.post(f'/api/deliveries/{delivery_id}/status', json={'status': 'delivered'})
        delivery = session.query(Delivery).filter_by(id=delivery_id).one()
        assert delivery.last_notification_status == 'delivered'
        assert delivery.last_notification_at is not None


class TestDriverLocation:

    def test_position_fans_out_to_deliveries(self, client, session, delivery_id, db_driver):
        client.post(f'/api/deliveries/{delivery_id}/claim', json={'driver_id': db_driver})
        response = client.post(f'/api/drivers/{db_driver}/location', json={'latitude': -34.9, 'longitude': -56.15})

        assert response.status_code == 200
        assert response.get_json()['deliveries_updated'] == 1
        delivery = session.query(Delivery).filter_by(id=delivery_id).one()
        assert delivery.driver_latitude == -34.9
        assert delivery.driver_longitude == -56.15

    def test_published_on_feed(self, app, client, db_driver):
        received = []
        callback = app.extensions['position_feed'].subscribe(received.append)
        try:
            client.post(f'/api/drivers/{db_driver}/location', json={'latitude': -34.9, 'longitude': -56.15})
        finally:
            app.extensions['position_feed'].unsubscribe(callback)
        assert [p.driver_id for p in received] == [db_driver]

    def test_tracking_disabled(self, client, session, db_driver):
        client.post(f'/api/drivers/{db_driver}/tracking', json={'enabled': False})
        response = client.post(f'/api/drivers/{db_driver}/location', json={'latitude': -34.9, 'longitude': -56.15})
        assert response.status_code == 400
        assert session.query(Driver).filter_by(id=db_driver).one().is_tracking is False

    def test_enable_with_position(self, client, db_driver):
        client.post(f'/api/drivers/{db_driver}/tracking', json={'enabled': False})
        response = client.post(f'/api/drivers/{db_driver}/tracking',
                               json={'enabled': True, 'latitude': -34.91, 'longitude': -56.17})
        data = response.get_json()
        assert data['is_tracking'] is True
        assert data['latitude'] == -34.91

    def test_invalid_coordinates(self, client, db_driver):
        response = client.post(f'/api/drivers/{db_driver}/location', json={'latitude': 123, 'longitude': 0})
        assert response.status_code == 400
