import pytest

BASE = '/api/fiber-deliveries'


@pytest.fixture
def deliver(client, farmer, buyer, auth_headers):
    def _deliver(headers=None, **overrides):
        payload = {
            'buyer_id': buyer,
            'delivery_date': '2024-06-10',
            'quantity_kg': 12.5,
            'price_per_kg': 85.333,
            'grade': 'S2',
            'delivery_method': 'Truck'
        }
        payload.update(overrides)
        return client.post(f'{BASE}/create', json=payload, headers=headers or auth_headers(farmer))
    return _deliver


def test_create_computes_total_and_defaults(client, deliver, buyer, auth_headers):
    res = deliver()
    assert res.status_code == 201
    delivery = res.get_json()['delivery']
    assert delivery['total_amount'] == 1066.66
    assert delivery['status'] == 'In Transit'
    assert delivery['payment_status'] == 'Pending'
    assert delivery['delivery_location'] == 'Butuan City'
    assert delivery['buyer']['business_name'] == 'Mindanao Fiber Trading'

    notifications = client.get('/api/notifications', headers=auth_headers(buyer)).get_json()
    assert notifications[0]['title'] == 'Incoming Fiber Delivery'


def test_create_validation(deliver, farmer, make_user):
    assert deliver(buyer_id=farmer).status_code == 400
    assert deliver(buyer_id=make_user('buyer', verified=False)).status_code == 400
    assert deliver(quantity_kg=0).status_code == 400
    assert deliver(price_per_kg=-1).status_code == 400
    assert deliver(price_per_kg='nan').status_code == 400
    assert deliver(quantity_kg='Infinity').status_code == 400
    assert deliver(delivery_date=None).status_code == 400
    assert deliver(harvest_id=9999).status_code == 400


def test_harvest_must_belong_to_farmer(client, deliver, make_user, auth_headers):
    stranger = make_user('farmer')
    res = client.post('/api/harvests/farmer/harvests', json={'harvest_date': '2024-05-01', 'dry_fiber_output_kg': 50},
                      headers=auth_headers(stranger))
    harvest_id = res.get_json()['harvest']['harvest_id']
    assert deliver(harvest_id=harvest_id).status_code == 400


def test_role_scoped_lists(client, deliver, farmer, buyer, officer, association, make_user, auth_headers):
    deliver()
    other_buyer = make_user('buyer', business_name='Other Fiber Co')
    deliver(buyer_id=other_buyer)

    mine = client.get(f'{BASE}/farmer/my-deliveries', headers=auth_headers(farmer)).get_json()['deliveries']
    assert len(mine) == 2
    incoming = client.get(f'{BASE}/buyer/incoming-deliveries', headers=auth_headers(buyer)).get_json()['deliveries']
    assert len(incoming) == 1

    for user_id in (officer, association):
        everything = client.get(f'{BASE}/cusafa/all-deliveries?status=all', headers=auth_headers(user_id))
        assert len(everything.get_json()['deliveries']) == 2

    assert client.get(f'{BASE}/cusafa/all-deliveries', headers=auth_headers(buyer)).status_code == 403
    none_confirmed = client.get(f'{BASE}/farmer/my-deliveries?status=Confirmed', headers=auth_headers(farmer))
    assert none_confirmed.get_json()['deliveries'] == []


def test_access_to_single_delivery(client, deliver, officer, make_user, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    outsider = make_user('buyer', business_name='Nosy Traders')

    assert client.get(f'{BASE}/{delivery_id}', headers=auth_headers(outsider)).status_code == 403
    assert client.get(f'{BASE}/{delivery_id}', headers=auth_headers(officer)).status_code == 200
    assert client.get(f'{BASE}/9999', headers=auth_headers(officer)).status_code == 404


def test_status_transitions_stamp_timestamps(client, deliver, buyer, farmer, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    url = f'{BASE}/{delivery_id}/status'

    assert client.put(url, json={'status': 'Lost'}, headers=auth_headers(buyer)).status_code == 400

    res = client.put(url, json={'status': 'Confirmed'}, headers=auth_headers(buyer))
    assert res.status_code == 200
    assert res.get_json()['delivery']['confirmed_at'] is not None

    res = client.put(url, json={'status': 'Completed'}, headers=auth_headers(buyer))
    assert res.get_json()['delivery']['completed_at'] is not None

    res = client.put(url, json={'status': 'Delivered'}, headers=auth_headers(farmer))
    assert res.status_code == 400


def test_cusafa_status_update_with_proof(client, deliver, association, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    res = client.put(f'{BASE}/cusafa/{delivery_id}/status', json={
        'status': 'Delivered', 'delivery_proof_image': 'data:image/png;base64,AAAA'
    }, headers=auth_headers(association))
    assert res.status_code == 200
    delivery = res.get_json()['delivery']
    assert delivery['status'] == 'Delivered'
    assert delivery['delivered_at'] is not None
    assert delivery['delivery_proof_image'] == 'data:image/png;base64,AAAA'


def test_cancel_via_status_stores_reason(client, deliver, buyer, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    res = client.put(f'{BASE}/{delivery_id}/status', json={'status': 'Cancelled', 'cancellation_reason': 'No space'},
                     headers=auth_headers(buyer))
    delivery = res.get_json()['delivery']
    assert delivery['cancelled_at'] is not None
    assert delivery['cancellation_reason'] == 'No space'


def test_payment_updates_and_stats(client, deliver, farmer, buyer, auth_headers):
    paid_id = deliver().get_json()['delivery']['delivery_id']
    deliver(quantity_kg=10, price_per_kg=50)

    assert client.put(f'{BASE}/{paid_id}/payment', json={'payment_status': 'Paid'},
                      headers=auth_headers(farmer)).status_code == 403
    assert client.put(f'{BASE}/{paid_id}/payment', json={'payment_status': 'Partial'},
                      headers=auth_headers(buyer)).status_code == 400

    res = client.put(f'{BASE}/{paid_id}/payment', json={
        'payment_status': 'Paid', 'payment_method': 'GCash', 'receipt_image': 'receipt.png'
    }, headers=auth_headers(buyer))
    assert res.status_code == 200
    delivery = res.get_json()['delivery']
    assert delivery['payment_method'] == 'GCash'
    assert delivery['payment_date'] is not None

    stats = client.get(f'{BASE}/stats', headers=auth_headers(farmer)).get_json()['stats']
    assert stats['total_deliveries'] == 2
    assert stats['total_revenue'] == 1066.66
    assert stats['pending_payment'] == 500.0
    assert stats['total_quantity'] == 22.5


def test_proof_upload_for_participants(client, deliver, farmer, officer, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    url = f'{BASE}/{delivery_id}/proof'
    assert client.put(url, json={}, headers=auth_headers(farmer)).status_code == 400
    assert client.put(url, json={'delivery_proof_image': 'proof.jpg'}, headers=auth_headers(officer)).status_code == 403
    assert client.put(url, json={'delivery_proof_image': 'proof.jpg'}, headers=auth_headers(farmer)).status_code == 200


def test_farmer_cancels_own_delivery(client, deliver, buyer, farmer, make_user, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    url = f'{BASE}/{delivery_id}/cancel'

    assert client.delete(url, headers=auth_headers(make_user('farmer'))).status_code == 404

    res = client.delete(url, headers=auth_headers(farmer))
    assert res.status_code == 200
    assert res.get_json()['delivery']['cancellation_reason'] == 'Cancelled by user'
    assert client.delete(url, headers=auth_headers(farmer)).status_code == 400


def test_completed_delivery_cannot_be_cancelled(client, deliver, buyer, farmer, auth_headers):
    delivery_id = deliver().get_json()['delivery']['delivery_id']
    client.put(f'{BASE}/{delivery_id}/status', json={'status': 'Completed'}, headers=auth_headers(buyer))
    assert client.delete(f'{BASE}/{delivery_id}/cancel', headers=auth_headers(farmer)).status_code == 400


def test_buyer_list_is_open_to_authenticated_users(client, farmer, buyer, make_user, auth_headers):
    make_user('buyer', verified=False, business_name='Unverified Co')
    buyers = client.get('/api/buyers', headers=auth_headers(farmer)).get_json()['buyers']
    assert [b['id'] for b in buyers] == [buyer]
