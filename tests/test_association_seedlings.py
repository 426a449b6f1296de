import pytest

from models import db, AssociationSeedlingDistribution, FarmerSeedlingDistribution

BASE = '/api/association-seedlings'


@pytest.fixture
def distribution(client, officer, association, auth_headers):
    res = client.post(f'{BASE}/mao/distribute-to-association', json={
        'variety': 'Inosa',
        'quantity_distributed': 100,
        'recipient_association_id': association,
        'date_distributed': '2024-05-01'
    }, headers=auth_headers(officer))
    assert res.status_code == 201
    return res.get_json()['distribution']['distribution_id']


def hand_out(client, headers, distribution_id, *entries):
    return client.post(f'{BASE}/association/distribute-to-farmers', json={
        'association_distribution_id': distribution_id,
        'farmer_distributions': [
            {'farmer_id': farmer_id, 'quantity_distributed': qty, 'remarks': None}
            for farmer_id, qty in entries
        ]
    }, headers=headers)


def test_distribute_to_association_validates_target(client, officer, farmer, make_user, auth_headers):
    headers = auth_headers(officer)
    payload = {'variety': 'Inosa', 'quantity_distributed': 100}

    res = client.post(f'{BASE}/mao/distribute-to-association', json={**payload, 'recipient_association_id': farmer},
                      headers=headers)
    assert res.status_code == 400
    assert res.get_json()['error'] == 'Invalid association selected'

    pending = make_user('association_officer', verified=False, association_name='Pending Assoc')
    res = client.post(f'{BASE}/mao/distribute-to-association', json={**payload, 'recipient_association_id': pending},
                      headers=headers)
    assert res.status_code == 400

    res = client.post(f'{BASE}/mao/distribute-to-association',
                      json={'variety': 'Inosa', 'quantity_distributed': -5, 'recipient_association_id': pending},
                      headers=headers)
    assert res.status_code == 400


def test_new_distribution_starts_at_association(client, distribution, association, auth_headers):
    received = client.get(f'{BASE}/association/received', headers=auth_headers(association)).get_json()
    row = received['distributions'][0]
    assert row['distribution_id'] == distribution
    assert row['status'] == 'distributed_to_association'
    assert row['distributed_to_farmers'] == 0
    assert row['remaining_quantity'] == 100

    notifications = client.get('/api/notifications', headers=auth_headers(association)).get_json()
    assert notifications[0]['title'] == 'Seedlings Received'


def test_remaining_quantity_is_enforced(client, distribution, association, farmer, auth_headers):
    headers = auth_headers(association)

    res = hand_out(client, headers, distribution, (farmer, 30))
    assert res.status_code == 201
    body = res.get_json()
    assert body['remaining_quantity'] == 70
    assert body['status'] == 'partially_distributed_to_farmers'
    assert body['distributions'][0]['variety'] == 'Inosa'
    assert body['distributions'][0]['status'] == 'distributed_to_farmer'

    res = hand_out(client, headers, distribution, (farmer, 50), (farmer, 30))
    assert res.status_code == 400
    assert res.get_json()['error'] == 'Cannot distribute 80 seedlings. Only 70 remaining.'

    res = hand_out(client, headers, distribution, (farmer, 70))
    assert res.status_code == 201
    assert res.get_json()['remaining_quantity'] == 0
    assert res.get_json()['status'] == 'fully_distributed_to_farmers'


def test_distribute_to_farmers_rejects_bad_input(client, distribution, association, farmer, make_user, auth_headers):
    headers = auth_headers(association)
    assert hand_out(client, headers, distribution).status_code == 400
    assert hand_out(client, headers, distribution, (farmer, 0)).status_code == 400
    assert hand_out(client, headers, 9999, (farmer, 5)).status_code == 400

    unverified = make_user('farmer', verified=False)
    assert hand_out(client, headers, distribution, (unverified, 5)).status_code == 400

    other_association = make_user('association_officer', association_name='Other Assoc')
    assert hand_out(client, auth_headers(other_association), distribution, (farmer, 5)).status_code == 400


def test_deleting_farmer_distribution_restores_status(app, client, distribution, association, farmer,
                                                      make_user, auth_headers):
    headers = auth_headers(association)
    row_id = hand_out(client, headers, distribution, (farmer, 100)).get_json()['distributions'][0]['distribution_id']

    other_association = make_user('association_officer', association_name='Other Assoc')
    res = client.delete(f'{BASE}/association/farmer-distributions/{row_id}', headers=auth_headers(other_association))
    assert res.status_code == 403

    res = client.delete(f'{BASE}/association/farmer-distributions/{row_id}', headers=headers)
    assert res.status_code == 200
    assert res.get_json()['status'] == 'distributed_to_association'
    assert res.get_json()['remaining_quantity'] == 100

    with app.app_context():
        assert db.session.get(FarmerSeedlingDistribution, row_id) is None


def test_association_farmers_match_case_insensitively(client, association, farmer, make_user, auth_headers):
    shouting = make_user('farmer', association_name='CULIRAM ABACA GROWERS ASSOCIATION')
    make_user('farmer', association_name='Someone Else')
    make_user('farmer', verified=False, association_name='Culiram Abaca Growers Association')

    body = client.get(f'{BASE}/association/farmers', headers=auth_headers(association)).get_json()
    assert sorted(f['id'] for f in body['farmers']) == sorted([farmer, shouting])


def test_mao_update_cannot_undercut_farmer_distributions(client, distribution, officer, association, farmer,
                                                         make_user, auth_headers):
    hand_out(client, auth_headers(association), distribution, (farmer, 60))
    url = f'{BASE}/mao/associations/{distribution}'

    assert client.put(url, json={'quantity_distributed': 50}, headers=auth_headers(officer)).status_code == 400

    res = client.put(url, json={'quantity_distributed': 60}, headers=auth_headers(officer))
    assert res.status_code == 200
    assert res.get_json()['distribution']['status'] == 'fully_distributed_to_farmers'

    other_officer = make_user('officer')
    assert client.put(url, json={'remarks': 'x'}, headers=auth_headers(other_officer)).status_code == 404


def test_mao_delete_removes_children(app, client, distribution, officer, association, farmer, auth_headers):
    row_id = hand_out(client, auth_headers(association), distribution, (farmer, 10)) \
        .get_json()['distributions'][0]['distribution_id']

    res = client.delete(f'{BASE}/mao/associations/{distribution}', headers=auth_headers(officer))
    assert res.status_code == 200
    with app.app_context():
        assert db.session.get(AssociationSeedlingDistribution, distribution) is None
        assert db.session.get(FarmerSeedlingDistribution, row_id) is None


def test_association_updates_and_deletes_received(client, distribution, association, farmer, auth_headers):
    headers = auth_headers(association)
    url = f'{BASE}/association/received/{distribution}'

    assert client.put(url, json={'status': 'lost'}, headers=headers).status_code == 400
    res = client.put(url, json={'status': 'cancelled', 'remarks': 'Typhoon', 'variety': 'Laylay'}, headers=headers)
    assert res.status_code == 200
    body = res.get_json()['distribution']
    assert body['status'] == 'cancelled'
    assert body['variety'] == 'Inosa'

    assert hand_out(client, headers, distribution, (farmer, 5)).status_code == 400
    assert client.delete(url, headers=headers).status_code == 200


def test_received_with_farmer_distributions_cannot_be_deleted(client, distribution, association, farmer,
                                                              auth_headers):
    headers = auth_headers(association)
    hand_out(client, headers, distribution, (farmer, 5))
    res = client.delete(f'{BASE}/association/received/{distribution}', headers=headers)
    assert res.status_code == 400


def test_farmer_marks_distribution_planted(client, distribution, association, farmer, make_user, auth_headers):
    row_id = hand_out(client, auth_headers(association), distribution, (farmer, 40)) \
        .get_json()['distributions'][0]['distribution_id']
    headers = auth_headers(farmer)

    received = client.get(f'{BASE}/farmer/received', headers=headers).get_json()
    assert received['distributions'][0]['source_supplier'] is None
    assert received['distributions'][0]['association_name'] == 'Culiram Abaca Growers Association'

    assert client.put(f'{BASE}/farmer/abc/mark-planted', json={'planting_date': '2024-05-20'},
                      headers=headers).status_code == 400
    assert client.put(f'{BASE}/farmer/9999/mark-planted', json={'planting_date': '2024-05-20'},
                      headers=headers).status_code == 404
    stranger = make_user('farmer')
    assert client.put(f'{BASE}/farmer/{row_id}/mark-planted', json={'planting_date': '2024-05-20'},
                      headers=auth_headers(stranger)).status_code == 403

    res = client.put(f'{BASE}/farmer/{row_id}/mark-planted', json={'planting_date': '2024-05-20'}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()['distribution']['status'] == 'planted'

    stats = client.get(f'{BASE}/association/stats', headers=auth_headers(association)).get_json()
    assert stats['farmer_distributions']['planted_quantity'] == 40
    assert stats['overall']['planting_rate'] == '100.0'


def test_cusafa_views(client, distribution, officer, association, farmer, auth_headers):
    hand_out(client, auth_headers(association), distribution, (farmer, 25))

    for user_id in (officer, association):
        body = client.get(f'{BASE}/cusafa/all-distributions', headers=auth_headers(user_id)).get_json()
        assert body['summary'] == {
            'total_association_distributions': 1,
            'total_farmer_distributions': 1,
            'total_seedlings_to_associations': 100,
            'total_seedlings_to_farmers': 25
        }

    assert client.get(f'{BASE}/cusafa/stats', headers=auth_headers(farmer)).status_code == 403


def test_mao_stats_scope(client, distribution, officer, make_user, auth_headers):
    other_officer = make_user('officer')
    mine = client.get(f'{BASE}/mao/stats', headers=auth_headers(officer)).get_json()
    theirs = client.get(f'{BASE}/mao/stats', headers=auth_headers(other_officer)).get_json()
    assert mine['association_distributions']['total'] == 1
    assert theirs['association_distributions']['total'] == 0


def test_fractional_hand_out_is_rejected(client, distribution, association, farmer, auth_headers):
    headers = auth_headers(association)
    assert hand_out(client, headers, distribution, (farmer, 99.5)).status_code == 400
    assert hand_out(client, headers, distribution, (farmer, 100.4)).status_code == 400
    rows = client.get(f'{BASE}/association/farmer-distributions', headers=headers).get_json()['distributions']
    assert rows == []
