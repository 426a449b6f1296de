def create_seedling(client, headers, **overrides):
    payload = {
        'variety': 'Inosa',
        'source_supplier': 'PhilFIDA Nursery',
        'quantity_distributed': 200,
        'date_distributed': '2024-05-01'
    }
    payload.update(overrides)
    return client.post('/api/seedlings', json=payload, headers=headers)


def test_create_seedling_requires_variety_and_positive_quantity(client, officer, auth_headers):
    headers = auth_headers(officer)
    assert create_seedling(client, headers, variety='').status_code == 400
    assert create_seedling(client, headers, quantity_distributed=0).status_code == 400
    assert create_seedling(client, headers, quantity_distributed='many').status_code == 400
    assert create_seedling(client, headers, recipient_farmer_id=9999).status_code == 400


def test_create_seedling_for_farmer(client, officer, farmer, auth_headers):
    res = create_seedling(client, auth_headers(officer), recipient_farmer_id=farmer)
    assert res.status_code == 201
    seedling = res.get_json()['seedling']
    assert seedling['status'] == 'distributed_to_farmer'
    assert seedling['recipient_association'] == 'Culiram Abaca Growers Association'
    assert seedling['distributed_by'] == officer

    notifications = client.get('/api/notifications', headers=auth_headers(farmer)).get_json()
    assert notifications[0]['title'] == 'Seedlings Received'


def test_officer_scope(client, officer, super_admin, make_user, auth_headers):
    other_officer = make_user('officer')
    seedling_id = create_seedling(client, auth_headers(officer)).get_json()['seedling']['seedling_id']
    create_seedling(client, auth_headers(other_officer), variety='Laylay', quantity_distributed=50)

    own = client.get('/api/seedlings/all', headers=auth_headers(officer)).get_json()
    assert own['total'] == 1
    assert client.get(f'/api/seedlings/{seedling_id}', headers=auth_headers(other_officer)).status_code == 404

    everything = client.get('/api/seedlings/all', headers=auth_headers(super_admin)).get_json()
    assert everything['total'] == 2
    filtered = client.get('/api/seedlings/all?variety=lay', headers=auth_headers(super_admin)).get_json()
    assert [s['variety'] for s in filtered['seedlings']] == ['Laylay']


def test_list_filters_and_ordering(client, officer, auth_headers):
    headers = auth_headers(officer)
    create_seedling(client, headers, date_distributed='2024-01-01')
    create_seedling(client, headers, date_distributed='2024-03-01')
    create_seedling(client, headers, date_distributed='2024-02-01')

    body = client.get('/api/seedlings/all', headers=headers).get_json()
    assert [s['date_distributed'] for s in body['seedlings']] == ['2024-03-01', '2024-02-01', '2024-01-01']

    body = client.get('/api/seedlings/all?date_from=2024-02-01&date_to=2024-03-01', headers=headers).get_json()
    assert body['total'] == 2

    body = client.get('/api/seedlings/all?limit=1&offset=1', headers=headers).get_json()
    assert [s['date_distributed'] for s in body['seedlings']] == ['2024-02-01']

    assert client.get('/api/seedlings/all?date_from=yesterday', headers=headers).status_code == 400


def test_seedling_stats(client, officer, auth_headers):
    headers = auth_headers(officer)
    create_seedling(client, headers, quantity_distributed=100)
    create_seedling(client, headers, variety='Abuab', quantity_distributed=40)

    stats = client.get('/api/seedlings/stats', headers=headers).get_json()
    assert stats['totalDistributions'] == 2
    assert stats['totalQuantity'] == 140
    assert stats['byVariety'] == {'Inosa': 100, 'Abuab': 40}


def test_update_and_delete_seedling(client, officer, auth_headers):
    headers = auth_headers(officer)
    seedling_id = create_seedling(client, headers).get_json()['seedling']['seedling_id']

    res = client.put(f'/api/seedlings/{seedling_id}', json={'quantity_distributed': 250, 'remarks': 'Recounted'},
                     headers=headers)
    assert res.status_code == 200
    assert res.get_json()['seedling']['quantity_distributed'] == 250

    assert client.put(f'/api/seedlings/{seedling_id}', json={'status': 'sold'}, headers=headers).status_code == 400
    assert client.delete(f'/api/seedlings/{seedling_id}', headers=headers).status_code == 200
    assert client.get(f'/api/seedlings/{seedling_id}', headers=headers).status_code == 404


def test_farmer_marks_own_seedlings_planted(client, officer, farmer, make_user, auth_headers):
    seedling_id = create_seedling(client, auth_headers(officer), recipient_farmer_id=farmer) \
        .get_json()['seedling']['seedling_id']

    mine = client.get('/api/seedlings/farmer/my-seedlings', headers=auth_headers(farmer)).get_json()
    assert [s['seedling_id'] for s in mine['seedlings']] == [seedling_id]

    url = f'/api/seedlings/farmer/{seedling_id}/mark-planted'
    stranger = make_user('farmer')
    assert client.put(url, json={'planting_date': '2024-05-10'}, headers=auth_headers(stranger)).status_code == 403
    assert client.put(url, json={}, headers=auth_headers(farmer)).status_code == 400
    assert client.put('/api/seedlings/farmer/9999/mark-planted', json={'planting_date': '2024-05-10'},
                      headers=auth_headers(farmer)).status_code == 404

    res = client.put(url, json={'planting_date': '2024-05-10', 'planting_location': 'Lot 4'},
                     headers=auth_headers(farmer))
    assert res.status_code == 200
    seedling = res.get_json()['seedling']
    assert seedling['status'] == 'planted'
    assert seedling['planting_date'] == '2024-05-10'
    assert seedling['planted_by'] == farmer
    assert seedling['planted_at'] is not None


def test_farmer_cannot_use_officer_routes(client, farmer, auth_headers):
    assert client.get('/api/seedlings/all', headers=auth_headers(farmer)).status_code == 403


def test_fractional_quantity_is_rejected(client, officer, auth_headers):
    res = create_seedling(client, auth_headers(officer), quantity_distributed=5.9)
    assert res.status_code == 400
    assert res.get_json()['error'].endswith('must be a whole number')
    assert create_seedling(client, auth_headers(officer), quantity_distributed=5.0).status_code == 201
