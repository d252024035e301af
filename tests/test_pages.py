def test_dashboard(client, seeded):
    response = client.get('/?range=7d')
    html = response.get_data(as_text=True)

    assert response.status_code == 200
    assert 'Total Plants' in html
    assert '2850.00 g' in html


def test_plant_list_and_search(client, seeded):
    html = client.get('/plants').get_data(as_text=True)
    assert 'Peace Lily' in html and 'Tomato' in html

    html = client.get('/plants?q=office').get_data(as_text=True)
    assert 'Snake Plant' in html
    assert 'Peace Lily' not in html


def test_plant_detail(client, seeded):
    response = client.get('/plants/1?range=30d')
    html = response.get_data(as_text=True)

    assert response.status_code == 200
    assert 'Monstera Deliciosa' in html
    assert 'sensor-001' in html


def test_plant_detail_unknown_redirects(client, seeded):
    response = client.get('/plants/nope')
    assert response.status_code == 302


def test_create_plant_form(client):
    response = client.post('/plants/new', data={
        'name': 'Basil', 'species': 'Ocimum basilicum', 'location': 'Kitchen',
        'imageUrl': '', 'sensorId': '', 'description': '',
    })
    assert response.status_code == 302

    plants = client.get('/api/plants').get_json()['data']
    assert [p['name'] for p in plants] == ['Basil']
    assert 'sensorId' not in plants[0]


def test_create_plant_form_validation(client):
    response = client.post('/plants/new', data={'name': 'Basil', 'species': '', 'location': 'Kitchen'})
    assert response.status_code == 400
    assert 'Missing required fields' in response.get_data(as_text=True)


def test_edit_water_and_delete(client, seeded):
    assert client.post('/plants/3/edit', data={
        'name': 'Snake Plant', 'species': 'Sansevieria trifasciata', 'location': 'Hallway',
    }).status_code == 302
    assert client.get('/api/plants/3').get_json()['data']['location'] == 'Hallway'

    assert client.post('/plants/3/water').status_code == 302
    assert client.post('/plants/3/delete').status_code == 302
    assert client.get('/api/plants/3').status_code == 404


def test_footprint_page_and_publish(client, seeded):
    html = client.get('/footprint').get_data(as_text=True)
    assert 'Peace Lily' in html
    assert '2850 g' in html

    response = client.post('/footprint/publish', follow_redirects=True)
    assert 'Footprint totals published.' in response.get_data(as_text=True)
    assert client.get('/api/footprint/published').status_code == 200
