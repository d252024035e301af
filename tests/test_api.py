import datetime

import pytest

import app as app_module
from readings import SensorData, SensorReading


def test_list_plants(client, seeded):
    response = client.get('/api/plants')
    body = response.get_json()

    assert response.status_code == 200
    assert body['success'] is True
    assert body['totalCount'] == 4
    assert [p['name'] for p in body['data']] == ['Monstera Deliciosa', 'Peace Lily', 'Snake Plant', 'Tomato']


def test_create_plant(client, sample_plant):
    response = client.post('/api/plants', json=sample_plant)
    body = response.get_json()

    assert response.status_code == 201
    assert body['success'] is True
    assert body['data']['name'] == 'Tomato'
    assert body['data']['id']
    assert client.get('/api/plants').get_json()['totalCount'] == 1


def test_create_plant_without_name_is_rejected(client, sample_plant):
    del sample_plant['name']

    response = client.post('/api/plants', json=sample_plant)

    assert response.status_code == 400
    assert response.get_json() == {
        'success': False,
        'error': 'Missing required fields: name, species, and location are required',
    }
    assert client.get('/api/plants').get_json()['totalCount'] == 0


def test_create_plant_without_json_body(client):
    response = client.post('/api/plants', data='name=Tomato')
    assert response.status_code == 400


def test_get_plant(client, seeded):
    body = client.get('/api/plants/2').get_json()
    assert body['data']['name'] == 'Peace Lily'
    assert body['data']['sensorId'] == 'sensor-002'


def test_get_unknown_plant(client, seeded):
    response = client.get('/api/plants/nope')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Plant not found'}


def test_malformed_plant_id(client, seeded):
    response = client.get('/api/plants/bad$id')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid plant ID'


def test_update_plant(client, seeded):
    response = client.put('/api/plants/3', json={'location': 'Hallway', 'id': '99'})
    body = response.get_json()

    assert response.status_code == 200
    assert body['data']['id'] == '3'
    assert body['data']['location'] == 'Hallway'
    assert body['data']['name'] == 'Snake Plant'


def test_update_validation_and_not_found_are_distinct(client, seeded):
    assert client.put('/api/plants/3', json={'name': ''}).status_code == 400
    assert client.put('/api/plants/42', json={'name': 'Fern'}).status_code == 404


def test_updates_to_unknown_ids_do_not_accumulate_locks(client, seeded):
    for i in range(50):
        assert client.put(f'/api/plants/ghost-{i}', json={'name': 'Ghost'}).status_code == 404
    assert client.put('/api/plants/3', json={'location': 'Hallway'}).status_code == 200

    assert app_module.plant_store._locks == {}


def test_delete_plant(client, seeded):
    response = client.delete('/api/plants/4')
    body = response.get_json()

    assert response.status_code == 200
    assert body['data']['name'] == 'Tomato'
    assert client.get('/api/plants').get_json()['totalCount'] == 3


def test_delete_unknown_plant(client, seeded):
    response = client.delete('/api/plants/404')
    assert response.status_code == 404
    assert client.get('/api/plants').get_json()['totalCount'] == 4


def test_water_plant(client, seeded):
    body = client.post('/api/plants/3/water').get_json()
    assert body['success'] is True
    assert body['data']['lastWatered'] > '2023-05-08T18:00:00Z'


def test_wrong_method_is_405_with_allow_header(client):
    response = client.delete('/api/plants')
    assert response.status_code == 405
    assert response.get_json()['success'] is False
    assert set(response.headers['Allow'].split(', ')) >= {'GET', 'POST'}

    response = client.post('/api/carbon-savings')
    assert response.status_code == 405
    assert 'GET' in response.headers['Allow']


def test_unknown_api_route_is_json_404(client):
    response = client.get('/api/unknown')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_plant_readings(client, seeded):
    body = client.get('/api/plants/1/readings').get_json()

    assert body['success'] is True
    assert len(body['data']) == 120
    assert 'averages' not in body
    assert set(body['data'][0]) == {'timestamp', 'moisture', 'temperature', 'light', 'humidity', 'pressure'}


def test_plant_readings_with_range(client, seeded):
    body = client.get('/api/plants/1/readings?range=7d').get_json()

    timestamps = [r['timestamp'] for r in body['data']]
    assert body['range'] == '7d'
    assert timestamps == sorted(timestamps)
    assert 28 <= len(timestamps) <= 32
    assert set(body['averages']) == set(app_module.SENSOR_METRICS)
    assert body['averages']['moisture'] is not None


def test_plant_readings_unknown_plant(client, seeded):
    assert client.get('/api/plants/missing/readings').status_code == 404


def test_global_readings_unknown_range_defaults_to_day(client):
    body = client.get('/api/readings?range=forever').get_json()
    assert body['range'] == '24h'
    assert len(body['data']) <= 8


def test_sensor_data_for_linked_sensor(client, seeded):
    body = client.get('/api/plants/1/sensor-data').get_json()

    assert body['data']['sensorId'] == 'sensor-001'
    assert body['data']['plantId'] == '1'
    assert len(body['data']['readings']) == 120
    again = client.get('/api/plants/1/sensor-data').get_json()
    assert again['data']['currentReading'] == body['data']['currentReading']


def test_sensor_data_without_sensor_is_empty(client, seeded):
    body = client.get('/api/plants/3/sensor-data').get_json()

    assert body['success'] is True
    assert body['data']['sensorId'] == ''
    assert body['data']['readings'] == []
    assert body['data']['currentReading']['moisture'] == 0


def test_carbon_savings_total_uses_reference_tables(client, seeded):
    body = client.get('/api/carbon-savings').get_json()

    # Monstera 0.5 kg, Snake Plant 0.35 kg, Tomato 2 kg; Peace Lily has no CO2 entry.
    assert body['calculationMethod'] == 'reference-table'
    assert body['data']['CO2'] == pytest.approx(2850)
    assert body['data']['equivalentCarMiles'] == pytest.approx(2850 / 404)
    assert body['data']['treesEquivalent'] == pytest.approx(2850 / 24629)
    assert body['data']['dailyRate'] == pytest.approx(2850 / 365)


def test_carbon_savings_per_plant(client, seeded):
    assert client.get('/api/carbon-savings?plantId=4').get_json()['data']['CO2'] == pytest.approx(2000)
    assert client.get('/api/carbon-savings?plantId=2').get_json()['data']['CO2'] == 0
    assert client.get('/api/carbon-savings?plantId=99').status_code == 404


def test_footprint_summary(client, seeded):
    body = client.get('/api/footprint').get_json()['data']

    assert [p['name'] for p in body['co2Plants']] == ['Monstera Deliciosa', 'Snake Plant', 'Tomato']
    assert [p['name'] for p in body['waterPlants']] == ['Peace Lily', 'Tomato']
    assert body['totalCO2'] == pytest.approx(2850)
    assert body['totalWater'] == pytest.approx(226)


def test_publish_footprint(client, seeded):
    assert client.get('/api/footprint/published').status_code == 404

    first = client.post('/api/footprint/publish').get_json()
    second = client.post('/api/footprint/publish').get_json()
    published = client.get('/api/footprint/published').get_json()

    assert first['data']['totalCO2'] == second['data']['totalCO2'] == pytest.approx(2850)
    assert published['data']['totalWater'] == pytest.approx(226)


def test_publish_footprint_with_nothing_to_publish(client):
    body = client.post('/api/footprint/publish').get_json()
    assert body['success'] is True
    assert 'data' not in body
    assert client.get('/api/footprint/published').status_code == 404


def test_notifications(client, seeded, monkeypatch):
    now = datetime.datetime.now(datetime.timezone.utc)
    dry = SensorReading(timestamp=now, values={'moisture': 12, 'temperature': 21, 'light': 80,
                                               'humidity': 55, 'pressure': 1010})

    def fake_for_plant(plant):
        return SensorData(sensor_id=plant.sensor_id, plant_id=plant.id,
                          current_reading=dry, readings=[], last_updated=now)

    monkeypatch.setattr(app_module.sensor_cache, 'for_plant', fake_for_plant)

    body = client.get('/api/notifications').get_json()

    # Only the two sensor-linked plants are checked.
    assert body['totalCount'] == 4
    assert {a['plantId'] for a in body['data']} == {'1', '2'}
    assert any(a['message'].startswith('Peace Lily needs watering') for a in body['data'])
    assert any(a['message'].startswith('Turn on the glow lamp for Monstera Deliciosa') for a in body['data'])
