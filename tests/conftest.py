"""
Pytest configuration and shared fixtures for the plant monitor tests.
"""
import os

os.environ['FLASK_ENV'] = 'testing'

import pytest

import app as app_module
from models import db


@pytest.fixture
def app():
    flask_app = app_module.app
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        app_module.sensor_cache.clear()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app_module.plant_store


@pytest.fixture
def seeded(store):
    store.seed_demo_plants()
    return store


@pytest.fixture
def sample_plant():
    return {
        'name': 'Tomato',
        'species': 'Solanum lycopersicum',
        'location': 'Balcony',
        'description': 'Cherry tomatoes in a 20 L pot.',
    }
