import threading
import uuid
from contextlib import contextmanager

from flask import current_app

from models import db, Plant
from utils import parse_timestamp, utcnow

REQUIRED_FIELDS = ('name', 'species', 'location')

# Request field -> (model attribute, kind)
UPDATABLE_FIELDS = {
    'name': ('name', 'text'),
    'species': ('species', 'text'),
    'location': ('location', 'text'),
    'imageUrl': ('image_url', 'text'),
    'description': ('description', 'optional_text'),
    'sensorId': ('sensor_id', 'optional_text'),
    'dateAdded': ('date_added', 'timestamp'),
    'lastWatered': ('last_watered', 'timestamp'),
    'carbonSavings': ('carbon_savings', 'number'),
}


class PlantValidationError(ValueError):
    pass


class PlantNotFoundError(LookupError):
    def __init__(self, plant_id):
        super().__init__(f"Plant '{plant_id}' not found")
        self.plant_id = plant_id


DEMO_PLANTS = [
    {
        'name': 'Monstera Deliciosa',
        'species': 'Monstera deliciosa',
        'location': 'Living Room',
        'dateAdded': '2023-01-15T12:00:00Z',
        'lastWatered': '2023-05-10T08:30:00Z',
        'description': 'Also known as the Swiss Cheese Plant, featuring large, heart-shaped '
                       'leaves with distinctive splits and holes.',
        'sensorId': 'sensor-001',
        'carbonSavings': 120,
    },
    {
        'name': 'Peace Lily',
        'species': 'Spathiphyllum wallisii',
        'location': 'Bedroom',
        'dateAdded': '2023-02-20T15:30:00Z',
        'lastWatered': '2023-05-12T09:15:00Z',
        'description': 'An elegant plant with glossy leaves and white flowers, known for its '
                       'air-purifying qualities.',
        'sensorId': 'sensor-002',
        'carbonSavings': 85,
    },
    {
        'name': 'Snake Plant',
        'species': 'Sansevieria trifasciata',
        'location': 'Home Office',
        'dateAdded': '2023-03-05T10:15:00Z',
        'lastWatered': '2023-05-08T18:00:00Z',
        'description': 'A hardy, drought-resistant succulent with tall, stiff leaves. '
                       'Excellent for beginners.',
        'carbonSavings': 95,
    },
    {
        'name': 'Tomato',
        'species': 'Solanum lycopersicum',
        'location': 'Home Office',
        'dateAdded': '2023-03-06T10:15:00Z',
        'lastWatered': '2023-05-08T18:00:00Z',
        'carbonSavings': 95,
    },
]


def _coerce(field_name, kind, value):
    if kind == 'text':
        if not isinstance(value, str) or not value.strip():
            raise PlantValidationError(f"'{field_name}' must be a non-empty string")
        return value.strip()
    if kind == 'optional_text':
        if value is None:
            return None
        if not isinstance(value, str):
            raise PlantValidationError(f"'{field_name}' must be a string")
        return value.strip() or None
    if kind == 'timestamp':
        parsed = parse_timestamp(value)
        if parsed is None:
            raise PlantValidationError(f"'{field_name}' must be an ISO-8601 timestamp")
        return parsed
    if kind == 'number':
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PlantValidationError(f"'{field_name}' must be a number")
        return float(value)
    raise PlantValidationError(f"Unsupported field '{field_name}'")


class PlantStore:
    """Narrow get/list/create/update/delete interface over the plant table.

    Writes to the same plant id are serialized with a per-id lock so two
    concurrent partial updates can't overwrite each other's changes.
    """

    def __init__(self):
        self._locks_guard = threading.Lock()
        # plant id -> [lock, number of writers holding or waiting on it]
        self._locks = {}

    @contextmanager
    def _locked(self, plant_id):
        with self._locks_guard:
            entry = self._locks.setdefault(plant_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[plant_id]

    def list(self):
        return Plant.query.order_by(Plant.date_added, Plant.id).all()

    def count(self):
        return Plant.query.count()

    def get(self, plant_id):
        plant = db.session.get(Plant, plant_id)
        if plant is None:
            raise PlantNotFoundError(plant_id)
        return plant

    def create(self, data):
        if not isinstance(data, dict):
            raise PlantValidationError("Request body must be a JSON object")

        missing = [f for f in REQUIRED_FIELDS if not isinstance(data.get(f), str) or not data.get(f).strip()]
        if missing:
            raise PlantValidationError(
                "Missing required fields: name, species, and location are required")

        now = utcnow()
        plant = Plant(
            id=str(uuid.uuid4()),
            image_url=current_app.config['DEFAULT_IMAGE_URL'],
            date_added=now,
            last_watered=now,
            carbon_savings=0.0,
        )
        self._apply(plant, data)

        try:
            db.session.add(plant)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        current_app.logger.info(f"Created plant {plant.id} ({plant.name}).")
        return plant

    def update(self, plant_id, data):
        if not isinstance(data, dict):
            raise PlantValidationError("Request body must be a JSON object")

        with self._locked(plant_id):
            plant = self.get(plant_id)
            db.session.refresh(plant)
            try:
                self._apply(plant, data)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        current_app.logger.info(f"Updated plant {plant_id}.")
        return plant

    def water(self, plant_id):
        with self._locked(plant_id):
            plant = self.get(plant_id)
            plant.last_watered = utcnow()
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        current_app.logger.info(f"Plant {plant_id} watered.")
        return plant

    def delete(self, plant_id):
        with self._locked(plant_id):
            plant = self.get(plant_id)
            snapshot = plant.to_dict()
            try:
                db.session.delete(plant)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        current_app.logger.info(f"Deleted plant {plant_id}.")
        return snapshot

    def seed_demo_plants(self):
        if self.count():
            return 0
        for index, entry in enumerate(DEMO_PLANTS, start=1):
            plant = Plant(id=str(index), image_url=current_app.config['DEFAULT_IMAGE_URL'])
            self._apply(plant, entry)
            db.session.add(plant)
        db.session.commit()
        current_app.logger.info(f"Seeded {len(DEMO_PLANTS)} demo plants.")
        return len(DEMO_PLANTS)

    @staticmethod
    def _apply(plant, data):
        # Validate everything first so a bad field leaves the record untouched.
        changes = {}
        for field_name, (attr, kind) in UPDATABLE_FIELDS.items():
            if field_name in data:
                changes[attr] = _coerce(field_name, kind, data[field_name])
        for attr, value in changes.items():
            setattr(plant, attr, value)
