from . import db
from sqlalchemy import String, DateTime, Float, Text

from utils import format_timestamp, utcnow


class Plant(db.Model):
    """A houseplant tracked by the dashboard.

    ``carbon_savings`` is a legacy per-plant figure kept so existing clients
    can still read it. It is deprecated: every savings calculation goes
    through the reference tables in :mod:`footprint` instead.
    """
    id = db.Column(String(36), primary_key=True)
    name = db.Column(String(100), nullable=False)
    species = db.Column(String(150), nullable=False)
    location = db.Column(String(100), nullable=False)
    image_url = db.Column(String(255), nullable=False)
    date_added = db.Column(DateTime, nullable=False, default=utcnow, index=True)
    last_watered = db.Column(DateTime, nullable=False, default=utcnow)
    description = db.Column(Text, nullable=True)
    sensor_id = db.Column(String(50), nullable=True, index=True)
    carbon_savings = db.Column(Float, nullable=False, default=0.0)

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'species': self.species,
            'location': self.location,
            'imageUrl': self.image_url,
            'dateAdded': format_timestamp(self.date_added),
            'lastWatered': format_timestamp(self.last_watered),
            'carbonSavings': self.carbon_savings,
        }
        if self.description is not None:
            data['description'] = self.description
        if self.sensor_id:
            data['sensorId'] = self.sensor_id
        return data

    def __repr__(self):
        return f'<Plant {self.id}: {self.name}>'
