from . import db
from sqlalchemy import Integer, DateTime, Float

from utils import format_timestamp, utcnow


class PublishedTotals(db.Model):
    """Last footprint totals published for other pages to share. Single row."""
    id = db.Column(Integer, primary_key=True)
    total_co2 = db.Column(Float, nullable=False)
    total_water = db.Column(Float, nullable=False)
    published_at = db.Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'totalCO2': self.total_co2,
            'totalWater': self.total_water,
            'publishedAt': format_timestamp(self.published_at),
        }

    def __repr__(self):
        return f'<PublishedTotals CO2={self.total_co2}g water={self.total_water}L>'
