"""CO2 and water savings computed from the plant list and two reference tables."""
import json
from dataclasses import dataclass, field

from flask import current_app

from models import db, PublishedTotals
from utils import utcnow

CALCULATION_METHOD = 'reference-table'


def load_reference_table(path, value_key):
    """Loads a ``[{"Plant": name, value_key: number}, ...]`` file into a lookup dict.

    Keys are lower-cased plant names. Entries with no plant name or a
    non-numeric value are skipped; the first entry for a name wins.
    """
    with open(path, 'r', encoding='utf-8') as f:
        rows = json.load(f)

    table = {}
    for row in rows:
        name = row.get('Plant')
        value = row.get(value_key)
        if not isinstance(name, str) or not name.strip():
            continue
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            continue
        table.setdefault(name.strip().lower(), float(value))
    return table


def lookup(table, plant_name):
    if not plant_name:
        return None
    return table.get(plant_name.strip().lower())


@dataclass
class FootprintSummary:
    co2_plants: list = field(default_factory=list)
    water_plants: list = field(default_factory=list)
    total_co2: float = 0.0
    total_water: float = 0.0
    equivalent_car_miles: float = 0.0
    trees_equivalent: float = 0.0

    def to_dict(self):
        return {
            'co2Plants': self.co2_plants,
            'waterPlants': self.water_plants,
            'totalCO2': self.total_co2,
            'totalWater': self.total_water,
            'equivalentCarMiles': self.equivalent_car_miles,
            'treesEquivalent': self.trees_equivalent,
        }


def plant_co2_grams(plant_name, co2_table, multiplier=1000):
    matched = lookup(co2_table, plant_name)
    if matched is None:
        return None
    return matched * multiplier


def compute_footprint(plants, co2_table, water_table, multiplier=1000,
                      grams_per_mile=404.0, grams_per_tree=24629.0):
    """Joins ``plants`` against both tables by name, case-insensitively.

    Each table is matched independently: a plant may count towards CO2 and
    not water, or the other way round. Plants without a match are left out
    of that table's listing and total.
    """
    summary = FootprintSummary()

    for plant in plants:
        co2 = plant_co2_grams(plant.name, co2_table, multiplier)
        if co2 is not None:
            summary.co2_plants.append({'id': plant.id, 'name': plant.name, 'co2': co2})
            summary.total_co2 += co2

        water = lookup(water_table, plant.name)
        if water is not None:
            summary.water_plants.append({'id': plant.id, 'name': plant.name, 'water': water})
            summary.total_water += water

    summary.equivalent_car_miles = summary.total_co2 / grams_per_mile
    summary.trees_equivalent = summary.total_co2 / grams_per_tree
    return summary


def carbon_savings_metrics(co2_grams, grams_per_mile=404.0, grams_per_tree=24629.0, days_per_year=365):
    return {
        'CO2': co2_grams,
        'equivalentCarMiles': co2_grams / grams_per_mile,
        'treesEquivalent': co2_grams / grams_per_tree,
        'dailyRate': co2_grams / days_per_year,
    }


def publish_totals(summary):
    """Stores the summary totals as the single shared PublishedTotals row.

    Publishing the same totals again leaves the row unchanged apart from the
    timestamp. Summaries with a zero CO2 or water total are not published and
    None is returned.
    """
    if not summary.total_co2 or not summary.total_water:
        current_app.logger.info("Footprint totals not published: CO2 or water total is zero.")
        return None

    row = db.session.get(PublishedTotals, 1)
    if row is None:
        row = PublishedTotals(id=1)
        db.session.add(row)
    row.total_co2 = summary.total_co2
    row.total_water = summary.total_water
    row.published_at = utcnow()
    db.session.commit()

    current_app.logger.info(f"Published footprint totals: {row.total_co2} g CO2, {row.total_water} L water.")
    return row


def latest_published_totals():
    return db.session.get(PublishedTotals, 1)


class ReferenceTables:
    """The two lookup tables, loaded once when the app starts."""

    def __init__(self, co2, water):
        self.co2 = co2
        self.water = water

    @classmethod
    def from_config(cls, config):
        return cls(
            co2=load_reference_table(config['EMISSIONS_DATA_PATH'], 'CO2Saved'),
            water=load_reference_table(config['WATER_DATA_PATH'], 'Water_Saved'),
        )

    def summarize(self, plants, config):
        return compute_footprint(
            plants, self.co2, self.water,
            multiplier=config['CO2_UNIT_MULTIPLIER'],
            grams_per_mile=config['GRAMS_PER_MILE'],
            grams_per_tree=config['GRAMS_PER_TREE'],
        )
