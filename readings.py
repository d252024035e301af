"""Sensor readings: mock history, per-sensor snapshots, and time-range stats."""
import datetime
import math
import random
import threading
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from utils import format_timestamp, parse_timestamp, utcnow

TIME_RANGES = {
    '24h': 1,
    '7d': 7,
    '30d': 30,
}
DEFAULT_TIME_RANGE = '24h'

HISTORY_DAYS = 30
READING_HOURS = (0, 6, 12, 18)

# Base value and random spread for mock readings, per metric.
MOCK_RANGES = {
    'moisture': (60, 30),
    'temperature': (18, 10),
    'light': (300, 700),
    'humidity': (40, 30),
    'pressure': (995, 30),
    'weight': (950, 50),
}


@dataclass(frozen=True)
class SensorReading:
    timestamp: datetime.datetime
    values: dict = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'values', MappingProxyType(dict(self.values)))

    def get(self, metric, default=None):
        return self.values.get(metric, default)

    def to_dict(self):
        data = {'timestamp': format_timestamp(self.timestamp)}
        data.update(self.values)
        return data


@dataclass
class SensorData:
    sensor_id: str
    plant_id: str
    current_reading: SensorReading
    readings: list
    last_updated: datetime.datetime

    def to_dict(self):
        return {
            'sensorId': self.sensor_id,
            'plantId': self.plant_id,
            'currentReading': self.current_reading.to_dict(),
            'readings': [r.to_dict() for r in self.readings],
            'lastUpdated': format_timestamp(self.last_updated),
        }


def _reading_time(reading):
    if isinstance(reading, dict):
        return parse_timestamp(reading.get('timestamp'))
    return parse_timestamp(getattr(reading, 'timestamp', None))


def range_cutoff(time_range, now=None):
    """Start of the window selected by ``time_range``; unknown tags mean 24h."""
    if now is None:
        now = utcnow()
    days = TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])
    return now - datetime.timedelta(days=days)


def filter_readings(readings, time_range, now=None):
    """Readings at or after the range cutoff, oldest first.

    Readings whose timestamp can't be parsed are dropped rather than raising.
    The sort is stable, so readings sharing a timestamp keep their order.
    """
    now = parse_timestamp(now) if now is not None else utcnow()
    cutoff = range_cutoff(time_range, now)

    kept = []
    for reading in readings or ():
        ts = _reading_time(reading)
        if ts is None:
            continue
        if ts >= cutoff:
            kept.append((ts, reading))

    kept.sort(key=lambda pair: pair[0])
    return [reading for _, reading in kept]


def aggregate_readings(readings, metric):
    """Mean of ``metric`` rounded to 2 places, or None when there is nothing to average."""
    values = []
    for reading in readings or ():
        value = reading.get(metric)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            values.append(value)
    if not values:
        return None
    # Exact halves round away from zero (10.125 -> 10.13).
    mean = Decimal(sum(values) / len(values))
    return float(mean.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def summarize_readings(readings, metrics):
    return {metric: aggregate_readings(readings, metric) for metric in metrics}


def _plant_seed(plant_id):
    return sum(ord(char) for char in plant_id)


def _mock_value(metric, rng, base=None, day=0, hour=0):
    low, spread = MOCK_RANGES.get(metric, (0, 100))
    if base is None:
        return rng.randint(low, low + spread)

    day_variance = math.sin(day / 5) * 5
    hour_variance = math.sin(hour / 6) * 3
    jitter = rng.random() * 5 - 2.5

    if metric == 'moisture':
        return min(100, max(0, math.floor(base + day_variance + jitter)))
    if metric == 'temperature':
        return math.floor((base + hour_variance / 2 + jitter / 2) * 10) / 10
    if metric == 'light':
        return math.floor(base + hour_variance * 50 + day_variance * 30 + jitter * 20)
    if metric == 'humidity':
        return min(100, max(0, math.floor(base + day_variance - hour_variance + jitter)))
    if metric == 'pressure':
        return math.floor((base + day_variance / 2 + jitter / 5) * 10) / 10
    return math.floor(base + day_variance / 5 + hour_variance / 10 + jitter)


def _plant_bases(plant_id, metrics):
    seed = _plant_seed(plant_id)
    bases = {}
    for metric in metrics:
        low, spread = MOCK_RANGES.get(metric, (0, 100))
        # Keep per-plant bases inside the lower two thirds of the spread so
        # the variance added later stays within realistic bounds.
        bases[metric] = low + seed % max(1, (spread * 2) // 3)
    return bases


def generate_mock_readings(metrics, plant_id=None, now=None, rng=None):
    """30 days of mock history, four readings a day.

    With a ``plant_id`` the base values are derived from the id so each
    plant gets its own recognizable pattern; without one every value is
    drawn uniformly from the metric's range.
    """
    if now is None:
        now = utcnow()
    if rng is None:
        rng = random.Random()
    bases = _plant_bases(plant_id, metrics) if plant_id else None

    readings = []
    for day in range(HISTORY_DAYS - 1, -1, -1):
        date = (now - datetime.timedelta(days=day)).date()
        for hour in READING_HOURS:
            ts = datetime.datetime.combine(date, datetime.time(hour), tzinfo=datetime.timezone.utc)
            values = {
                metric: _mock_value(metric, rng, bases[metric] if bases else None, day, hour)
                for metric in metrics
            }
            readings.append(SensorReading(timestamp=ts, values=values))
    return readings


def empty_sensor_data(plant_id, metrics, now=None):
    if now is None:
        now = utcnow()
    return SensorData(
        sensor_id='',
        plant_id=plant_id,
        current_reading=SensorReading(timestamp=now, values={metric: 0 for metric in metrics}),
        readings=[],
        last_updated=now,
    )


class SensorDataCache:
    """Mock sensor snapshots, generated once per sensor and kept for the process lifetime."""

    def __init__(self, metrics, rng=None):
        self.metrics = tuple(metrics)
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._by_sensor = {}

    def get(self, sensor_id, plant_id):
        with self._lock:
            data = self._by_sensor.get(sensor_id)
            if data is None:
                now = utcnow()
                current = SensorReading(
                    timestamp=now,
                    values={m: _mock_value(m, self._rng) for m in self.metrics},
                )
                data = SensorData(
                    sensor_id=sensor_id,
                    plant_id=plant_id,
                    current_reading=current,
                    readings=generate_mock_readings(self.metrics, now=now, rng=self._rng),
                    last_updated=now,
                )
                self._by_sensor[sensor_id] = data
            return data

    def for_plant(self, plant):
        if not plant.sensor_id:
            return empty_sensor_data(plant.id, self.metrics)
        return self.get(plant.sensor_id, plant.id)

    def clear(self):
        with self._lock:
            self._by_sensor.clear()
