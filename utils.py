import datetime

from flask import current_app


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value):
    """Returns an aware UTC datetime for ``value``, or None if it can't be read.

    Accepts datetimes and ISO-8601 strings (a trailing ``Z`` is allowed).
    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def format_timestamp(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat().replace('+00:00', 'Z')


def check_moisture(moisture, minimum=30.0):
    return moisture >= minimum

def check_light(light, minimum=200.0):
    return light >= minimum

def check_temperature(temperature, low=15.0, high=30.0):
    return low <= temperature <= high

def check_humidity(humidity, low=40.0, high=80.0):
    return low <= humidity <= high

def check_pressure(pressure, low=950.0, high=1050.0):
    return low <= pressure <= high


def build_care_alerts(plant_name, reading, config=None):
    """Turns one reading into human-readable care alerts for a plant.

    Only the metrics present in ``reading`` are checked, so a device that
    doesn't report humidity never raises a humidity alert.
    """
    if config is None:
        config = current_app.config
    alerts = []

    moisture = reading.get('moisture')
    if moisture is not None and not check_moisture(moisture, config['MIN_MOISTURE']):
        alerts.append(f"{plant_name} needs watering (soil moisture {moisture}%).")

    light = reading.get('light')
    if light is not None and not check_light(light, config['MIN_LIGHT']):
        alerts.append(f"Turn on the glow lamp for {plant_name} (light {light} lux).")

    temperature = reading.get('temperature')
    if temperature is not None and not check_temperature(temperature, config['MIN_TEMP'], config['MAX_TEMP']):
        alerts.append(f"{plant_name} temperature {temperature}°C is out of range "
                      f"({config['MIN_TEMP']:g}-{config['MAX_TEMP']:g}°C).")

    humidity = reading.get('humidity')
    if humidity is not None and not check_humidity(humidity, config['MIN_HUMIDITY'], config['MAX_HUMIDITY']):
        alerts.append(f"{plant_name} humidity {humidity}% is out of range "
                      f"({config['MIN_HUMIDITY']:g}-{config['MAX_HUMIDITY']:g}%).")

    pressure = reading.get('pressure')
    if pressure is not None and not check_pressure(pressure, config['MIN_PRESSURE'], config['MAX_PRESSURE']):
        alerts.append(f"{plant_name} air pressure {pressure} hPa is out of range "
                      f"({config['MIN_PRESSURE']:g}-{config['MAX_PRESSURE']:g} hPa).")

    return alerts
