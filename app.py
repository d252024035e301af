import re
import time
import logging

import click
from flask import (Flask, render_template, request, redirect, url_for,
                   flash, jsonify)
from werkzeug.exceptions import HTTPException, MethodNotAllowed

# --- Import db and Models ---
from models import db

# --- Import Config ---
from config import get_config

# --- Import Domain Modules ---
from footprint import (CALCULATION_METHOD, ReferenceTables, carbon_savings_metrics,
                       latest_published_totals, plant_co2_grams, publish_totals)
from particle import ParticleClient, TelemetryError, TelemetryPoller
from readings import (DEFAULT_TIME_RANGE, TIME_RANGES, SensorDataCache, filter_readings,
                      generate_mock_readings, summarize_readings)
from store import PlantNotFoundError, PlantStore, PlantValidationError
from utils import build_care_alerts, format_timestamp, utcnow


# --- Create and Configure App ---
app = Flask(__name__)

# --- Load Configuration based on FLASK_ENV ---
app_config = get_config()
app.config.from_object(app_config)

# --- Initialize Extensions ---
db.init_app(app)


# --- Logging Setup (using config value) ---
log_level_name = app.config.get('LOGGING_LEVEL', 'INFO')
log_level = getattr(logging, log_level_name, logging.INFO)
logging.basicConfig(level=log_level,
                    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')


device_type = app.config['DEVICE_TYPE']
if device_type not in app.config['DEVICE_METRICS']:
    raise ValueError(f"Unknown DEVICE_TYPE '{device_type}'. "
                     f"Expected one of: {', '.join(app.config['DEVICE_METRICS'])}")
SENSOR_METRICS = tuple(app.config['DEVICE_METRICS'][device_type])

plant_store = PlantStore()
reference_tables = ReferenceTables.from_config(app.config)
sensor_cache = SensorDataCache(SENSOR_METRICS)
telemetry_poller = TelemetryPoller(ParticleClient.from_config(app.config), logger=app.logger)

PLANT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')

TIME_RANGE_OPTIONS = [
    ('24h', 'Last 24 Hours'),
    ('7d', 'Last 7 Days'),
    ('30d', 'Last 30 Days'),
]


with app.app_context():
    db.create_all()
    if app.config.get('SEED_DEMO_PLANTS'):
        plant_store.seed_demo_plants()


# --- Response Envelope ---

def api_success(data=None, status=200, **extra):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    body.update({k: v for k, v in extra.items() if v is not None})
    return jsonify(body), status


def api_error(message, status):
    return jsonify({'success': False, 'error': message}), status


def is_valid_plant_id(plant_id):
    return bool(plant_id) and PLANT_ID_PATTERN.match(plant_id) is not None


def selected_range():
    time_range = request.args.get('range', DEFAULT_TIME_RANGE)
    return time_range if time_range in TIME_RANGES else DEFAULT_TIME_RANGE


def readings_payload(readings):
    """Readings as JSON, narrowed to ``?range=`` with per-metric averages when asked."""
    extra = {'lastUpdated': format_timestamp(utcnow())}
    if 'range' in request.args:
        time_range = selected_range()
        readings = filter_readings(readings, time_range)
        extra['range'] = time_range
        extra['averages'] = summarize_readings(readings, SENSOR_METRICS)
    return api_success([r.to_dict() for r in readings], **extra)


def plant_carbon_savings(plant):
    co2 = plant_co2_grams(plant.name, reference_tables.co2, app.config['CO2_UNIT_MULTIPLIER'])
    return co2 or 0.0


def savings_metrics(co2_grams):
    return carbon_savings_metrics(
        co2_grams,
        grams_per_mile=app.config['GRAMS_PER_MILE'],
        grams_per_tree=app.config['GRAMS_PER_TREE'],
        days_per_year=app.config['DAYS_PER_YEAR'],
    )


OPTIONAL_FORM_FIELDS = ('imageUrl',)


def plant_form_data():
    form = request.form.to_dict()
    for key in OPTIONAL_FORM_FIELDS:
        if not form.get(key, '').strip():
            form.pop(key, None)
    return form


def collect_care_alerts(plants):
    alerts = []
    for plant in plants:
        if not plant.sensor_id:
            continue
        reading = sensor_cache.for_plant(plant).current_reading
        for message in build_care_alerts(plant.name, reading):
            alerts.append({'plantId': plant.id, 'plantName': plant.name, 'message': message})
    return alerts


# --- Error Handlers ---

@app.errorhandler(HTTPException)
def handle_http_error(e):
    if not request.path.startswith('/api/'):
        return e
    response, status = api_error(e.description if e.code != 405 else f"Method {request.method} Not Allowed", e.code)
    if isinstance(e, MethodNotAllowed) and e.valid_methods:
        response.headers['Allow'] = ', '.join(e.valid_methods)
    return response, status


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    app.logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
    if request.path.startswith('/api/'):
        return api_error('Internal server error', 500)
    return render_template('error.html', message="An unexpected error occurred."), 500


# --- Plant API ---

@app.route('/api/plants', methods=['GET'])
def api_list_plants():
    try:
        plants = [p.to_dict() for p in plant_store.list()]
    except Exception as e:
        app.logger.error(f"Error listing plants: {e}", exc_info=True)
        return api_error('Failed to fetch plants', 500)
    return api_success(plants, totalCount=len(plants))


@app.route('/api/plants', methods=['POST'])
def api_create_plant():
    data = request.get_json(silent=True)
    try:
        plant = plant_store.create(data)
    except PlantValidationError as e:
        return api_error(str(e), 400)
    except Exception as e:
        app.logger.error(f"Error adding plant: {e}", exc_info=True)
        return api_error('Failed to add plant', 500)
    return api_success(plant.to_dict(), 201, message='Plant created')


@app.route('/api/plants/<plant_id>', methods=['GET'])
def api_get_plant(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Invalid plant ID', 400)
    try:
        plant = plant_store.get(plant_id)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    return api_success(plant.to_dict())


@app.route('/api/plants/<plant_id>', methods=['PUT', 'PATCH'])
def api_update_plant(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Invalid plant ID', 400)
    data = request.get_json(silent=True)
    try:
        plant = plant_store.update(plant_id, data)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except PlantValidationError as e:
        return api_error(str(e), 400)
    except Exception as e:
        app.logger.error(f"Error updating plant {plant_id}: {e}", exc_info=True)
        return api_error('Failed to update plant', 500)
    return api_success(plant.to_dict(), message='Plant updated')


@app.route('/api/plants/<plant_id>', methods=['DELETE'])
def api_delete_plant(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Invalid plant ID', 400)
    try:
        deleted = plant_store.delete(plant_id)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except Exception as e:
        app.logger.error(f"Error deleting plant {plant_id}: {e}", exc_info=True)
        return api_error('Failed to delete plant', 500)
    return api_success(deleted, message='Plant deleted')


@app.route('/api/plants/<plant_id>/water', methods=['POST'])
def api_water_plant(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Invalid plant ID', 400)
    try:
        plant = plant_store.water(plant_id)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except Exception as e:
        app.logger.error(f"Error watering plant {plant_id}: {e}", exc_info=True)
        return api_error('Failed to update plant', 500)
    return api_success(plant.to_dict(), message='Plant watered')


# --- Readings & Sensor API ---

@app.route('/api/readings', methods=['GET'])
def api_readings():
    try:
        readings = generate_mock_readings(SENSOR_METRICS)
    except Exception as e:
        app.logger.error(f"Error in readings API: {e}", exc_info=True)
        return api_error('Failed to fetch readings', 500)
    return readings_payload(readings)


@app.route('/api/plants/<plant_id>/readings', methods=['GET'])
def api_plant_readings(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Plant ID is required', 400)
    try:
        plant = plant_store.get(plant_id)
        readings = generate_mock_readings(SENSOR_METRICS, plant_id=plant.id)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except Exception as e:
        app.logger.error(f"Error fetching readings for plant {plant_id}: {e}", exc_info=True)
        return api_error('Failed to fetch readings', 500)
    return readings_payload(readings)


@app.route('/api/plants/<plant_id>/sensor-data', methods=['GET'])
def api_sensor_data(plant_id):
    if not is_valid_plant_id(plant_id):
        return api_error('Invalid plant ID', 400)
    try:
        plant = plant_store.get(plant_id)
        sensor_data = sensor_cache.for_plant(plant)
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except Exception as e:
        app.logger.error(f"Error fetching sensor data for plant {plant_id}: {e}", exc_info=True)
        return api_error('Internal server error while fetching sensor data', 500)
    return api_success(sensor_data.to_dict(), lastUpdated=format_timestamp(sensor_data.last_updated))


@app.route('/api/particle-data', methods=['GET'])
def api_particle_data():
    try:
        reading = telemetry_poller.poll() or telemetry_poller.reading
    except TelemetryError as e:
        return api_error(str(e), 500)
    except Exception as e:
        app.logger.error(f"Error fetching Particle data: {e}", exc_info=True)
        return api_error('Failed to fetch sensor data', 500)

    if reading is None:
        return api_error('Telemetry poll was superseded before any reading arrived', 500)
    return api_success({
        'currentReading': reading.to_dict(),
        'lastUpdated': format_timestamp(telemetry_poller.last_updated),
    })


@app.route('/api/notifications', methods=['GET'])
def api_notifications():
    try:
        alerts = collect_care_alerts(plant_store.list())
    except Exception as e:
        app.logger.error(f"Error building care alerts: {e}", exc_info=True)
        return api_error('Failed to build notifications', 500)
    return api_success(alerts, totalCount=len(alerts))


# --- Carbon & Footprint API ---

@app.route('/api/carbon-savings', methods=['GET'])
def api_carbon_savings():
    plant_id = request.args.get('plantId')
    try:
        if plant_id:
            if not is_valid_plant_id(plant_id):
                return api_error('Invalid plant ID', 400)
            co2 = plant_carbon_savings(plant_store.get(plant_id))
        else:
            co2 = reference_tables.summarize(plant_store.list(), app.config).total_co2
    except PlantNotFoundError:
        return api_error('Plant not found', 404)
    except Exception as e:
        app.logger.error(f"Error calculating carbon savings: {e}", exc_info=True)
        return api_error('Failed to calculate carbon savings', 500)
    return api_success(savings_metrics(co2), calculationMethod=CALCULATION_METHOD)


@app.route('/api/footprint', methods=['GET'])
def api_footprint():
    try:
        summary = reference_tables.summarize(plant_store.list(), app.config)
    except Exception as e:
        app.logger.error(f"Error computing footprint: {e}", exc_info=True)
        return api_error('Failed to compute footprint', 500)
    return api_success(summary.to_dict(), calculationMethod=CALCULATION_METHOD)


@app.route('/api/footprint/publish', methods=['POST'])
def api_publish_footprint():
    try:
        summary = reference_tables.summarize(plant_store.list(), app.config)
        published = publish_totals(summary)
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error publishing footprint totals: {e}", exc_info=True)
        return api_error('Failed to publish footprint totals', 500)
    if published is None:
        return api_success(message='Nothing to publish: CO2 or water total is zero')
    return api_success(published.to_dict(), message='Footprint totals published')


@app.route('/api/footprint/published', methods=['GET'])
def api_published_footprint():
    published = latest_published_totals()
    if published is None:
        return api_error('No footprint totals have been published yet', 404)
    return api_success(published.to_dict())


# --- Pages ---

@app.route('/')
def dashboard():
    time_range = selected_range()
    try:
        plants = plant_store.list()
        summary = reference_tables.summarize(plants, app.config)
        readings = filter_readings(generate_mock_readings(SENSOR_METRICS), time_range)
        averages = summarize_readings(readings, SENSOR_METRICS)
        published = latest_published_totals()
    except Exception as e:
        app.logger.error(f"Dashboard error: {e}", exc_info=True)
        flash("An unexpected error occurred loading the dashboard.", "error")
        return render_template('dashboard.html', plant_count=0, summary=None, averages={},
                               time_range=time_range, time_ranges=TIME_RANGE_OPTIONS,
                               metrics=SENSOR_METRICS, published=None, readings=[])

    return render_template('dashboard.html', plant_count=len(plants), summary=summary,
                           averages=averages, time_range=time_range, time_ranges=TIME_RANGE_OPTIONS,
                           metrics=SENSOR_METRICS, published=published,
                           readings=[r.to_dict() for r in readings])


@app.route('/plants')
def view_plants():
    """Displays the plant list, optionally narrowed by a search term."""
    query = request.args.get('q', '').strip()
    try:
        plants = plant_store.list()
    except Exception as e:
        app.logger.error(f"View plants error: {e}", exc_info=True)
        flash("An unexpected error occurred loading plants.", "error")
        plants = []

    if query:
        needle = query.lower()
        plants = [p for p in plants
                  if needle in p.name.lower() or needle in p.species.lower() or needle in p.location.lower()]
    return render_template('plants.html', plants=plants, query=query)


@app.route('/plants/new', methods=['GET', 'POST'])
def create_plant():
    if request.method == 'POST':
        form = plant_form_data()
        try:
            plant = plant_store.create(form)
        except PlantValidationError as e:
            flash(str(e), "error")
            return render_template('plant_form.html', plant=None, form=form), 400
        flash(f"Plant '{plant.name}' added successfully!", "success")
        return redirect(url_for('plant_detail', plant_id=plant.id))

    return render_template('plant_form.html', plant=None, form={})


@app.route('/plants/<plant_id>')
def plant_detail(plant_id):
    time_range = selected_range()
    try:
        plant = plant_store.get(plant_id)
    except PlantNotFoundError:
        flash("Plant not found.", "error")
        return redirect(url_for('view_plants'))

    sensor_data = sensor_cache.for_plant(plant)
    readings = filter_readings(generate_mock_readings(SENSOR_METRICS, plant_id=plant.id), time_range)
    return render_template(
        'plant_detail.html',
        plant=plant,
        sensor_data=sensor_data,
        readings=[r.to_dict() for r in readings],
        averages=summarize_readings(readings, SENSOR_METRICS),
        metrics=SENSOR_METRICS,
        time_range=time_range,
        time_ranges=TIME_RANGE_OPTIONS,
        alerts=build_care_alerts(plant.name, sensor_data.current_reading) if plant.sensor_id else [],
        carbon=savings_metrics(plant_carbon_savings(plant)),
    )


@app.route('/plants/<plant_id>/edit', methods=['GET', 'POST'])
def edit_plant(plant_id):
    try:
        plant = plant_store.get(plant_id)
    except PlantNotFoundError:
        flash("Plant not found.", "error")
        return redirect(url_for('view_plants'))

    if request.method == 'POST':
        form = plant_form_data()
        try:
            plant = plant_store.update(plant_id, form)
        except PlantValidationError as e:
            flash(str(e), "error")
            return render_template('plant_form.html', plant=plant, form=form), 400
        flash(f"Plant '{plant.name}' updated successfully!", "success")
        return redirect(url_for('plant_detail', plant_id=plant_id))

    return render_template('plant_form.html', plant=plant, form=plant.to_dict())


@app.route('/plants/<plant_id>/water', methods=['POST'])
def water_plant(plant_id):
    try:
        plant = plant_store.water(plant_id)
        flash(f"Marked '{plant.name}' as watered.", "success")
    except PlantNotFoundError:
        flash("Plant not found.", "error")
        return redirect(url_for('view_plants'))
    return redirect(url_for('plant_detail', plant_id=plant_id))


@app.route('/plants/<plant_id>/delete', methods=['POST'])
def delete_plant(plant_id):
    try:
        deleted = plant_store.delete(plant_id)
        flash(f"Plant '{deleted['name']}' deleted.", "info")
    except PlantNotFoundError:
        flash("Plant not found.", "error")
    return redirect(url_for('view_plants'))


@app.route('/footprint')
def footprint_page():
    try:
        summary = reference_tables.summarize(plant_store.list(), app.config)
    except Exception as e:
        app.logger.error(f"Footprint page error: {e}", exc_info=True)
        flash("An unexpected error occurred computing your footprint.", "error")
        summary = None
    return render_template('footprint.html', summary=summary, published=latest_published_totals(),
                           grams_per_mile=app.config['GRAMS_PER_MILE'],
                           grams_per_tree=app.config['GRAMS_PER_TREE'])


@app.route('/footprint/publish', methods=['POST'])
def publish_footprint():
    try:
        published = publish_totals(reference_tables.summarize(plant_store.list(), app.config))
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error publishing footprint totals: {e}", exc_info=True)
        flash("An error occurred while publishing your totals.", "error")
        return redirect(url_for('footprint_page'))

    if published is None:
        flash("Nothing to publish yet: add plants with known CO₂ and water savings.", "warning")
    else:
        flash("Footprint totals published.", "success")
    return redirect(url_for('footprint_page'))


# --- CLI Commands ---

@app.cli.command('init-db')
def init_db_command():
    db.drop_all()
    db.create_all()
    seeded = plant_store.seed_demo_plants()
    click.echo(f'Initialized the database with {seeded} demo plants.')


@app.cli.command('poll-telemetry')
@click.option('--interval', type=int, default=None, help='Seconds between polls (default: POLL_INTERVAL).')
@click.option('--count', type=int, default=None, help='Stop after this many polls.')
def poll_telemetry_command(interval, count):
    """Polls the Particle Cloud on a fixed interval, treating failures as transient."""
    interval = interval or app.config['POLL_INTERVAL']
    polls = 0
    try:
        while count is None or polls < count:
            polls += 1
            try:
                reading = telemetry_poller.poll()
            except TelemetryError as e:
                click.echo(f"Poll {polls} failed: {e}", err=True)
            else:
                if reading is not None:
                    click.echo(f"Poll {polls}: {reading.to_dict()}")
            if count is None or polls < count:
                time.sleep(interval)
    except KeyboardInterrupt:
        click.echo("Stopped polling.")
    finally:
        telemetry_poller.cancel()


@app.cli.command('footprint')
@click.option('--publish', is_flag=True, help='Publish the computed totals.')
def footprint_command(publish):
    """Prints the CO2 and water savings for the current plants."""
    summary = reference_tables.summarize(plant_store.list(), app.config)
    for entry in summary.co2_plants:
        click.echo(f"{entry['name']}: {entry['co2']:.0f} g CO2")
    for entry in summary.water_plants:
        click.echo(f"{entry['name']}: {entry['water']:.0f} L water")
    click.echo(f"Total: {summary.total_co2:.0f} g CO2, {summary.total_water:.0f} L water, "
               f"{summary.equivalent_car_miles:.2f} car miles, {summary.trees_equivalent:.2f} trees")
    if publish:
        if publish_totals(summary) is None:
            click.echo("Nothing published: CO2 or water total is zero.")
        else:
            click.echo("Totals published.")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get('DEBUG', False))
