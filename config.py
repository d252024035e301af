import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))

dotenv_path = os.path.join(basedir, '.env')

load_dotenv(dotenv_path=dotenv_path)


def _env_flag(name, default):
    return os.getenv(name, default).lower() in ('true', '1', 't')


class Config:
    """Base configuration class. Contains default settings."""

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-only-secret-key')

    # The plant registry lives in memory unless DATABASE_URL says otherwise.
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///:memory:')

    # --- General Flask Settings ---
    DEBUG = False
    TESTING = False

    # --- SQLAlchemy Settings ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # --- Particle Cloud Settings ---
    PARTICLE_DEVICE_ID = os.getenv('PARTICLE_DEVICE_ID')
    PARTICLE_ACCESS_TOKEN = os.getenv('PARTICLE_ACCESS_TOKEN')
    PARTICLE_API_URL = os.getenv('PARTICLE_API_URL', 'https://api.particle.io/v1')
    PARTICLE_TIMEOUT = float(os.getenv('PARTICLE_TIMEOUT', 10))
    PARTICLE_VARIABLES = ('light', 'moisture', 'temperature', 'humidity', 'pressure')
    POLL_INTERVAL = int(os.getenv('POLL_INTERVAL', 30))

    # --- Sensor Settings ---
    # Metric set carried by each kind of device. Readings only ever hold
    # the metrics listed for the configured device type.
    DEVICE_METRICS = {
        'particle-argon': ('moisture', 'temperature', 'light', 'humidity', 'pressure'),
        'scale-probe': ('moisture', 'temperature', 'light', 'weight'),
    }
    DEVICE_TYPE = os.getenv('DEVICE_TYPE', 'particle-argon')

    # --- Footprint Settings ---
    EMISSIONS_DATA_PATH = os.getenv('EMISSIONS_DATA_PATH', os.path.join(basedir, 'data', 'emissions_data.json'))
    WATER_DATA_PATH = os.getenv('WATER_DATA_PATH', os.path.join(basedir, 'data', 'water_footprint.json'))
    CO2_UNIT_MULTIPLIER = 1000  # kg -> g
    GRAMS_PER_MILE = 404.0      # CO2 emitted per mile by an average car
    GRAMS_PER_TREE = 24629.0    # CO2 absorbed by an average tree per year
    DAYS_PER_YEAR = 365

    # --- Care Alert Thresholds ---
    MIN_MOISTURE = 30.0
    MIN_LIGHT = 200.0
    MIN_TEMP = 15.0
    MAX_TEMP = 30.0
    MIN_HUMIDITY = 40.0
    MAX_HUMIDITY = 80.0
    MIN_PRESSURE = 950.0
    MAX_PRESSURE = 1050.0

    # --- Application Specific Settings ---
    SEED_DEMO_PLANTS = _env_flag('SEED_DEMO_PLANTS', 'True')
    DEFAULT_IMAGE_URL = '/static/images/default-plant.svg'

    # --- Logging ---
    LOGGING_LEVEL = os.getenv('LOGGING_LEVEL', 'INFO').upper()


class DevelopmentConfig(Config):
    """Configuration for development environment."""
    DEBUG = True


class ProductionConfig(Config):
    """Configuration for production environment."""
    DEBUG = False
    SECRET_KEY = os.getenv('SECRET_KEY')


class TestingConfig(Config):
    """Configuration for testing."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SEED_DEMO_PLANTS = False
    PARTICLE_DEVICE_ID = 'test-device'
    PARTICLE_ACCESS_TOKEN = 'test-token'
    PARTICLE_API_URL = 'https://particle.test/v1'


config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig,
    default=DevelopmentConfig
)

def get_config():
    """Gets the configuration class based on FLASK_ENV environment variable."""
    env_name = os.getenv('FLASK_ENV', 'default').lower()
    config_class = config_by_name.get(env_name, DevelopmentConfig)

    if config_class == ProductionConfig:
        secret_key = getattr(config_class, 'SECRET_KEY', None)
        if not secret_key:
            raise ValueError("CRITICAL: No SECRET_KEY configured for production environment.")

    return config_class
