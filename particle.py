"""Particle Cloud telemetry: one live reading assembled from named device variables."""
import itertools
import threading
from concurrent.futures import ThreadPoolExecutor

import requests

from readings import SensorReading
from utils import parse_timestamp, utcnow


class TelemetryError(Exception):
    pass


class ParticleClient:
    """Reads device variables from the Particle Cloud REST API.

    Every variable is fetched in parallel; if any one of them fails the whole
    reading fails, so callers never see a partially filled reading.
    """

    def __init__(self, device_id, access_token, variables,
                 base_url='https://api.particle.io/v1', timeout=10, session=None):
        self.device_id = device_id
        self.access_token = access_token
        self.variables = tuple(variables)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        # requests.Session is not thread-safe. Without an injected session
        # every variable request goes through requests.get, which opens its own.
        self.session = session

    @classmethod
    def from_config(cls, config, session=None):
        return cls(
            device_id=config.get('PARTICLE_DEVICE_ID'),
            access_token=config.get('PARTICLE_ACCESS_TOKEN'),
            variables=config['PARTICLE_VARIABLES'],
            base_url=config['PARTICLE_API_URL'],
            timeout=config['PARTICLE_TIMEOUT'],
            session=session,
        )

    def fetch_variable(self, name):
        get = self.session.get if self.session is not None else requests.get
        url = f"{self.base_url}/devices/{self.device_id}/{name}"
        try:
            response = get(url, params={'access_token': self.access_token}, timeout=self.timeout)
        except requests.RequestException as e:
            raise TelemetryError(f"Failed to fetch {name}: {e}") from e

        if not response.ok:
            raise TelemetryError(f"Failed to fetch {name}: {response.status_code} {response.reason}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TelemetryError(f"Failed to fetch {name}: invalid JSON") from e

        if not isinstance(payload, dict) or 'result' not in payload:
            raise TelemetryError(f"Failed to fetch {name}: response has no result")
        return payload

    def fetch_reading(self):
        """Returns ``(reading, last_heard)`` for the configured variables."""
        if not self.device_id or not self.access_token:
            raise TelemetryError("Particle Cloud credentials not configured")

        with ThreadPoolExecutor(max_workers=len(self.variables)) as executor:
            futures = {name: executor.submit(self.fetch_variable, name) for name in self.variables}
            # Wait for every request, then surface the first failure in variable order.
            payloads = {}
            failure = None
            for name, future in futures.items():
                try:
                    payloads[name] = future.result()
                except TelemetryError as e:
                    failure = failure or e
            if failure is not None:
                raise failure

        now = utcnow()
        reading = SensorReading(
            timestamp=now,
            values={name: payload['result'] for name, payload in payloads.items()},
        )

        last_heard = None
        first = payloads[self.variables[0]] if self.variables else {}
        core_info = first.get('coreInfo') or {}
        if isinstance(core_info, dict):
            last_heard = parse_timestamp(core_info.get('last_heard'))
        return reading, last_heard or now


class TelemetryPoller:
    """Keeps the last good reading and discards results from superseded polls.

    Each call to :meth:`poll` takes a ticket from a monotonic counter. A
    result is applied only if no newer poll has been applied or started
    since, and :meth:`cancel` invalidates every poll still in flight.
    """

    def __init__(self, client, logger=None):
        self.client = client
        self.logger = logger
        self._tickets = itertools.count(1)
        self._lock = threading.Lock()
        self._latest_ticket = 0
        self._applied_ticket = 0
        self.reading = None
        self.last_updated = None
        self.last_error = None

    def cancel(self):
        with self._lock:
            self._latest_ticket = next(self._tickets)

    def poll(self):
        with self._lock:
            ticket = next(self._tickets)
            self._latest_ticket = ticket

        try:
            reading, last_heard = self.client.fetch_reading()
        except TelemetryError as e:
            with self._lock:
                if ticket == self._latest_ticket:
                    self.last_error = str(e)
            if self.logger:
                self.logger.warning(f"Telemetry poll #{ticket} failed: {e}")
            raise

        with self._lock:
            if ticket != self._latest_ticket or ticket <= self._applied_ticket:
                if self.logger:
                    self.logger.info(f"Discarding stale telemetry poll #{ticket}.")
                return None
            self._applied_ticket = ticket
            self.reading = reading
            self.last_updated = last_heard
            self.last_error = None
        return reading
