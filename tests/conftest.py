import pytest

from farmpulse.config import Settings
from farmpulse.database import create_tables
from farmpulse.devices import InMemoryDeviceStore
from farmpulse.domain import PregnancyRecord, SensorBatch, SensorReading
from farmpulse.services import build_services
from farmpulse.timeseries import InMemoryTimeSeriesWriter

STATIC_KEY = "static-test-key"


class FakeSocket:
    """Stands in for a Starlette WebSocket in hub tests."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.accepted = False
        self.closed = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(message)

    async def close(self, code: int = 1000):
        self.closed = True

    def of_type(self, kind):
        return [m for m in self.sent if m.get("type") == kind]


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        device_api_key=STATIC_KEY,
        device_store="memory",
        timeseries_backend="memory",
        bcrypt_rounds=4,
    )


@pytest.fixture
def devices():
    store = InMemoryDeviceStore(rounds=4)
    store.register("DEV-001", "Collar 1", "secret-1", animal_id="A1", sensor_types=["DHT11", "HEALTH"])
    store.register("DEV-002", "Collar 2", "secret-2")
    return store


@pytest.fixture
def services(settings, devices):
    svc = build_services(settings, timeseries=InMemoryTimeSeriesWriter(), devices=devices)
    create_tables(svc.engine)
    for animal_id in ("A1", "A2", "A3"):
        svc.store.add_animal(animal_id)
    yield svc
    svc.close()


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def timeseries(services):
    return services.timeseries


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def confirm_pregnancy(store):
    def _confirm(animal_id, gestation_days=150, status="Confirmed"):
        store.set_pregnancy_record(PregnancyRecord(animal_id, status, gestation_days, "2026-12-01", "2026-09-01"))
    return _confirm


def make_batch(readings, animal_id="A1", device_id="DEV-001"):
    return SensorBatch(
        device_id=device_id,
        animal_id=animal_id,
        readings=[SensorReading(sensor_type, values) for sensor_type, values in readings],
    )


@pytest.fixture
def batch_of():
    return make_batch
