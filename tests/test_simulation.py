import asyncio
import random

import pytest

from farmpulse.domain import SensorType
from farmpulse.errors import ValidationError
from farmpulse.hub import Session
from farmpulse.simulation import BASE_SENSORS, SCENARIOS, generate_batch, simulated_device_id
from farmpulse.validation import validate_batch


def live_tasks(animal_id):
    return [t for t in asyncio.all_tasks() if t.get_name() == f"simulation-{animal_id}" and not t.done()]


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


async def test_start_twice_leaves_one_timer(services):
    engine = services.simulations
    try:
        engine.start("A1", 5000)
        engine.start("A1", 5000)
        await settle()
        assert engine.active() == ["A1"]
        assert len(live_tasks("A1")) == 1
    finally:
        engine.stop_all()


@pytest.mark.parametrize("starts", [0, 2])
async def test_stop_always_leaves_no_timer(services, starts):
    engine = services.simulations
    for _ in range(starts):
        engine.start("A1", 5000)
    assert engine.stop("A1") is (starts > 0)
    await settle()
    assert engine.active() == []
    assert live_tasks("A1") == []


async def test_stop_all_cancels_every_timer(services):
    engine = services.simulations
    engine.start("A1", 5000)
    engine.start("A2", 5000, "fever")
    assert sorted(engine.active()) == ["A1", "A2"]
    engine.stop_all()
    await settle()
    assert engine.active() == []
    assert live_tasks("A1") == live_tasks("A2") == []


async def test_unknown_scenario_is_rejected(services):
    with pytest.raises(ValidationError):
        services.simulations.start("A1", 5000, "stampede")
    assert services.simulations.active() == []


@pytest.mark.parametrize("scenario", sorted(SCENARIOS))
def test_generated_batches_always_validate(scenario):
    rng = random.Random(7)
    for _ in range(200):
        batch = generate_batch("A12345", list(BASE_SENSORS) + [SensorType.PREGNANCY], SCENARIOS[scenario], rng)
        validate_batch(batch.readings)


def test_generated_batch_shape():
    batch = generate_batch("A12345", BASE_SENSORS, rng=random.Random(1))
    assert batch.device_id == "DEV-12345"
    assert [r.sensor_type for r in batch.readings] == ["DHT11", "MPU6050", "MICROPHONE", "HEALTH"]
    assert simulated_device_id(None) == "DEV-SIMULATOR"
    assert generate_batch(None, [SensorType.PREGNANCY]).readings == []


async def test_tick_broadcasts_raw_then_enriched_batch(services, store, timeseries, make_socket):
    dashboard = make_socket()
    services.hub.register(Session("d1", "dashboard", dashboard))
    await services.simulations.tick("A1")

    raw, enriched = dashboard.sent
    assert raw["type"] == enriched["type"] == "sensorData"
    assert "anomalyDetected" not in raw
    assert "anomalyDetected" in enriched
    assert [r["sensorType"] for r in raw["readings"]] == ["DHT11", "MPU6050", "MICROPHONE", "HEALTH"]
    assert len(timeseries.points) == 4
    assert len(store.recent_health_samples("A1")) == 2


async def test_pregnant_animal_gets_fetal_readings(services, store, confirm_pregnancy):
    confirm_pregnancy("A1", gestation_days=100)
    result = await services.simulations.tick("A1", SCENARIOS["normal"])
    assert result.fetal_health_data["isPregnant"] is True
    assert len(store.recent_pregnancy_stats("A1")) == 1


async def test_running_simulation_ingests_on_every_tick(services, timeseries):
    engine = services.simulations
    try:
        engine.start("A1", 20)
        for _ in range(100):
            await asyncio.sleep(0.02)
            if len(timeseries.points) >= 8:
                break
    finally:
        await engine.aclose()
    assert len(timeseries.points) >= 8


async def test_session_disconnect_does_not_stop_simulation(services, make_socket):
    hub = services.hub
    session = await hub.connect(make_socket(), {"type": "device", "deviceId": "DEV-001", "apiKey": "secret-1"})
    try:
        services.simulations.start(session.animal_id, 5000)
        hub.disconnect(session)
        await settle()
        assert "DEV-001" not in hub.sessions
        assert services.simulations.active() == ["A1"]
        assert len(live_tasks("A1")) == 1
    finally:
        services.simulations.stop_all()


class SlowPipeline:
    def __init__(self):
        self.started = asyncio.Event()
        self.finished = False

    async def ingest(self, batch):
        self.started.set()
        await asyncio.sleep(0.05)
        self.finished = True


async def test_aclose_waits_for_the_batch_in_flight(services):
    engine = services.simulations
    slow = SlowPipeline()
    engine.pipeline = slow
    engine.start("A1", 1)
    engine.start("A2", 5000)
    await asyncio.wait_for(slow.started.wait(), timeout=2)

    await engine.aclose()

    assert slow.finished
    assert engine.active() == []
    assert live_tasks("A1") == live_tasks("A2") == []


async def test_aclose_without_simulations_is_a_no_op(services):
    await services.simulations.aclose()
    assert services.simulations.active() == []
