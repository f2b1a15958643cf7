# farmpulse/simulation.py
"""
Per-animal synthetic telemetry.

Each running simulation is an asyncio task that periodically builds a full
sensor batch around a scenario baseline and feeds it through the ingestion
pipeline, exactly like a physical device would. Simulations are only stopped
by explicit calls; closing a session never stops one.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .domain import IngestResult, SensorBatch, SensorReading, SensorType
from .errors import PersistenceError, ValidationError
from .store import RelationalStore, run_db

logger = logging.getLogger(__name__)

BASE_SENSORS = (SensorType.DHT11, SensorType.MPU6050, SensorType.MICROPHONE, SensorType.HEALTH)


@dataclass(frozen=True)
class Scenario:
    temperature: float
    heart_rate: float
    activity: float
    fetal_heart_rate: float = 160.0


SCENARIOS: Dict[str, Scenario] = {
    "normal": Scenario(38.5, 70, 5),
    "fever": Scenario(40.2, 84, 4),
    "lowActivity": Scenario(38.3, 68, 2.5),
    "highHeartRate": Scenario(39.2, 92, 5),
}


def simulated_device_id(animal_id: Optional[str]) -> str:
    return f"DEV-{animal_id[1:]}" if animal_id else "DEV-SIMULATOR"


def generate_batch(animal_id: Optional[str], sensor_types: Sequence[SensorType],
                   scenario: Scenario = SCENARIOS["normal"], rng: random.Random = None) -> SensorBatch:
    """Synthesize one batch around ``scenario`` with bounded jitter."""
    rng = rng or random
    temp = scenario.temperature + rng.uniform(-0.3, 0.3)
    heart_rate = scenario.heart_rate + rng.randint(-5, 5)
    activity = max(0.0, min(10.0, scenario.activity + rng.uniform(-1, 1)))

    readings: List[SensorReading] = []
    for sensor_type in sensor_types:
        if sensor_type == SensorType.DHT11:
            values = {"temperature": temp, "humidity": 45 + rng.uniform(0, 10)}
        elif sensor_type == SensorType.MPU6050:
            # more active animals move more
            accel = activity * 0.2
            gyro = activity / 5
            values = {
                "accelX": rng.uniform(-1, 1) * accel,
                "accelY": rng.uniform(-1, 1) * accel,
                "accelZ": 9.8 + rng.uniform(-0.2, 0.2),
                "gyroX": rng.uniform(-10, 10) * gyro,
                "gyroY": rng.uniform(-10, 10) * gyro,
                "gyroZ": rng.uniform(-10, 10) * gyro,
                "temperature": temp + rng.uniform(-0.1, 0.1),
            }
        elif sensor_type == SensorType.MICROPHONE:
            values = {
                "audioLevel": 40 + scenario.activity * 2 + rng.uniform(-5, 5),
                "frequency": 800 + rng.uniform(-200, 200),
                "duration": 0.2 + rng.uniform(0, 0.3),
            }
        elif sensor_type == SensorType.HEALTH:
            values = {"heart_rate": heart_rate, "temperature": temp, "activity": activity}
        elif sensor_type == SensorType.PREGNANCY:
            if not animal_id:
                continue
            values = {
                "fetal_heart_rate": scenario.fetal_heart_rate + rng.uniform(-10, 10),
                "movement_detected": rng.random() > 0.5,
            }
        else:
            continue
        readings.append(SensorReading(sensor_type.value, values))

    return SensorBatch(device_id=simulated_device_id(animal_id), animal_id=animal_id, readings=readings)


@dataclass
class _Simulation:
    task: asyncio.Task
    interval_ms: int
    scenario: str


class SimulationEngine:
    def __init__(self, pipeline, router, store: RelationalStore, rng: Optional[random.Random] = None,
                 default_interval_ms: int = 5000):
        self.pipeline = pipeline
        self.router = router
        self.store = store
        self.rng = rng or random.Random()
        self.default_interval_ms = default_interval_ms
        self._timers: Dict[str, _Simulation] = {}

    def active(self) -> List[str]:
        return list(self._timers)

    def start(self, animal_id: str, interval_ms: Optional[int] = None, scenario: str = "normal") -> None:
        """Start (or restart) the simulation for ``animal_id``. Must be called
        from the event loop."""
        profile = SCENARIOS.get(scenario)
        if profile is None:
            raise ValidationError(f"Unknown simulation scenario: {scenario}")
        if interval_ms is None:
            interval_ms = self.default_interval_ms
        if interval_ms <= 0:
            raise ValidationError("Simulation interval must be positive")

        previous = self._timers.pop(animal_id, None)
        if previous is not None:
            previous.task.cancel()

        task = asyncio.get_running_loop().create_task(
            self._run(animal_id, interval_ms / 1000.0, profile), name=f"simulation-{animal_id}"
        )
        self._timers[animal_id] = _Simulation(task, interval_ms, scenario)
        logger.info("Simulation started for animal %s at %dms intervals (%s)", animal_id, interval_ms, scenario)

    def stop(self, animal_id: str) -> bool:
        sim = self._timers.pop(animal_id, None)
        if sim is None:
            return False
        sim.task.cancel()
        logger.info("Simulation stopped for animal %s", animal_id)
        return True

    def stop_all(self) -> None:
        for animal_id in list(self._timers):
            self.stop(animal_id)

    async def aclose(self) -> None:
        """Cancel every simulation and wait until their tasks have finished."""
        tasks = [sim.task for sim in self._timers.values()]
        self.stop_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("%d simulation task(s) finished", len(tasks))

    async def _run(self, animal_id: str, period: float, profile: Scenario) -> None:
        while True:
            await asyncio.sleep(period)
            tick = asyncio.ensure_future(self.tick(animal_id, profile))
            try:
                await asyncio.shield(tick)
            except asyncio.CancelledError:
                # a batch already in flight finishes its writes before the timer stops
                await asyncio.gather(tick, return_exceptions=True)
                raise
            except Exception:
                logger.exception("Error in simulation for %s", animal_id)

    async def tick(self, animal_id: str, profile: Scenario = SCENARIOS["normal"]) -> IngestResult:
        sensor_types = list(BASE_SENSORS)
        try:
            record = await run_db(self.store.get_pregnancy_record, animal_id)
        except PersistenceError as exc:
            logger.error("Pregnancy lookup failed for simulated animal %s: %s", animal_id, exc)
            record = None
        if record is not None and record.confirmed:
            sensor_types.append(SensorType.PREGNANCY)

        batch = generate_batch(animal_id, sensor_types, profile, self.rng)

        # dashboards get the raw batch even if storage is slow
        event = {"type": "sensorData"}
        event.update(batch.to_dict())
        await self.router.publish(animal_id, event)

        return await self.pipeline.ingest(batch)
