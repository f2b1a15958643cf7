# farmpulse/services.py
"""Component wiring. Every swappable backend is chosen here, once."""
import logging
from dataclasses import dataclass
from typing import Optional

from .anomaly import AnomalyDetector
from .auth import AuthGate
from .config import Settings
from .database import make_engine, make_session_factory
from .devices import DeviceStore, make_device_store
from .hub import ConnectionHub
from .pipeline import IngestPipeline
from .pregnancy import PregnancyAnalyzer
from .simulation import SimulationEngine
from .store import RelationalStore
from .timeseries import InMemoryTimeSeriesWriter, InfluxTimeSeriesWriter, TimeSeriesWriter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: object
    store: RelationalStore
    devices: DeviceStore
    auth: AuthGate
    timeseries: TimeSeriesWriter
    pipeline: IngestPipeline
    hub: ConnectionHub
    simulations: SimulationEngine

    async def aclose(self) -> None:
        await self.simulations.aclose()
        self.close()

    def close(self) -> None:
        self.simulations.stop_all()
        try:
            self.timeseries.close()
        except Exception as exc:
            logger.warning("Closing time-series writer failed: %s", exc)
        self.engine.dispose()


def make_timeseries(settings: Settings) -> TimeSeriesWriter:
    if settings.timeseries_backend == "memory":
        return InMemoryTimeSeriesWriter()
    if settings.timeseries_backend == "influx":
        return InfluxTimeSeriesWriter(settings.influx_url, settings.influx_token,
                                      settings.influx_org, settings.influx_bucket)
    raise ValueError(f"Unknown time-series backend: {settings.timeseries_backend!r}")


def build_services(settings: Settings, timeseries: Optional[TimeSeriesWriter] = None,
                   devices: Optional[DeviceStore] = None) -> Services:
    engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)
    store = RelationalStore(session_factory)

    devices = devices or make_device_store(settings.device_store, session_factory, settings.bcrypt_rounds)
    timeseries = timeseries or make_timeseries(settings)
    auth = AuthGate(devices, static_key=settings.device_api_key)

    hub = ConnectionHub(auth)
    pipeline = IngestPipeline(store, timeseries, AnomalyDetector(store), PregnancyAnalyzer(store), router=hub.router)
    simulations = SimulationEngine(pipeline, hub.router, store,
                                   default_interval_ms=settings.simulation_interval_ms)
    hub.pipeline = pipeline
    hub.simulations = simulations

    logger.info("Services ready (devices=%s, timeseries=%s)", type(devices).__name__, type(timeseries).__name__)
    return Services(settings, engine, store, devices, auth, timeseries, pipeline, hub, simulations)
