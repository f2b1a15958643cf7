# farmpulse/config.py
import logging
import os
from dataclasses import dataclass
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


@dataclass
class Settings:
    """Runtime configuration, read from the environment once at start-up."""
    database_url: str = "sqlite:///./farmpulse.db"
    # pre-shared key accepted from any device or simulator (optional)
    device_api_key: Optional[str] = None
    device_store: str = "sql"  # "sql" or "memory"
    timeseries_backend: str = "influx"  # "influx" or "memory"
    influx_url: str = "http://localhost:8086"
    influx_token: str = "my-super-secret-auth-token"
    influx_org: str = "farmpulse"
    influx_bucket: str = "iot_sensors"
    simulation_interval_ms: int = 5000
    bcrypt_rounds: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            device_api_key=os.environ.get("DEVICE_API_KEY") or None,
            device_store=os.environ.get("DEVICE_STORE", cls.device_store).lower(),
            timeseries_backend=os.environ.get("TIMESERIES_BACKEND", cls.timeseries_backend).lower(),
            influx_url=os.environ.get("INFLUXDB_URL", cls.influx_url),
            influx_token=os.environ.get("INFLUXDB_TOKEN", cls.influx_token),
            influx_org=os.environ.get("INFLUXDB_ORG", cls.influx_org),
            influx_bucket=os.environ.get("INFLUXDB_BUCKET", cls.influx_bucket),
            simulation_interval_ms=int(os.environ.get("SIMULATION_INTERVAL_MS", cls.simulation_interval_ms)),
            bcrypt_rounds=int(os.environ.get("BCRYPT_ROUNDS", cls.bcrypt_rounds)),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
