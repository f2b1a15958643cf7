# farmpulse/devices.py
"""
Device registry used for credential checks.

Two interchangeable stores: SQL-backed for deployments, in-memory for local
runs without a database. One is picked at start-up from configuration.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import bcrypt
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .errors import PersistenceError

logger = logging.getLogger(__name__)


def hash_api_key(api_key: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(api_key.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def check_api_key(api_key: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(api_key.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        # malformed hash or over-long key
        return False


@dataclass
class DeviceInfo:
    device_id: str
    name: str
    animal_id: Optional[str] = None
    sensor_types: List[str] = field(default_factory=list)
    status: str = "ACTIVE"
    last_connected_at: Optional[datetime] = None


class DeviceStore(ABC):
    @abstractmethod
    def register(self, device_id: str, name: str, api_key: str, animal_id: Optional[str] = None,
                 sensor_types: Sequence[str] = ()) -> DeviceInfo:
        ...

    @abstractmethod
    def get(self, device_id: str) -> Optional[DeviceInfo]:
        ...

    @abstractmethod
    def verify_key(self, device_id: str, api_key: str) -> bool:
        ...

    @abstractmethod
    def touch_last_connected(self, device_id: str) -> None:
        ...

    @abstractmethod
    def pair(self, device_id: str, animal_id: Optional[str]) -> Optional[DeviceInfo]:
        """Attach a device to an animal, or detach it with ``animal_id=None``."""


class InMemoryDeviceStore(DeviceStore):
    def __init__(self, rounds: int = 10):
        self.rounds = rounds
        self._devices: Dict[str, DeviceInfo] = {}
        self._hashes: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, device_id, name, api_key, animal_id=None, sensor_types=()):
        info = DeviceInfo(device_id=device_id, name=name, animal_id=animal_id, sensor_types=list(sensor_types))
        hashed = hash_api_key(api_key, self.rounds)
        with self._lock:
            self._devices[device_id] = info
            self._hashes[device_id] = hashed
        return replace(info)

    def get(self, device_id):
        with self._lock:
            info = self._devices.get(device_id)
            return replace(info) if info else None

    def verify_key(self, device_id, api_key):
        with self._lock:
            hashed = self._hashes.get(device_id)
        return hashed is not None and check_api_key(api_key, hashed)

    def touch_last_connected(self, device_id):
        with self._lock:
            if device_id in self._devices:
                self._devices[device_id].last_connected_at = datetime.now(timezone.utc)

    def pair(self, device_id, animal_id):
        with self._lock:
            info = self._devices.get(device_id)
            if info is None:
                return None
            info.animal_id = animal_id
            return replace(info)

    def seed_demo_devices(self) -> None:
        self.register("DEVICE001", "ESP32 Sensor Pack 1", "test-api-key-1", "CATTLE001", ["DHT11", "MPU6050"])
        self.register("DEVICE002", "ESP32 Sensor Pack 2", "test-api-key-2", "CATTLE002", ["DHT11", "MPU6050"])
        logger.info("In-memory device store seeded with %d demo devices", len(self._devices))


def _info(row: models.Device) -> DeviceInfo:
    return DeviceInfo(
        device_id=row.device_id,
        name=row.name,
        animal_id=row.animal_id,
        sensor_types=list(row.sensor_types or []),
        status=row.status,
        last_connected_at=row.last_connected_at,
    )


class SqlDeviceStore(DeviceStore):
    def __init__(self, session_factory, rounds: int = 10):
        self.SessionLocal = session_factory
        self.rounds = rounds

    def _run(self, what, fn):
        db = self.SessionLocal()
        try:
            return fn(db)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"{what} failed: {exc}", store="devices") from exc
        finally:
            db.close()

    @staticmethod
    def _row(db, device_id):
        return db.query(models.Device).filter(models.Device.device_id == device_id).first()

    def register(self, device_id, name, api_key, animal_id=None, sensor_types=()):
        hashed = hash_api_key(api_key, self.rounds)

        def op(db):
            row = models.Device(device_id=device_id, name=name, api_key_hash=hashed,
                                animal_id=animal_id, sensor_types=list(sensor_types))
            db.add(row)
            db.commit()
            return _info(row)
        return self._run("register device", op)

    def get(self, device_id):
        def op(db):
            row = self._row(db, device_id)
            return _info(row) if row else None
        return self._run("device lookup", op)

    def verify_key(self, device_id, api_key):
        hashed = self._run("device lookup", lambda db: getattr(self._row(db, device_id), "api_key_hash", None))
        return hashed is not None and check_api_key(api_key, hashed)

    def touch_last_connected(self, device_id):
        def op(db):
            row = self._row(db, device_id)
            if row is not None:
                row.last_connected_at = datetime.now(timezone.utc)
                db.commit()
        self._run("update last_connected_at", op)

    def pair(self, device_id, animal_id):
        def op(db):
            row = self._row(db, device_id)
            if row is None:
                return None
            row.animal_id = animal_id
            db.commit()
            return _info(row)
        return self._run("pair device", op)


def make_device_store(kind: str, session_factory, rounds: int = 10) -> DeviceStore:
    if kind == "memory":
        store = InMemoryDeviceStore(rounds=rounds)
        store.seed_demo_devices()
        return store
    if kind == "sql":
        return SqlDeviceStore(session_factory, rounds=rounds)
    raise ValueError(f"Unknown device store: {kind!r}")
