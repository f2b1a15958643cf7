# farmpulse/schemas.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .domain import SensorBatch, SensorReading


class SensorReadingIn(BaseModel):
    sensorType: str
    values: Dict[str, Any]


class SensorDataIn(BaseModel):
    """REST body: the device and animal come from the authenticated device."""
    model_config = ConfigDict(extra="allow")

    readings: List[SensorReadingIn]
    timestamp: Optional[datetime] = None

    def to_batch(self, device_id: str, animal_id: Optional[str]) -> SensorBatch:
        return SensorBatch(
            device_id=device_id,
            animal_id=animal_id,
            readings=[SensorReading(r.sensorType, r.values) for r in self.readings],
            timestamp=_aware(self.timestamp),
        )


class SensorDataMessage(SensorDataIn):
    deviceId: Optional[str] = None
    animalId: Optional[str] = None


class StartSimulationMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    animalId: str
    interval: Optional[int] = Field(default=None, gt=0)
    scenario: str = "normal"


class StopSimulationMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    animalId: Optional[str] = None
    all: bool = False


def _aware(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts
