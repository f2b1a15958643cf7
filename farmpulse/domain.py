# farmpulse/domain.py
"""
In-process types shared by the ingestion pipeline, the analysers and the hub.
Wire payloads are parsed into these once, at the ingestion boundary.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SensorType(str, Enum):
    DHT11 = "DHT11"
    MPU6050 = "MPU6050"
    MICROPHONE = "MICROPHONE"
    HEALTH = "HEALTH"
    PREGNANCY = "PREGNANCY"
    CUSTOM = "CUSTOM"

    @classmethod
    def resolve(cls, name: str) -> "SensorType":
        try:
            return cls(name)
        except ValueError:
            return cls.CUSTOM


class PregnancyStatus(str, Enum):
    UNKNOWN = "Unknown"
    CONFIRMED = "Confirmed"
    NOT_PREGNANT = "NotPregnant"


@dataclass(frozen=True)
class FieldValue:
    """One sensor value tagged with the kind it is stored as."""
    kind: str  # "float" | "bool" | "string"
    value: Any

    @classmethod
    def resolve(cls, raw: Any) -> Optional["FieldValue"]:
        # bool first: it is an int subclass
        if isinstance(raw, bool):
            return cls("bool", raw)
        if isinstance(raw, (int, float)):
            return cls("float", float(raw))
        if isinstance(raw, str):
            return cls("string", raw)
        return None


@dataclass
class SensorReading:
    sensor_type: str
    values: Dict[str, Any]
    fields: Dict[str, FieldValue] = field(init=False, repr=False)

    def __post_init__(self):
        self.fields = {}
        for name, raw in (self.values or {}).items():
            resolved = FieldValue.resolve(raw)
            if resolved is not None:
                self.fields[name] = resolved

    @property
    def kind(self) -> SensorType:
        return SensorType.resolve(self.sensor_type)

    def number(self, *names: str) -> Optional[float]:
        """First numeric field among ``names`` or None."""
        for name in names:
            fv = self.fields.get(name)
            if fv is not None and fv.kind == "float":
                return fv.value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"sensorType": self.sensor_type, "values": dict(self.values)}


@dataclass
class SensorBatch:
    device_id: str
    readings: List[SensorReading]
    animal_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def date(self) -> str:
        return self.timestamp.astimezone(timezone.utc).date().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "animalId": self.animal_id,
            "readings": [r.to_dict() for r in self.readings],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class HealthSample:
    animal_id: str
    date: str
    temperature: Optional[float] = None
    heart_rate: Optional[float] = None
    activity: Optional[float] = None
    id: Optional[int] = None


@dataclass
class PregnancyRecord:
    animal_id: str
    status: str
    gestation_days: int = 0
    expected_due_date: Optional[str] = None
    last_checkup: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == PregnancyStatus.CONFIRMED.value


@dataclass
class PregnancyStatRow:
    animal_id: str
    date: str
    fetal_heart_rate: Optional[float]
    temperature: Optional[float] = None
    heart_rate: Optional[float] = None
    activity: Optional[float] = None
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass
class AnomalyEntry:
    metric: str
    value: float
    normal_range: str
    severity: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "value": self.value,
            "normalRange": self.normal_range,
            "severity": self.severity,
            "message": self.message,
        }


@dataclass
class AnomalyReport:
    animal_id: str
    timestamp: Optional[str]
    anomalies: List[AnomalyEntry]
    overall_severity: str

    @property
    def is_anomaly(self) -> bool:
        return len(self.anomalies) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "animalId": self.animal_id,
            "timestamp": self.timestamp,
            "isAnomaly": self.is_anomaly,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "overallSeverity": self.overall_severity,
        }


@dataclass
class IngestResult:
    anomaly_detected: bool = False
    fetal_health_data: Optional[Dict[str, Any]] = None
