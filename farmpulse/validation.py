# farmpulse/validation.py
"""
Structural and range validation of sensor batches.

A batch is validated as a whole before anything is persisted: the first bad
reading rejects the entire batch.
"""
import math
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .domain import SensorReading, SensorType
from .errors import ValidationError


@dataclass(frozen=True)
class RangeRule:
    fields: Tuple[str, ...]
    low: float
    high: float
    label: str
    magnitude: bool = False  # check abs(value) <= high

    def accepts(self, value: float) -> bool:
        if self.magnitude:
            return abs(value) <= self.high
        return self.low <= value <= self.high


@dataclass(frozen=True)
class SensorSpec:
    required: Tuple[str, ...] = ()
    rules: Tuple[RangeRule, ...] = ()


SENSOR_SPECS: Dict[SensorType, SensorSpec] = {
    SensorType.DHT11: SensorSpec(
        required=("temperature", "humidity"),
        rules=(
            RangeRule(("temperature",), -40, 80, "Temperature out of range (-40 to 80 °C)"),
            RangeRule(("humidity",), 0, 100, "Humidity out of range (0 to 100%)"),
        ),
    ),
    SensorType.MPU6050: SensorSpec(
        required=("accelX", "accelY", "accelZ", "gyroX", "gyroY", "gyroZ", "temperature"),
        rules=(
            RangeRule(("accelX", "accelY", "accelZ"), -19.6, 19.6,
                      "Acceleration values out of range (±19.6 m/s²)", magnitude=True),
            RangeRule(("gyroX", "gyroY", "gyroZ"), -250, 250,
                      "Gyroscope values out of range (±250 deg/s)", magnitude=True),
            RangeRule(("temperature",), -40, 85, "Temperature out of range (-40 to 85 °C)"),
        ),
    ),
    SensorType.MICROPHONE: SensorSpec(
        required=("audioLevel", "frequency"),
        rules=(
            RangeRule(("audioLevel",), 0, 120, "Audio level out of range (0-120 dB)"),
            RangeRule(("frequency",), 20, 20000, "Frequency out of range (20 Hz to 20 kHz)"),
        ),
    ),
    SensorType.HEALTH: SensorSpec(
        required=("heart_rate", "temperature", "activity"),
        rules=(
            RangeRule(("heart_rate",), 40, 140, "Heart rate out of range (40-140 BPM)"),
            RangeRule(("temperature",), 36, 42, "Temperature out of range (36-42 °C)"),
        ),
    ),
    SensorType.PREGNANCY: SensorSpec(
        required=("fetal_heart_rate",),
        rules=(
            RangeRule(("fetal_heart_rate",), 100, 200, "Fetal heart rate out of range (100-200 BPM)"),
        ),
    ),
    SensorType.CUSTOM: SensorSpec(),
}


def spec_for(sensor_type: str) -> SensorSpec:
    return SENSOR_SPECS[SensorType.resolve(sensor_type)]


def validate_reading(reading: SensorReading) -> None:
    sensor_type = reading.sensor_type
    if not sensor_type or not isinstance(reading.values, dict):
        raise ValidationError("Each reading must have sensorType and values object")

    spec = spec_for(sensor_type)
    for name in spec.required:
        if reading.values.get(name) is None:
            raise ValidationError(
                f"Missing required field: {name} for sensor type: {sensor_type}",
                sensor_type=sensor_type, field=name,
            )

    for rule in spec.rules:
        for name in rule.fields:
            value = reading.number(name)
            if value is None or not math.isfinite(value):
                raise ValidationError(
                    f"Field {name} must be a number for sensor type: {sensor_type}",
                    sensor_type=sensor_type, field=name,
                )
            if not rule.accepts(value):
                raise ValidationError(
                    f"{rule.label} for sensor type: {sensor_type} (field: {name})",
                    sensor_type=sensor_type, field=name,
                )


def validate_batch(readings: Sequence[SensorReading]) -> None:
    """Raise ValidationError for the first invalid reading, in batch order."""
    if not isinstance(readings, (list, tuple)):
        raise ValidationError("Readings must be an array")
    for reading in readings:
        validate_reading(reading)
