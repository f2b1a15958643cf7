import pytest

from farmpulse.domain import SensorReading
from farmpulse.errors import ValidationError
from farmpulse.validation import validate_batch, validate_reading

VALID = {
    "DHT11": {"temperature": 21.5, "humidity": 40},
    "MPU6050": {"accelX": 0.1, "accelY": -0.2, "accelZ": 9.8, "gyroX": 1, "gyroY": 2, "gyroZ": -3, "temperature": 30},
    "MICROPHONE": {"audioLevel": 55, "frequency": 800},
    "HEALTH": {"heart_rate": 72, "temperature": 38.6, "activity": 6},
    "PREGNANCY": {"fetal_heart_rate": 170},
}


def reading(sensor_type, **overrides):
    values = dict(VALID.get(sensor_type, {}))
    values.update(overrides)
    return SensorReading(sensor_type, values)


def test_valid_readings_of_every_type_pass():
    validate_batch([reading(t) for t in VALID])


def test_unknown_sensor_type_is_validated_as_custom():
    validate_batch([SensorReading("THERMAL_CAMERA", {"anything": "goes"})])
    validate_batch([SensorReading("CUSTOM", {})])


def test_missing_required_field_names_field_and_type():
    r = SensorReading("DHT11", {"temperature": 20})
    with pytest.raises(ValidationError) as err:
        validate_reading(r)
    assert err.value.field == "humidity"
    assert err.value.sensor_type == "DHT11"
    assert "Missing required field: humidity" in err.value.message


def test_null_required_field_counts_as_missing():
    with pytest.raises(ValidationError) as err:
        validate_reading(reading("HEALTH", activity=None))
    assert err.value.field == "activity"


def test_accel_out_of_range_names_offending_axis():
    with pytest.raises(ValidationError) as err:
        validate_reading(reading("MPU6050", accelX=50))
    assert (err.value.sensor_type, err.value.field) == ("MPU6050", "accelX")


def test_negative_magnitudes_are_checked():
    with pytest.raises(ValidationError) as err:
        validate_reading(reading("MPU6050", gyroZ=-250.5))
    assert err.value.field == "gyroZ"
    validate_reading(reading("MPU6050", gyroZ=-250, accelY=-19.6))


@pytest.mark.parametrize("sensor_type,field,ok,bad", [
    ("DHT11", "temperature", 80, 80.1),
    ("DHT11", "humidity", 0, -0.1),
    ("MPU6050", "temperature", 85, 85.5),
    ("MICROPHONE", "audioLevel", 120, 121),
    ("MICROPHONE", "frequency", 20, 19),
    ("HEALTH", "heart_rate", 140, 141),
    ("HEALTH", "temperature", 36, 35.9),
    ("PREGNANCY", "fetal_heart_rate", 100, 99),
])
def test_range_bounds_are_inclusive(sensor_type, field, ok, bad):
    validate_reading(reading(sensor_type, **{field: ok}))
    with pytest.raises(ValidationError) as err:
        validate_reading(reading(sensor_type, **{field: bad}))
    assert err.value.field == field


def test_booleans_and_strings_are_not_numbers():
    with pytest.raises(ValidationError):
        validate_reading(reading("HEALTH", heart_rate=True))
    with pytest.raises(ValidationError):
        validate_reading(reading("PREGNANCY", fetal_heart_rate="160"))


def test_first_failing_reading_rejects_whole_batch():
    batch = [reading("DHT11"), reading("MPU6050", accelX=50), reading("HEALTH", heart_rate=500)]
    with pytest.raises(ValidationError) as err:
        validate_batch(batch)
    assert err.value.sensor_type == "MPU6050"


def test_reading_without_type_is_rejected():
    with pytest.raises(ValidationError):
        validate_batch([SensorReading("", {"temperature": 1})])
