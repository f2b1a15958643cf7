# farmpulse/timeseries.py
"""
Time-series persistence for raw sensor readings.

Each ingested batch hands its own points to ``flush(points)``, which writes them
in one request. Writers hold no buffer between batches.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from .domain import FieldValue, SensorBatch, SensorReading
from .errors import PersistenceError

logger = logging.getLogger(__name__)

MEASUREMENT = "sensor_readings"


@dataclass
class TimePoint:
    measurement: str
    tags: Dict[str, str]
    fields: Dict[str, FieldValue]
    timestamp: datetime


def point_for_reading(batch: SensorBatch, reading: SensorReading) -> TimePoint:
    tags = {"deviceId": batch.device_id, "sensorType": reading.sensor_type}
    if batch.animal_id:
        tags["animalId"] = batch.animal_id
    return TimePoint(MEASUREMENT, tags, dict(reading.fields), batch.timestamp)


class TimeSeriesWriter(ABC):
    @abstractmethod
    async def flush(self, points: Sequence[TimePoint]) -> int:
        """Write ``points`` as one batch; returns how many were written."""

    def close(self) -> None:
        pass


class InMemoryTimeSeriesWriter(TimeSeriesWriter):
    def __init__(self):
        self.points: List[TimePoint] = []

    async def flush(self, points: Sequence[TimePoint]) -> int:
        self.points.extend(points)
        return len(points)


class InfluxTimeSeriesWriter(TimeSeriesWriter):
    def __init__(self, url: str, token: str, org: str, bucket: str):
        self.org = org
        self.bucket = bucket
        self._client = InfluxDBClient(url=url, token=token, org=org)
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)

    @staticmethod
    def to_influx(point: TimePoint) -> Point:
        p = Point(point.measurement)
        for key, value in point.tags.items():
            p = p.tag(key, value)
        for name, fv in point.fields.items():
            p = p.field(name, fv.value)
        return p.time(point.timestamp, WritePrecision.NS)

    async def flush(self, points: Sequence[TimePoint]) -> int:
        if not points:
            return 0
        records = [self.to_influx(p) for p in points]
        try:
            await asyncio.to_thread(self._write_api.write, bucket=self.bucket, org=self.org, record=records)
        except Exception as exc:
            raise PersistenceError(f"InfluxDB write of {len(records)} points failed: {exc}", store="timeseries") from exc
        return len(records)

    def close(self) -> None:
        try:
            self._write_api.close()
        finally:
            self._client.close()
