# farmpulse/pipeline.py
"""
One-batch ingestion: validate, persist to both stores, analyse, broadcast.

The time-series store and the relational store fail independently: an error
in one is logged and the other (and the acknowledgement) still goes ahead.
"""
import logging
from typing import Any, Dict, List, Optional

from .anomaly import AnomalyDetector
from .domain import HealthSample, IngestResult, PregnancyStatRow, SensorBatch, SensorReading, SensorType
from .errors import PersistenceError
from .pregnancy import PregnancyAnalyzer
from .store import RelationalStore, run_db
from .timeseries import TimePoint, TimeSeriesWriter, point_for_reading
from .validation import validate_batch

logger = logging.getLogger(__name__)

HEALTH_SENSORS = (SensorType.DHT11, SensorType.HEALTH)
HEART_RATE_FIELDS = ("heart_rate", "heartRate")
FETAL_HEART_RATE_FIELDS = ("fetal_heart_rate", "fetalHeartRate")


def _first_number(batch: SensorBatch, kinds, *names) -> Optional[float]:
    for reading in batch.readings:
        if reading.kind in kinds:
            value = reading.number(*names)
            if value is not None:
                return value
    return None


class IngestPipeline:
    def __init__(self, store: RelationalStore, timeseries: TimeSeriesWriter,
                 anomaly: AnomalyDetector, pregnancy: PregnancyAnalyzer, router=None):
        self.store = store
        self.timeseries = timeseries
        self.anomaly = anomaly
        self.pregnancy = pregnancy
        self.router = router

    async def ingest(self, batch: SensorBatch) -> IngestResult:
        # raises ValidationError before anything is written
        validate_batch(batch.readings)

        result = IngestResult()
        points: List[TimePoint] = []
        for reading in batch.readings:
            points.append(point_for_reading(batch, reading))
            if not batch.animal_id:
                continue
            if await self._record_health(batch, reading):
                result.anomaly_detected = True
            fetal = await self._record_pregnancy(batch, reading)
            if fetal is not None:
                result.fetal_health_data = fetal

        await self._flush(batch, points)

        if self.router is not None:
            await self.router.publish(batch.animal_id, self.enriched_event(batch, result))
        return result

    @staticmethod
    def enriched_event(batch: SensorBatch, result: IngestResult) -> Dict[str, Any]:
        event = {"type": "sensorData"}
        event.update(batch.to_dict())
        event["anomalyDetected"] = result.anomaly_detected
        event["fetalHealthData"] = result.fetal_health_data
        return event

    async def _flush(self, batch: SensorBatch, points: List[TimePoint]) -> None:
        try:
            await self.timeseries.flush(points)
        except Exception as exc:
            logger.error("Time-series write of %d points from device %s failed: %s",
                         len(points), batch.device_id, exc)

    async def _record_health(self, batch: SensorBatch, reading: SensorReading) -> bool:
        if reading.kind not in HEALTH_SENSORS:
            return False
        sample = HealthSample(
            animal_id=batch.animal_id,
            date=batch.date,
            temperature=reading.number("temperature"),
            heart_rate=reading.number(*HEART_RATE_FIELDS),
            activity=reading.number("activity"),
        )
        if sample.temperature is None and sample.heart_rate is None and sample.activity is None:
            return False

        try:
            await run_db(self.store.add_health_sample, sample)
        except PersistenceError as exc:
            logger.error("Could not store health sample for %s: %s", batch.animal_id, exc)
        try:
            report = await run_db(self.anomaly.assess, batch.animal_id, sample, batch.date)
        except PersistenceError as exc:
            logger.error("Anomaly detection unavailable for %s: %s", batch.animal_id, exc)
            return False
        return report.is_anomaly

    async def _record_pregnancy(self, batch: SensorBatch, reading: SensorReading) -> Optional[Dict[str, Any]]:
        fetal_heart_rate = reading.number(*FETAL_HEART_RATE_FIELDS)
        if fetal_heart_rate is None:
            return None

        try:
            record = await run_db(self.store.get_pregnancy_record, batch.animal_id)
            if record is None or not record.confirmed:
                return None
            stat = PregnancyStatRow(
                animal_id=batch.animal_id,
                date=batch.date,
                fetal_heart_rate=fetal_heart_rate,
                temperature=_first_number(batch, HEALTH_SENSORS, "temperature"),
                heart_rate=_first_number(batch, (SensorType.HEALTH,), *HEART_RATE_FIELDS),
                activity=_first_number(batch, (SensorType.MPU6050, SensorType.HEALTH), "activity"),
                notes="Sensor reading",
            )
            await run_db(self.store.add_pregnancy_stat, stat)
            return await run_db(self.pregnancy.assess, batch.animal_id, fetal_heart_rate,
                                record.gestation_days, batch.date)
        except PersistenceError as exc:
            logger.error("Pregnancy processing failed for %s: %s", batch.animal_id, exc)
            return None
