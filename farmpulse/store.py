# farmpulse/store.py
import asyncio
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import models
from .domain import HealthSample, PregnancyRecord, PregnancyStatRow
from .errors import PersistenceError

HISTORY_WINDOW = 7


# helper: run blocking DB work in a thread
async def run_db(func, *args, **kwargs):
    return await asyncio.to_thread(func, *args, **kwargs)


def _health(row: models.HealthData) -> HealthSample:
    return HealthSample(
        animal_id=row.animal_id,
        date=row.date,
        temperature=row.temperature,
        heart_rate=row.heart_rate,
        activity=row.activity,
        id=row.id,
    )


def _stat(row: models.PregnancyStat) -> PregnancyStatRow:
    return PregnancyStatRow(
        animal_id=row.animal_id,
        date=row.date,
        fetal_heart_rate=row.fetal_heart_rate,
        temperature=row.temperature,
        heart_rate=row.heart_rate,
        activity=row.activity,
        notes=row.notes,
        id=row.id,
    )


class RelationalStore:
    """Animal health and pregnancy tables. Each call uses its own session."""

    def __init__(self, session_factory):
        self.SessionLocal = session_factory

    def _run(self, what: str, fn):
        db = self.SessionLocal()
        try:
            return fn(db)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"{what} failed: {exc}", store="relational") from exc
        finally:
            db.close()

    def add_animal(self, animal_id: str, name: Optional[str] = None, breed: Optional[str] = None) -> None:
        def op(db):
            if db.get(models.Animal, animal_id) is None:
                db.add(models.Animal(id=animal_id, name=name, breed=breed))
                db.commit()
        self._run("add animal", op)

    def set_pregnancy_record(self, record: PregnancyRecord) -> None:
        def op(db):
            row = db.query(models.PregnancyData).filter(models.PregnancyData.animal_id == record.animal_id).first()
            if row is None:
                row = models.PregnancyData(animal_id=record.animal_id)
                db.add(row)
            row.status = record.status
            row.gestation_days = record.gestation_days
            row.expected_due_date = record.expected_due_date
            row.last_checkup = record.last_checkup
            db.commit()
        self._run("set pregnancy record", op)

    def get_pregnancy_record(self, animal_id: str) -> Optional[PregnancyRecord]:
        def op(db):
            row = db.query(models.PregnancyData).filter(models.PregnancyData.animal_id == animal_id).first()
            if row is None:
                return None
            return PregnancyRecord(
                animal_id=row.animal_id,
                status=row.status,
                gestation_days=row.gestation_days or 0,
                expected_due_date=row.expected_due_date,
                last_checkup=row.last_checkup,
            )
        return self._run("pregnancy lookup", op)

    def add_health_sample(self, sample: HealthSample) -> int:
        def op(db):
            row = models.HealthData(
                animal_id=sample.animal_id,
                date=sample.date,
                heart_rate=sample.heart_rate,
                temperature=sample.temperature,
                activity=sample.activity,
            )
            db.add(row)
            db.commit()
            return row.id
        sample.id = self._run("insert health_data", op)
        return sample.id

    def recent_health_samples(self, animal_id: str, limit: int = HISTORY_WINDOW,
                              exclude_id: Optional[int] = None) -> List[HealthSample]:
        def op(db):
            q = db.query(models.HealthData).filter(models.HealthData.animal_id == animal_id)
            if exclude_id is not None:
                q = q.filter(models.HealthData.id != exclude_id)
            rows = q.order_by(models.HealthData.date.desc(), models.HealthData.id.desc()).limit(limit).all()
            return [_health(r) for r in rows]
        return self._run("health history", op)

    def add_pregnancy_stat(self, stat: PregnancyStatRow) -> int:
        def op(db):
            row = models.PregnancyStat(
                animal_id=stat.animal_id,
                date=stat.date,
                fetal_heart_rate=stat.fetal_heart_rate,
                temperature=stat.temperature,
                heart_rate=stat.heart_rate,
                activity=stat.activity,
                notes=stat.notes,
            )
            db.add(row)
            db.commit()
            return row.id
        stat.id = self._run("insert pregnancy_stats", op)
        return stat.id

    def recent_pregnancy_stats(self, animal_id: str, limit: int = HISTORY_WINDOW) -> List[PregnancyStatRow]:
        def op(db):
            rows = (
                db.query(models.PregnancyStat)
                .filter(models.PregnancyStat.animal_id == animal_id)
                .order_by(models.PregnancyStat.date.desc(), models.PregnancyStat.id.desc())
                .limit(limit)
                .all()
            )
            return [_stat(r) for r in rows]
        return self._run("pregnancy history", op)
