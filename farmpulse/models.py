# farmpulse/models.py
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from .database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Animal(Base):
    __tablename__ = "animals"
    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=True)
    breed = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    health_data = relationship("HealthData", back_populates="animal", cascade="all, delete-orphan")


class HealthData(Base):
    __tablename__ = "health_data"
    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(String, ForeignKey("animals.id"), index=True, nullable=False)
    date = Column(String, nullable=False)  # YYYY-MM-DD
    heart_rate = Column(Float, nullable=True)
    temperature = Column(Float, nullable=True)
    activity = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    animal = relationship("Animal", back_populates="health_data")


class PregnancyData(Base):
    __tablename__ = "pregnancy_data"
    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(String, ForeignKey("animals.id"), index=True, unique=True, nullable=False)
    status = Column(String, default="Unknown")  # Unknown | Confirmed | NotPregnant
    gestation_days = Column(Integer, default=0)
    expected_due_date = Column(String, nullable=True)
    last_checkup = Column(String, nullable=True)


class PregnancyStat(Base):
    __tablename__ = "pregnancy_stats"
    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(String, ForeignKey("animals.id"), index=True, nullable=False)
    date = Column(String, nullable=False)
    fetal_heart_rate = Column(Float, nullable=True)
    temperature = Column(Float, nullable=True)
    heart_rate = Column(Float, nullable=True)
    activity = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Device(Base):
    __tablename__ = "devices"
    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    api_key_hash = Column(String, nullable=False)
    animal_id = Column(String, nullable=True, index=True)
    sensor_types = Column(JSON, default=list)
    status = Column(String, default="ACTIVE")  # ACTIVE | INACTIVE | MAINTENANCE
    location = Column(String, default="Unknown")
    last_connected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
