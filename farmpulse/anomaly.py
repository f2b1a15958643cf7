# farmpulse/anomaly.py
"""
Adaptive per-animal vitals outlier detection.

Each metric is compared against a normal band derived from the animal's most
recent health samples (mean ± 2σ, population σ), or a fixed default band when
there is no history.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .domain import AnomalyEntry, AnomalyReport, HealthSample
from .store import HISTORY_WINDOW, RelationalStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Band:
    low: float
    high: float


DEFAULT_BANDS: Dict[str, Band] = {
    "temperature": Band(38.0, 39.5),
    "heart_rate": Band(60, 90),
    "activity": Band(3, 9),
}

# half-width used when the history has no spread at all
MIN_TOLERANCE: Dict[str, float] = {
    "temperature": 0.5,
    "heart_rate": 5.0,
    "activity": 1.0,
}

SIGMAS = 2.0
ZERO_SPREAD = 1e-9

# severity when a value is above / below the band
ABOVE = {"temperature": "high", "heart_rate": "high", "activity": "low"}
BELOW = {"temperature": "medium", "heart_rate": "medium", "activity": "medium"}
SEVERITY_WEIGHT = {"high": 2.0, "medium": 1.0, "low": 0.5}


def adaptive_band(metric: str, values: List[float]) -> Band:
    if not values:
        return DEFAULT_BANDS[metric]
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    std = float(arr.std())
    half = SIGMAS * std if std > ZERO_SPREAD else MIN_TOLERANCE[metric]
    low, high = mean - half, mean + half
    if metric == "heart_rate":
        low, high = float(round(low)), float(round(high))
    elif metric == "activity":
        low, high = max(0.0, low), min(10.0, high)
    return Band(low, high)


def normal_bands(history: List[HealthSample]) -> Dict[str, Band]:
    if not history:
        return dict(DEFAULT_BANDS)
    return {
        metric: adaptive_band(metric, [getattr(s, metric) for s in history if getattr(s, metric) is not None])
        for metric in DEFAULT_BANDS
    }


def _num(x: float) -> str:
    return f"{round(x, 1):g}"


def _range_text(metric: str, band: Band) -> str:
    if metric == "temperature":
        return f"{band.low:.1f}-{band.high:.1f}°C"
    if metric == "heart_rate":
        return f"{_num(band.low)}-{_num(band.high)} BPM"
    return f"{_num(band.low)}-{_num(band.high)}"


def _message(metric: str, direction: str, value: float) -> str:
    if metric == "temperature":
        return f"{direction} temperature detected: {value:.1f}°C"
    if metric == "heart_rate":
        return f"{direction} heart rate detected: {_num(value)} BPM"
    return f"{direction} activity detected: {_num(value)}"


def classify(sample: HealthSample, bands: Dict[str, Band]) -> List[AnomalyEntry]:
    entries = []
    for metric, band in bands.items():
        value = getattr(sample, metric)
        if value is None:
            continue
        if value > band.high:
            severity, direction = ABOVE[metric], "High"
        elif value < band.low:
            severity, direction = BELOW[metric], "Low"
        else:
            continue
        entries.append(AnomalyEntry(metric, value, _range_text(metric, band), severity, _message(metric, direction, value)))
    return entries


def overall_severity(entries: List[AnomalyEntry]) -> str:
    weight = sum(SEVERITY_WEIGHT[e.severity] for e in entries)
    if weight > 2:
        return "high"
    if weight > 1:
        return "medium"
    return "low"


class AnomalyDetector:
    def __init__(self, store: RelationalStore, window: int = HISTORY_WINDOW):
        self.store = store
        self.window = window

    def assess(self, animal_id: str, sample: HealthSample, timestamp: Optional[str] = None) -> AnomalyReport:
        """Classify one sample against the animal's trailing history.

        The sample's own row (``sample.id``, when already stored) is left out of
        the baseline.
        """
        history = self.store.recent_health_samples(animal_id, self.window, exclude_id=sample.id)
        entries = classify(sample, normal_bands(history))
        report = AnomalyReport(animal_id, timestamp or sample.date, entries, overall_severity(entries))
        if report.is_anomaly:
            logger.warning("Anomaly detected for animal %s on %s: %s",
                           animal_id, report.timestamp, [e.message for e in entries])
        return report
