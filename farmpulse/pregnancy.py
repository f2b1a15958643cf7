# farmpulse/pregnancy.py
"""
Fetal heart-rate assessment for confirmed pregnancies.

The expected fetal heart rate falls as gestation progresses, so the normal band
is looked up by gestation day. Recent readings are also checked for a trend.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .store import HISTORY_WINDOW, RelationalStore

logger = logging.getLogger(__name__)

GESTATION_PERIOD_DAYS = 285
EDGE_MARGIN_BPM = 5
TREND_THRESHOLD_BPM = 3.0
MIN_TREND_POINTS = 3

# (upper gestation day bound, exclusive) -> (min bpm, max bpm)
FETAL_HR_BANDS: List[Tuple[float, Tuple[int, int]]] = [
    (60, (165, 190)),
    (120, (160, 185)),
    (180, (150, 180)),
    (240, (140, 175)),
    (float("inf"), (130, 165)),
]

DUE_DATE_VARIANCE: List[Tuple[float, int]] = [
    (90, 14),
    (180, 10),
    (240, 7),
    (float("inf"), 5),
]


def fetal_heart_rate_range(gestation_days: float) -> Tuple[int, int]:
    for upper, band in FETAL_HR_BANDS:
        if gestation_days < upper:
            return band
    return FETAL_HR_BANDS[-1][1]


def confidence_interval(gestation_days: float) -> Dict[str, float]:
    variance = next(v for upper, v in DUE_DATE_VARIANCE if gestation_days < upper)
    remaining = GESTATION_PERIOD_DAYS - gestation_days
    return {
        "daysRange": variance,
        "minDays": max(0, remaining - variance),
        "maxDays": remaining + variance,
    }


def trend_slope(rates: List[float]) -> float:
    """Least-squares slope of ``rates`` (most recent first), sign flipped so a
    positive value means the rate is rising over calendar time."""
    if len(rates) < 2:
        return 0.0
    x = np.arange(len(rates), dtype=float)
    slope = np.polyfit(x, np.asarray(rates, dtype=float), 1)[0]
    return -float(slope)


def _fmt(bpm: float) -> str:
    return f"{round(bpm, 1):g}"


class PregnancyAnalyzer:
    def __init__(self, store: RelationalStore, window: int = HISTORY_WINDOW):
        self.store = store
        self.window = window

    def assess(self, animal_id: str, fetal_heart_rate: float, gestation_days: int,
               timestamp: Optional[str] = None) -> Dict[str, Any]:
        record = self.store.get_pregnancy_record(animal_id)
        if record is None or not record.confirmed:
            return {
                "animalId": animal_id,
                "isPregnant": False,
                "message": "Animal is not registered as pregnant",
            }

        normal_min, normal_max = fetal_heart_rate_range(gestation_days)
        response: Dict[str, Any] = {
            "animalId": animal_id,
            "timestamp": timestamp,
            "isPregnant": True,
            "fetalHeartRate": fetal_heart_rate,
            "gestationDays": gestation_days,
            "expectedDueDate": record.expected_due_date,
            "normalRange": f"{normal_min}-{normal_max} BPM",
            "health": "normal",
            "confidenceInterval": confidence_interval(gestation_days),
        }

        fhr = _fmt(fetal_heart_rate)
        if fetal_heart_rate < normal_min:
            response["health"] = "concern"
            response["alert"] = {
                "type": "warning",
                "message": f"Fetal heart rate ({fhr} BPM) is below normal range for gestation day {gestation_days}",
                "severity": "medium",
            }
        elif fetal_heart_rate < normal_min + EDGE_MARGIN_BPM:
            response["health"] = "monitor"
            response["alert"] = {
                "type": "info",
                "message": f"Fetal heart rate ({fhr} BPM) is at lower end of normal range",
                "severity": "low",
            }
        elif fetal_heart_rate > normal_max:
            response["health"] = "concern"
            response["alert"] = {
                "type": "warning",
                "message": f"Fetal heart rate ({fhr} BPM) is above normal range for gestation day {gestation_days}",
                "severity": "medium",
            }
        elif fetal_heart_rate > normal_max - EDGE_MARGIN_BPM:
            response["health"] = "monitor"
            response["alert"] = {
                "type": "info",
                "message": f"Fetal heart rate ({fhr} BPM) is at upper end of normal range",
                "severity": "low",
            }

        self._apply_trend(animal_id, response)
        return response

    def _apply_trend(self, animal_id: str, response: Dict[str, Any]) -> None:
        stats = self.store.recent_pregnancy_stats(animal_id, self.window)
        rates = [s.fetal_heart_rate for s in stats if s.fetal_heart_rate is not None]
        if len(rates) < MIN_TREND_POINTS:
            return

        trend = trend_slope(rates)
        response["trendValue"] = trend
        if abs(trend) <= TREND_THRESHOLD_BPM:
            response["trend"] = "stable"
            return

        direction = "decreasing" if trend < 0 else "increasing"
        response["trend"] = direction
        note = f"{direction.capitalize()} fetal heart rate trend detected ({trend:.1f} BPM/day)"
        if response["health"] == "normal":
            response["health"] = "monitor"
            response["alert"] = {"type": "info", "message": note, "severity": "low"}
        else:
            alert = response["alert"]
            alert["message"] += f". {direction.capitalize()} trend detected ({trend:.1f} BPM/day)"
            alert["severity"] = "medium"
        logger.info("Fetal heart rate trend for %s: %s (%.2f BPM/day)", animal_id, direction, trend)
