"""
Health data models and summary statistics.

Readings come from the on-device health store. Statistics are pure
computation over lists of readings.
"""

import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class VitalType(str, Enum):
    """Health store sample types the app reads."""
    GLUCOSE = "glucose"
    WEIGHT = "weight"
    STEPS = "steps"
    ACTIVE_ENERGY = "active_energy"
    EXERCISE_TIME = "exercise_time"


# Glucose must stay in this set: it is a nested vitals category in the
# vendor SDK and is dropped silently when omitted.
REQUIRED_READ_TYPES = frozenset({
    VitalType.GLUCOSE,
    VitalType.WEIGHT,
    VitalType.STEPS,
    VitalType.ACTIVE_ENERGY,
    VitalType.EXERCISE_TIME,
})


@dataclass(frozen=True)
class HealthSample:
    """A raw quantity sample from the health store."""
    value: float
    unit: str
    timestamp: datetime
    source: str = "unknown"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


# ============================================================================
# Glucose
# ============================================================================

class GlucoseTrend(str, Enum):
    RAPIDLY_RISING = "rapidlyRising"
    RISING = "rising"
    STABLE = "stable"
    FALLING = "falling"
    RAPIDLY_FALLING = "rapidlyFalling"

    @property
    def symbol(self) -> str:
        return {
            GlucoseTrend.RAPIDLY_RISING: "↑↑",
            GlucoseTrend.RISING: "↑",
            GlucoseTrend.STABLE: "→",
            GlucoseTrend.FALLING: "↓",
            GlucoseTrend.RAPIDLY_FALLING: "↓↓",
        }[self]


class DataSource(str, Enum):
    BLE_FOLLOW_MODE = "ble_follow"
    HEALTH_KIT = "healthkit"
    JUNCTION = "junction"


class GlucoseRange(str, Enum):
    VERY_LOW = "very_low"    # < 54 mg/dL
    LOW = "low"              # 54-69 mg/dL
    NORMAL = "normal"        # 70-180 mg/dL
    HIGH = "high"            # 181-250 mg/dL
    VERY_HIGH = "very_high"  # > 250 mg/dL


@dataclass
class GlucoseReading:
    """A glucose reading in mg/dL."""
    value: float
    timestamp: datetime
    source: str = "unknown"
    trend: Optional[GlucoseTrend] = None
    data_source: Optional[DataSource] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_sample(cls, sample: HealthSample) -> "GlucoseReading":
        return cls(
            id=sample.id,
            value=sample.value,
            timestamp=sample.timestamp,
            source=sample.source,
            data_source=DataSource.HEALTH_KIT,
        )

    @property
    def range(self) -> GlucoseRange:
        if self.value < 54:
            return GlucoseRange.VERY_LOW
        if self.value < 70:
            return GlucoseRange.LOW
        if self.value <= 180:
            return GlucoseRange.NORMAL
        if self.value <= 250:
            return GlucoseRange.HIGH
        return GlucoseRange.VERY_HIGH

    @property
    def is_in_range(self) -> bool:
        return self.range is GlucoseRange.NORMAL

    def is_recent(self, now: Optional[datetime] = None) -> bool:
        """Less than 15 minutes old."""
        now = now or datetime.now(timezone.utc)
        return now - self.timestamp < timedelta(minutes=15)

    @property
    def formatted_value(self) -> str:
        return f"{self.value:.0f} mg/dL"


@dataclass
class GlucoseStatistics:
    """Summary statistics over a period of glucose readings."""
    average_glucose: float
    minimum_glucose: float
    maximum_glucose: float
    standard_deviation: float
    time_in_range: float  # percentage 0-100
    readings_count: int
    period_start: datetime
    period_end: datetime

    @classmethod
    def from_readings(
        cls,
        readings: List[GlucoseReading],
        period_start: datetime,
        period_end: datetime,
    ) -> "GlucoseStatistics":
        if not readings:
            return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0, period_start, period_end)

        values = [r.value for r in readings]
        in_range = sum(1 for r in readings if r.is_in_range)
        return cls(
            average_glucose=statistics.fmean(values),
            minimum_glucose=min(values),
            maximum_glucose=max(values),
            standard_deviation=statistics.pstdev(values),
            time_in_range=in_range / len(readings) * 100,
            readings_count=len(readings),
            period_start=period_start,
            period_end=period_end,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_glucose": self.average_glucose,
            "minimum_glucose": self.minimum_glucose,
            "maximum_glucose": self.maximum_glucose,
            "standard_deviation": self.standard_deviation,
            "time_in_range_percent": self.time_in_range,
            "readings_count": self.readings_count,
            "period_start": self.period_start.timestamp(),
            "period_end": self.period_end.timestamp(),
        }


# ============================================================================
# Weight
# ============================================================================

KG_PER_POUND = 0.45359237


@dataclass
class WeightReading:
    value_pounds: float
    timestamp: datetime
    source: str = "unknown"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def value_kilograms(self) -> float:
        return self.value_pounds * KG_PER_POUND

    @classmethod
    def from_sample(cls, sample: HealthSample) -> "WeightReading":
        pounds = sample.value / KG_PER_POUND if sample.unit == "kg" else sample.value
        return cls(id=sample.id, value_pounds=pounds, timestamp=sample.timestamp, source=sample.source)


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass
class WeightTrend:
    readings: List[WeightReading]
    start_weight: float
    current_weight: float
    weight_change: float
    trend: TrendDirection
    period_start: datetime
    period_end: datetime

    @classmethod
    def from_readings(
        cls,
        readings: List[WeightReading],
        period_start: datetime,
        period_end: datetime,
    ) -> "WeightTrend":
        ordered = sorted(readings, key=lambda r: r.timestamp)
        if not ordered:
            return cls([], 0.0, 0.0, 0.0, TrendDirection.STABLE, period_start, period_end)

        start, current = ordered[0].value_pounds, ordered[-1].value_pounds
        change = current - start
        if abs(change) < 1.0:
            trend = TrendDirection.STABLE
        elif change > 0:
            trend = TrendDirection.INCREASING
        else:
            trend = TrendDirection.DECREASING
        return cls(ordered, start, current, change, trend, period_start, period_end)

    @property
    def percentage_change(self) -> float:
        if self.start_weight <= 0:
            return 0.0
        return self.weight_change / self.start_weight * 100


# ============================================================================
# Activity and summary
# ============================================================================

@dataclass
class ActivitySummary:
    date: datetime
    steps: int
    active_energy_kcal: float
    exercise_minutes: int
    stand_hours: Optional[int] = None

    @property
    def met_steps_goal(self) -> bool:
        return self.steps >= 10000

    @property
    def met_exercise_goal(self) -> bool:
        return self.exercise_minutes >= 30

    @property
    def met_calorie_goal(self) -> bool:
        return self.active_energy_kcal >= 400


@dataclass
class HealthSummary:
    """Today's vitals. Any value the store could not provide is None."""
    date: datetime
    glucose: Optional[GlucoseReading] = None
    weight: Optional[WeightReading] = None
    steps: Optional[float] = None
    active_energy_kcal: Optional[float] = None
    exercise_minutes: Optional[float] = None

    @property
    def activity(self) -> Optional[ActivitySummary]:
        if self.steps is None or self.active_energy_kcal is None or self.exercise_minutes is None:
            return None
        return ActivitySummary(
            date=self.date,
            steps=int(self.steps),
            active_energy_kcal=self.active_energy_kcal,
            exercise_minutes=int(self.exercise_minutes),
        )

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        """Flat payload read by the web dashboard (``window.iosHealthData``)."""
        data: Dict[str, Any] = {}
        if self.glucose:
            data["glucose_mg_dl"] = self.glucose.value
            data["glucose_timestamp"] = self.glucose.timestamp.timestamp()
        if self.weight:
            data["weight_lbs"] = self.weight.value_pounds
            data["weight_timestamp"] = self.weight.timestamp.timestamp()
        if self.steps is not None:
            data["steps"] = self.steps
        if self.active_energy_kcal is not None:
            data["active_energy_kcal"] = self.active_energy_kcal
        if self.exercise_minutes is not None:
            data["exercise_minutes"] = self.exercise_minutes
        return data


@dataclass
class HealthAuthorizationStatus:
    is_available: bool
    glucose_authorized: bool
    weight_authorized: bool
    activity_authorized: bool

    @property
    def all_authorized(self) -> bool:
        return (
            self.is_available
            and self.glucose_authorized
            and self.weight_authorized
            and self.activity_authorized
        )

    def to_dict(self) -> Dict[str, bool]:
        return {
            "glucose": self.glucose_authorized,
            "weight": self.weight_authorized,
            "activity": self.activity_authorized,
        }
