"""Domain models for the tracker snapshot."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

# The built-in weight metric lives on DailyMetricsEntry, not in metric_definitions.
WEIGHT_METRIC = "Weight"


class WeightUnit(Enum):
    """Display unit for weight values. No conversion is ever applied."""
    KG = "kg"
    LB = "lb"


def today_iso() -> str:
    """Today's date as an ISO string."""
    return date.today().isoformat()


def parse_iso_date(value: str) -> date:
    """Parse a zero-padded "YYYY-MM-DD" string, raising ValueError when malformed."""
    if not isinstance(value, str):
        raise ValueError(f"date must be an ISO string, got {type(value)}")
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid ISO date: {value!r}") from None
    if parsed.isoformat() != value:
        raise ValueError(f"Invalid ISO date: {value!r} (expected {parsed.isoformat()})")
    return parsed


def shift_date(value: str, days: int) -> str:
    """Move an ISO date by a number of days."""
    return (parse_iso_date(value) + timedelta(days=days)).isoformat()


def is_weight_metric(name: str) -> bool:
    """Check whether a metric name designates the built-in weight field."""
    return name.strip().lower() == WEIGHT_METRIC.lower()


@dataclass
class DailyMetricsEntry:
    date: str
    weight: Optional[float] = None
    steps: Optional[float] = None
    custom_metrics: Dict[str, Optional[float]] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DailyMetricsEntry":
        return cls(
            date=row['date'],
            weight=row.get('weight'),
            steps=row.get('steps'),
            custom_metrics=dict(row.get('custom_metrics') or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'weight': self.weight,
            'steps': self.steps,
            'custom_metrics': dict(self.custom_metrics),
        }


@dataclass
class MetricDefinition:
    id: str
    name: str
    order_index: int
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MetricDefinition":
        return cls(
            id=row['id'],
            name=row['name'],
            order_index=row.get('order_index') or 0,
            is_active=bool(row.get('is_active', True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'order_index': self.order_index,
            'is_active': self.is_active,
        }


@dataclass
class WorkoutSet:
    id: str
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'note': self.note}


@dataclass
class Exercise:
    """An exercise inside a workout; its order_index is its list position."""
    id: str
    name: str = ""
    sets: List[WorkoutSet] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'sets': [s.to_dict() for s in self.sets]}


@dataclass
class Workout:
    id: str
    date: str
    name: Optional[str] = None
    exercises: List[Exercise] = field(default_factory=list)

    def find_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return next((e for e in self.exercises if e.id == exercise_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'date': self.date,
            'name': self.name,
            'exercises': [e.to_dict() for e in self.exercises],
        }


@dataclass
class Settings:
    weight_unit_label: str = WeightUnit.LB.value

    def to_dict(self) -> Dict[str, Any]:
        return {'weight_unit_label': self.weight_unit_label}


@dataclass
class AppState:
    """Snapshot of everything the signed-in user can see."""
    daily_metrics: Dict[str, DailyMetricsEntry] = field(default_factory=dict)
    metric_definitions: List[MetricDefinition] = field(default_factory=list)
    workouts: List[Workout] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)

    def entry_for(self, day: str) -> Optional[DailyMetricsEntry]:
        return self.daily_metrics.get(day)

    def workouts_on(self, day: str) -> List[Workout]:
        return [w for w in self.workouts if w.date == day]

    def find_workout(self, workout_id: str) -> Optional[Workout]:
        return next((w for w in self.workouts if w.id == workout_id), None)

    def find_definition(self, definition_id: str) -> Optional[MetricDefinition]:
        return next((d for d in self.metric_definitions if d.id == definition_id), None)

    def find_definition_by_name(self, name: str) -> Optional[MetricDefinition]:
        key = name.strip().lower()
        return next((d for d in self.metric_definitions if d.name.strip().lower() == key), None)
