"""Trend data derived from daily metrics (chart data only, no rendering)."""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .config import TIMEFRAMES
from .models import (
    AppState, DailyMetricsEntry, Settings, WEIGHT_METRIC, is_weight_metric, parse_iso_date, shift_date
)

SeriesPoint = Tuple[str, Optional[float]]


@dataclass
class SeriesSummary:
    """Statistics over the non-null values of a series."""
    count: int = 0
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    mean: Optional[float] = None
    latest: Optional[float] = None
    change: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            'count': self.count,
            'min': self.minimum,
            'max': self.maximum,
            'mean': self.mean,
            'latest': self.latest,
            'change': self.change,
        }


def filter_timeframe(entries: Iterable[DailyMetricsEntry], timeframe: str,
                     today: Optional[str] = None) -> List[DailyMetricsEntry]:
    """Entries inside the timeframe, sorted by date.

    "30" and "90" keep entries strictly after ``today`` minus that many days;
    "all" keeps everything.
    """
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"timeframe must be one of {list(TIMEFRAMES)}, got {timeframe!r}")

    ordered = sorted(entries, key=lambda entry: entry.date)
    if timeframe == 'all':
        return ordered

    cutoff = parse_iso_date(shift_date(today or date.today().isoformat(), -int(timeframe)))
    return [entry for entry in ordered if parse_iso_date(entry.date) > cutoff]


def metric_series(entries: Iterable[DailyMetricsEntry], name: str) -> List[SeriesPoint]:
    """(date, value) pairs for a metric; dates with no value map to None."""
    if is_weight_metric(name):
        return [(entry.date, entry.weight) for entry in entries]
    return [(entry.date, entry.custom_metrics.get(name)) for entry in entries]


def has_series_data(series: Iterable[SeriesPoint]) -> bool:
    return any(value is not None for _, value in series)


def trend_metric_names(state: AppState) -> List[str]:
    """Weight first, then the active custom metrics in display order."""
    active = sorted((d for d in state.metric_definitions if d.is_active), key=lambda d: d.order_index)
    return [WEIGHT_METRIC] + [d.name for d in active]


def chart_title(name: str, settings: Settings) -> str:
    if is_weight_metric(name):
        return f"{WEIGHT_METRIC} ({settings.weight_unit_label})"
    return name


def summarize_series(series: Iterable[SeriesPoint]) -> SeriesSummary:
    values = [value for _, value in series if value is not None]
    if not values:
        return SeriesSummary()
    return SeriesSummary(
        count=len(values),
        minimum=min(values),
        maximum=max(values),
        mean=sum(values) / len(values),
        latest=values[-1],
        change=values[-1] - values[0],
    )


def build_trend(state: AppState, name: str, timeframe: str = "30",
                today: Optional[str] = None) -> Dict:
    """Everything needed to draw one metric's chart."""
    entries = filter_timeframe(state.daily_metrics.values(), timeframe, today=today)
    series = metric_series(entries, name)
    return {
        'metric': name,
        'title': chart_title(name, state.settings),
        'timeframe': timeframe,
        'points': [{'date': day, 'value': value} for day, value in series],
        'has_data': has_series_data(series),
        'summary': summarize_series(series).to_dict(),
    }
