"""Tests for trend data derivation."""

import pytest

from fitlog.tracker.models import (
    AppState, DailyMetricsEntry, MetricDefinition, Settings, is_weight_metric, parse_iso_date, shift_date
)
from fitlog.tracker.trends import (
    build_trend, chart_title, filter_timeframe, has_series_data, metric_series, summarize_series,
    trend_metric_names
)

TODAY = "2025-06-30"


@pytest.fixture
def entries():
    return [
        DailyMetricsEntry("2025-06-20", weight=181.0, custom_metrics={'BF%': 16.0}),
        DailyMetricsEntry("2025-03-01", weight=190.0),
        DailyMetricsEntry("2025-05-31", weight=184.0),
        DailyMetricsEntry("2025-06-01", weight=None, steps=9000, custom_metrics={'BF%': None}),
        DailyMetricsEntry("2025-06-29", weight=179.0, custom_metrics={'BF%': 15.0}),
    ]


class TestTimeframes:
    """Test timeframe filtering."""

    def test_thirty_days_is_strictly_after_cutoff(self, entries):
        """Test the cutoff date itself is excluded."""
        kept = filter_timeframe(entries, "30", today=TODAY)
        assert [e.date for e in kept] == ["2025-06-01", "2025-06-20", "2025-06-29"]

    def test_ninety_days(self, entries):
        """Test a longer window."""
        kept = filter_timeframe(entries, "90", today=TODAY)
        assert [e.date for e in kept] == ["2025-05-31", "2025-06-01", "2025-06-20", "2025-06-29"]

    def test_all_sorts_everything(self, entries):
        """Test "all" keeps every entry in date order."""
        kept = filter_timeframe(entries, "all", today=TODAY)
        assert [e.date for e in kept][0] == "2025-03-01"
        assert len(kept) == 5

    def test_unknown_timeframe(self, entries):
        """Test unsupported timeframes raise ValueError."""
        with pytest.raises(ValueError):
            filter_timeframe(entries, "7", today=TODAY)


class TestSeries:
    """Test series extraction and summaries."""

    def test_weight_series_uses_builtin_field(self, entries):
        """Test Weight maps to the weight field."""
        series = metric_series(filter_timeframe(entries, "30", today=TODAY), "Weight")
        assert series == [("2025-06-01", None), ("2025-06-20", 181.0), ("2025-06-29", 179.0)]

    def test_custom_series_missing_is_none(self, entries):
        """Test dates without the key map to None."""
        series = metric_series(sorted(entries, key=lambda e: e.date), "BF%")
        assert [value for _, value in series] == [None, None, None, 16.0, 15.0]
        assert has_series_data(series)
        assert not has_series_data(metric_series(entries, "HR"))

    def test_summary(self, entries):
        """Test summary statistics ignore missing values."""
        series = metric_series(filter_timeframe(entries, "all", today=TODAY), "Weight")
        summary = summarize_series(series)
        assert summary.count == 4
        assert summary.minimum == 179.0
        assert summary.maximum == 190.0
        assert summary.latest == 179.0
        assert summary.change == -11.0
        assert summary.mean == pytest.approx(183.5)

    def test_empty_summary(self):
        """Test an empty series has no statistics."""
        assert summarize_series([("2025-06-01", None)]).to_dict()['count'] == 0


class TestChartMetadata:
    """Test chart titles and metric lists."""

    def test_trend_metric_names(self):
        """Test Weight comes first, then active definitions in order."""
        state = AppState(metric_definitions=[
            MetricDefinition("2", "HR", 1),
            MetricDefinition("1", "BF%", 0),
            MetricDefinition("3", "Old", 2, is_active=False),
        ])
        assert trend_metric_names(state) == ["Weight", "BF%", "HR"]

    def test_chart_title(self):
        """Test the weight title carries the display unit."""
        assert chart_title("Weight", Settings("kg")) == "Weight (kg)"
        assert chart_title("BF%", Settings("kg")) == "BF%"

    def test_build_trend(self, entries):
        """Test the combined chart payload."""
        state = AppState(daily_metrics={e.date: e for e in entries})
        trend = build_trend(state, "Weight", "30", today=TODAY)
        assert trend['title'] == "Weight (lb)"
        assert trend['has_data'] is True
        assert len(trend['points']) == 3
        assert trend['summary']['latest'] == 179.0


class TestDateHelpers:
    """Test ISO date helpers used by the timeline."""

    def test_shift_date_crosses_months(self):
        assert shift_date("2025-06-30", 1) == "2025-07-01"
        assert shift_date("2025-03-01", -1) == "2025-02-28"

    @pytest.mark.parametrize("value", ["06/01/2025", "2025-13-01", "2025-6-1", "2025-06-1", "", None])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_iso_date(value)

    def test_weight_metric_name(self):
        assert is_weight_metric(" weight ")
        assert not is_weight_metric("Weight loss")
