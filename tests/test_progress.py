"""Tests for progress reporters."""

import logging

import pytest

from fitlog.tracker.progress import (
    LoggingReporter, ProgressEventType, SilentReporter, TqdmReporter, create_reporter
)


class TestReporters:
    """Test write statistics and event dispatch."""

    def test_stats(self):
        """Test counters follow the write lifecycle."""
        reporter = SilentReporter()
        reporter.write_start("a")
        reporter.write_start("b")
        reporter.write_retry("b", 1, 0.5)
        reporter.write_complete("a")
        reporter.write_failed("b", "boom")

        assert reporter.stats.started == 2
        assert reporter.stats.completed == 1
        assert reporter.stats.failed == 1
        assert reporter.stats.retried == 1
        assert reporter.stats.pending == 0
        assert [e.event_type for e in reporter.events][:2] == [ProgressEventType.WRITE_START] * 2

    def test_load_timing(self):
        """Test load start/end record a duration."""
        reporter = SilentReporter()
        assert reporter.stats.load_seconds is None
        reporter.load_start("user-1")
        reporter.load_end(success=True, workouts=2)
        assert reporter.stats.load_seconds >= 0
        assert reporter.events[-1].to_dict()['event_type'] == "load_end"

    def test_logging_reporter_levels(self, caplog):
        """Test failures log as warnings."""
        reporter = LoggingReporter(logger=logging.getLogger("fitlog.test"))
        with caplog.at_level(logging.DEBUG, logger="fitlog.test"):
            reporter.write_start("daily metrics")
            reporter.write_failed("daily metrics", "boom")

        failed = [r for r in caplog.records if "Failed" in r.getMessage()]
        assert failed[0].levelno == logging.WARNING
        assert "boom" in failed[0].getMessage()

    def test_tqdm_reporter_counts_writes(self):
        """Test the bar grows as writes start and advances as they finish."""
        reporter = TqdmReporter(leave=False)
        reporter.write_start("a")
        reporter.write_start("b")
        reporter.write_complete("a")
        assert reporter.pbar.total == 2
        assert reporter.pbar.n == 1
        reporter.close()
        assert reporter.pbar is None

    def test_tqdm_reporter_writes_failures(self, monkeypatch):
        """Test a failed write advances the bar and prints the error."""
        reporter = TqdmReporter(leave=False)
        reporter.write_start("daily metrics")
        written = []
        monkeypatch.setattr(reporter.pbar, "write", written.append)

        reporter.write_failed("daily metrics", "boom")

        assert reporter.pbar.n == 1
        assert written == ["❌ Error: Failed: daily metrics (boom)"]
        reporter.close()

    @pytest.mark.parametrize("kind,cls", [
        ("logging", LoggingReporter), ("tqdm", TqdmReporter), ("silent", SilentReporter),
    ])
    def test_create_reporter(self, kind, cls):
        """Test the factory."""
        assert isinstance(create_reporter(kind), cls)

    def test_create_unknown_reporter(self):
        """Test unknown kinds raise ValueError."""
        with pytest.raises(ValueError):
            create_reporter("rich")
