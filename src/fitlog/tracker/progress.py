"""
Progress reporting for store loads and remote writes.
Supports several output kinds: logs, tqdm progress bars and silence.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tqdm import tqdm


class ProgressEventType(Enum):
    """Progress event kinds."""
    LOAD_START = "load_start"
    LOAD_END = "load_end"
    WRITE_START = "write_start"
    WRITE_COMPLETE = "write_complete"
    WRITE_FAILED = "write_failed"
    WRITE_RETRY = "write_retry"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ProgressEvent:
    """A single progress event."""
    event_type: ProgressEventType
    message: str
    timestamp: datetime
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary."""
        result = asdict(self)
        result['timestamp'] = self.timestamp.isoformat()
        result['event_type'] = self.event_type.value
        return result


@dataclass
class WriteStats:
    """Counters for remote writes issued by the store."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    retried: int = 0
    current_write: str = ""
    load_started_at: Optional[datetime] = None
    load_finished_at: Optional[datetime] = None

    @property
    def pending(self) -> int:
        """Writes started but not finished."""
        return self.started - self.completed - self.failed

    @property
    def load_seconds(self) -> Optional[float]:
        """Duration of the last load in seconds."""
        if not self.load_started_at or not self.load_finished_at:
            return None
        return (self.load_finished_at - self.load_started_at).total_seconds()


class ProgressReporter(ABC):
    """Abstract progress reporter."""

    def __init__(self, name: str = "fitlog"):
        self.name = name
        self.stats = WriteStats()
        self.events: List[ProgressEvent] = []

    def emit_event(self, event_type: ProgressEventType, message: str, **data):
        """Record and dispatch an event."""
        event = ProgressEvent(
            event_type=event_type,
            message=message,
            timestamp=datetime.now(),
            data=data
        )
        self.events.append(event)
        self._handle_event(event)

    @abstractmethod
    def _handle_event(self, event: ProgressEvent):
        """Handle an event (implemented by subclasses)."""

    def load_start(self, user_id: str):
        self.stats.load_started_at = datetime.now()
        self.stats.load_finished_at = None
        self.emit_event(ProgressEventType.LOAD_START, f"Loading data for {user_id}", user_id=user_id)

    def load_end(self, success: bool = True, **counts):
        self.stats.load_finished_at = datetime.now()
        status = "completed" if success else "failed"
        self.emit_event(ProgressEventType.LOAD_END, f"Load {status}", success=success, **counts)

    def write_start(self, description: str):
        self.stats.started += 1
        self.stats.current_write = description
        self.emit_event(ProgressEventType.WRITE_START, f"Writing: {description}", description=description)

    def write_complete(self, description: str):
        self.stats.completed += 1
        self.emit_event(ProgressEventType.WRITE_COMPLETE, f"Written: {description}", description=description)

    def write_failed(self, description: str, error: str = ""):
        self.stats.failed += 1
        self.emit_event(ProgressEventType.WRITE_FAILED, f"Failed: {description}",
                        description=description, error=error)

    def write_retry(self, description: str, attempt: int, wait_seconds: float):
        self.stats.retried += 1
        self.emit_event(ProgressEventType.WRITE_RETRY,
                        f"Retry {attempt} for {description} in {wait_seconds:.1f}s",
                        description=description, attempt=attempt, wait_seconds=wait_seconds)

    def error(self, message: str, **data):
        self.emit_event(ProgressEventType.ERROR, message, **data)

    def warning(self, message: str, **data):
        self.emit_event(ProgressEventType.WARNING, message, **data)

    def info(self, message: str, **data):
        self.emit_event(ProgressEventType.INFO, message, **data)


class LoggingReporter(ProgressReporter):
    """Reporter backed by standard logging."""

    def __init__(self, name: str = "fitlog", logger: Optional[logging.Logger] = None,
                 log_level: int = logging.DEBUG):
        super().__init__(name)
        self.logger = logger or logging.getLogger(f"{__name__}.{name}")
        self.log_level = log_level

    def _handle_event(self, event: ProgressEvent):
        level_map = {
            ProgressEventType.ERROR: logging.ERROR,
            ProgressEventType.WARNING: logging.WARNING,
            ProgressEventType.WRITE_FAILED: logging.WARNING,
            ProgressEventType.WRITE_RETRY: logging.INFO,
            ProgressEventType.LOAD_END: logging.INFO,
        }
        log_level = level_map.get(event.event_type, self.log_level)

        message = event.message
        if event.event_type == ProgressEventType.LOAD_END:
            seconds = self.stats.load_seconds
            if seconds is not None:
                message = f"{message} in {seconds:.2f}s"
        elif event.event_type == ProgressEventType.WRITE_FAILED and event.data.get('error'):
            message = f"{message}: {event.data['error']}"

        self.logger.log(log_level, message)


class TqdmReporter(ProgressReporter):
    """Reporter drawing a tqdm bar over remote writes."""

    def __init__(self, name: str = "fitlog", leave: bool = False, show_details: bool = True):
        super().__init__(name)
        self.leave = leave
        self.show_details = show_details
        self.pbar: Optional[tqdm] = None

    def _ensure_bar(self) -> tqdm:
        if self.pbar is None:
            self.pbar = tqdm(total=0, desc=f"⬆️ {self.name}", leave=self.leave, unit="write")
        return self.pbar

    def _handle_event(self, event: ProgressEvent):
        if event.event_type == ProgressEventType.WRITE_START:
            pbar = self._ensure_bar()
            pbar.total += 1
            if self.show_details:
                pbar.set_description(f"⬆️ {self.name} - {self.stats.current_write}")
            pbar.refresh()

        elif event.event_type == ProgressEventType.WRITE_COMPLETE:
            if self.pbar is not None:
                self.pbar.update(1)

        elif event.event_type == ProgressEventType.WRITE_FAILED:
            if self.pbar is not None:
                self.pbar.update(1)
                error = event.data.get('error')
                self.pbar.write(f"❌ Error: {event.message}" + (f" ({error})" if error else ""))

        elif event.event_type == ProgressEventType.ERROR and self.pbar:
            self.pbar.write(f"❌ Error: {event.message}")

        elif event.event_type == ProgressEventType.WARNING and self.pbar:
            self.pbar.write(f"⚠️ Warning: {event.message}")

    def close(self):
        """Close the progress bar once all writes are flushed."""
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None


class SilentReporter(ProgressReporter):
    """Reporter that outputs nothing."""

    def _handle_event(self, event: ProgressEvent):
        pass


def create_reporter(reporter_type: str, **kwargs) -> ProgressReporter:
    """Create a reporter by kind."""
    if reporter_type == "logging":
        return LoggingReporter(**kwargs)
    elif reporter_type == "tqdm":
        return TqdmReporter(**kwargs)
    elif reporter_type == "silent":
        return SilentReporter(**kwargs)
    else:
        raise ValueError(f"Unknown reporter type: {reporter_type}")
