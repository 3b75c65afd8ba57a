"""Observability utilities: context logging, bounded event log and remote metrics."""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from .logging_config import ROOT_LOGGER_NAME, get_logger
from .models import LogEntry, LogLevelName, MetricPoint, ServiceTag

DEFAULT_LOG_WINDOW = 50
DEFAULT_METRIC_WINDOW = 20


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LogContext:
    """Correlation data attached to every log line of one item run."""

    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_metadata(self, **extra: Any) -> "LogContext":
        return replace(self, metadata={**self.metadata, **extra})

    def prefix(self) -> str:
        tags = [self.operation, self.correlation_id]
        return " ".join(f"[{tag}]" for tag in tags if tag)


class ContextLogger:
    """
    Wraps a pipeline logger so that calls can carry a :class:`LogContext`
    and extra ``key=value`` fields, e.g.::

        logger.info("Item completed", context, source="local")
        # [process_item] [img_1a2b] Item completed (name=a.jpg, source=local)
    """

    def __init__(self, name: str, level: Optional[str] = None):
        self._logger = get_logger(name)
        if level:
            self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    @property
    def name(self) -> str:
        return self._logger.name

    @staticmethod
    def render(
        message: str, context: Optional[LogContext] = None, **fields: Any
    ) -> str:
        merged = {**context.metadata, **fields} if context else fields
        if context and context.prefix():
            message = f"{context.prefix()} {message}"
        if merged:
            details = ", ".join(f"{key}={value}" for key, value in merged.items())
            message = f"{message} ({details})"
        return message

    def log(
        self,
        level: int,
        message: str,
        context: Optional[LogContext] = None,
        **fields: Any,
    ) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self.render(message, context, **fields))

    def debug(self, message: str, context: Optional[LogContext] = None, **fields: Any):
        self.log(logging.DEBUG, message, context, **fields)

    def info(self, message: str, context: Optional[LogContext] = None, **fields: Any):
        self.log(logging.INFO, message, context, **fields)

    def warning(self, message: str, context: Optional[LogContext] = None, **fields: Any):
        self.log(logging.WARNING, message, context, **fields)

    def error(self, message: str, context: Optional[LogContext] = None, **fields: Any):
        self.log(logging.ERROR, message, context, **fields)


class EventLog:
    """
    Bounded window of :class:`LogEntry` records, newest first.

    Every entry is mirrored to a Python logger so that the window is only a
    convenience for display collaborators, never the sole record.
    """

    _PY_LEVELS = {
        LogLevelName.INFO: logging.INFO,
        LogLevelName.WARN: logging.WARNING,
        LogLevelName.ERROR: logging.ERROR,
    }

    def __init__(
        self,
        max_entries: int = DEFAULT_LOG_WINDOW,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._logger = logger or logging.getLogger("thumbnail-pipeline.events")
        self._clock = clock

    def add(self, level: LogLevelName, message: str, service: ServiceTag) -> LogEntry:
        """Record an entry, evicting the oldest once the window is full."""
        entry = LogEntry(
            timestamp=self._clock(), level=level, message=message, service_tag=service
        )
        self._entries.appendleft(entry)
        self._logger.log(self._PY_LEVELS[level], f"[{service.value}] {message}")
        return entry

    def info(self, message: str, service: ServiceTag) -> LogEntry:
        return self.add(LogLevelName.INFO, message, service)

    def warn(self, message: str, service: ServiceTag) -> LogEntry:
        return self.add(LogLevelName.WARN, message, service)

    def error(self, message: str, service: ServiceTag) -> LogEntry:
        return self.add(LogLevelName.ERROR, message, service)

    def entries(self, service: Optional[ServiceTag] = None) -> List[LogEntry]:
        """Recorded entries, newest first, optionally filtered by service."""
        if service:
            return [e for e in self._entries if e.service_tag is service]
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class MetricsCollector:
    """Per-minute aggregation of remote invocations over a bounded window."""

    def __init__(
        self,
        max_points: int = DEFAULT_METRIC_WINDOW,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._points: Deque[MetricPoint] = deque(maxlen=max_points)
        self._clock = clock

    @staticmethod
    def bucket_for(moment: datetime) -> str:
        """Minute bucket label, e.g. ``"9:05"``."""
        return f"{moment.hour}:{moment.minute:02d}"

    def record(self, duration_ms: int, error: bool = False) -> MetricPoint:
        """Fold one remote invocation into the current minute bucket."""
        bucket = self.bucket_for(self._clock())
        last = self._points[-1] if self._points else None

        if last is not None and last.time_bucket == bucket:
            point = MetricPoint(
                time_bucket=bucket,
                invocation_count=last.invocation_count + 1,
                last_duration_ms=duration_ms,
                error_count=last.error_count + (1 if error else 0),
            )
            self._points[-1] = point
        else:
            point = MetricPoint(
                time_bucket=bucket,
                invocation_count=1,
                last_duration_ms=duration_ms,
                error_count=1 if error else 0,
            )
            self._points.append(point)
        return point

    def get_metrics(self) -> List[MetricPoint]:
        """Recorded points, oldest first."""
        return list(self._points)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics for the window."""
        if not self._points:
            return {}

        invocations = sum(p.invocation_count for p in self._points)
        errors = sum(p.error_count for p in self._points)
        return {
            "total_invocations": invocations,
            "total_errors": errors,
            "error_rate": errors / invocations if invocations else 0,
            "last_duration_ms": self._points[-1].last_duration_ms,
        }

    def clear_metrics(self):
        """Clear all recorded metrics."""
        self._points.clear()


class ObservabilityConfig:
    """Window sizes and log level for one pipeline instance."""

    def __init__(
        self,
        log_level: Optional[str] = None,
        enable_metrics: bool = True,
        log_window: int = DEFAULT_LOG_WINDOW,
        metric_window: int = DEFAULT_METRIC_WINDOW,
        component_name: str = ROOT_LOGGER_NAME,
    ):
        self.log_level = log_level
        self.enable_metrics = enable_metrics
        self.log_window = log_window
        self.metric_window = metric_window
        self.component_name = component_name


def create_logger(component: str, config: ObservabilityConfig) -> ContextLogger:
    return ContextLogger(f"{config.component_name}.{component}", config.log_level)


def create_event_log(config: ObservabilityConfig) -> EventLog:
    return EventLog(
        max_entries=config.log_window,
        logger=get_logger(f"{config.component_name}.events"),
    )


def create_metrics_collector(config: ObservabilityConfig) -> Optional[MetricsCollector]:
    """Metrics collector, or None when metrics are switched off."""
    if config.enable_metrics:
        return MetricsCollector(max_points=config.metric_window)
    return None
