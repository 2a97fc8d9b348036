import logging
import sys
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional
import structlog
from pythonjsonlogger import jsonlogger

from delivery_service.core.config import settings


def setup_logging(level: Optional[str] = None):
    """
    Configure structured logging for the application.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter("%(message)s"))

    # Configure standard library logging
    logging.basicConfig(
        handlers=[handler],
        level=getattr(logging, (level or settings.LOG_LEVEL).upper()),
        force=True,
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class LogBuffer:
    """
    Bounded in-memory record of recent log entries.

    Each orchestrator or queue can be handed its own buffer, so inspecting
    recent activity never depends on process-wide state.
    """

    LOG_LEVELS: Dict[str, int] = {
        "ERROR": 0,
        "WARNING": 1,
        "INFO": 2,
        "DEBUG": 3,
    }

    def __init__(self, max_logs: int = 1000, level: str = "INFO"):
        self.max_logs = max(1, max_logs)
        self.current_level = self.LOG_LEVELS["INFO"]
        self.set_level(level)
        self._logs: Deque[Dict[str, Any]] = deque(maxlen=self.max_logs)

    @classmethod
    def _normalize(cls, level: str) -> str:
        upper = level.upper()
        return "WARNING" if upper == "WARN" else upper

    def set_level(self, level: str):
        """Set the most verbose level still stored; unknown names are ignored."""
        name = self._normalize(level)
        if name in self.LOG_LEVELS:
            self.current_level = self.LOG_LEVELS[name]

    def record(self, level: str, message: str, context: Optional[Dict[str, Any]] = None):
        name = self._normalize(level)
        level_value = self.LOG_LEVELS.get(name)
        if level_value is None or level_value > self.current_level:
            return
        self._logs.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": name,
            "message": message,
            "context": dict(context) if context else None,
        })

    def get_logs(self) -> List[Dict[str, Any]]:
        return list(self._logs)

    def get_logs_by_level(self, level: str) -> List[Dict[str, Any]]:
        name = self._normalize(level)
        return [entry for entry in self._logs if entry["level"] == name]

    def get_recent_logs(self, count: int = 10) -> List[Dict[str, Any]]:
        if count <= 0:
            return []
        return list(self._logs)[-count:]

    def clear(self):
        self._logs.clear()

    def set_max_logs(self, max_logs: int):
        """Resize the buffer, keeping the newest entries."""
        self.max_logs = max(1, max_logs)
        self._logs = deque(self._logs, maxlen=self.max_logs)

    def stats(self) -> Dict[str, Any]:
        by_level = {name: 0 for name in self.LOG_LEVELS}
        for entry in self._logs:
            if entry["level"] in by_level:
                by_level[entry["level"]] += 1

        current = next(
            name for name, value in self.LOG_LEVELS.items()
            if value == self.current_level
        )
        return {
            "total": len(self._logs),
            "by_level": by_level,
            "current_level": current,
            "max_logs": self.max_logs,
        }


class ContextLogger:
    """
    Logger with context support for tracing requests and operations.
    """

    def __init__(self, name: str, buffer: Optional[LogBuffer] = None):
        self.logger = structlog.get_logger(name)
        self.buffer = buffer

    def with_context(self, **kwargs) -> structlog.BoundLogger:
        """Add context to logger."""
        return self.logger.bind(**kwargs)

    def _emit(self, level: str, message: str, **kwargs):
        if self.buffer is not None:
            self.buffer.record(level, message, kwargs)
        getattr(self.logger, level)(message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self._emit("info", message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self._emit("error", message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self._emit("warning", message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self._emit("debug", message, **kwargs)


def get_logger(name: str, buffer: Optional[LogBuffer] = None) -> ContextLogger:
    """
    Get a context-aware logger instance.
    """
    return ContextLogger(name, buffer=buffer)
