"""Event sink: leveled, fire-and-forget operational events.

Callers hand over a short message plus a structured detail mapping. Emission
must never block the caller or raise into it.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from observability.redaction import redact_dict

logger = logging.getLogger(__name__)


class EventLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LOG_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


class EventSink(ABC):
    """Leveled event emission contract."""

    @abstractmethod
    def emit(self, level: EventLevel, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...

    def info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventLevel.INFO, message, details)

    def warn(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventLevel.WARN, message, details)

    def error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.emit(EventLevel.ERROR, message, details)


class LoggingEventSink(EventSink):
    """Writes events to the process logger with redacted details."""

    def __init__(self, name: str = "devroom.events"):
        self._logger = logging.getLogger(name)

    def emit(self, level: EventLevel, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        try:
            safe_details = redact_dict(details or {})
            self._logger.log(
                _LOG_LEVELS.get(level, logging.INFO),
                "EVENT %s details=%s",
                message,
                safe_details,
                extra={"details": safe_details},
            )
        except Exception as e:
            # Sink failures are reported locally and never reach the caller
            logger.debug("Event sink emit failed: %s", str(e))


class RecordingEventSink(EventSink):
    """In-memory sink that keeps every event, for dev inspection and tests."""

    def __init__(self) -> None:
        self.events: List[Tuple[EventLevel, str, Dict[str, Any]]] = []

    def emit(self, level: EventLevel, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.events.append((level, message, dict(details or {})))

    def messages(self, level: Optional[EventLevel] = None) -> List[str]:
        return [m for lvl, m, _ in self.events if level is None or lvl == level]
