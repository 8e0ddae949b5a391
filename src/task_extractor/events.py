"""Structured debug events with correlation tracking.

The event sink is purely observational. Pipeline code calls it
unconditionally; the default ``NullEventSink`` does nothing, and a sink that
fails never affects processing outcomes.
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Any, Deque, Dict, List, Optional


logger = logging.getLogger(__name__)

EVENT_CATEGORIES = (
    'file-processing',
    'llm-call',
    'task-creation',
    'service-detection',
    'validation',
    'error',
)


@dataclass
class DebugEvent:
    """A single structured event."""
    timestamp: float
    level: str
    category: str
    message: str
    correlation_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class EventSink:
    """Interface for structured event sinks."""

    def emit(self, level: str, category: str, message: str,
             data: Optional[Dict[str, Any]] = None,
             correlation_id: Optional[str] = None) -> None:
        pass

    def start_operation(self, category: str, message: str,
                        data: Optional[Dict[str, Any]] = None) -> Optional[str]:
        return None


class NullEventSink(EventSink):
    """No-op sink used when debug mode is off."""


class DebugEventLog(EventSink):
    """In-memory ring buffer of the most recent events."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._events: Deque[DebugEvent] = deque(maxlen=max_entries)
        self._counter = count(1)

    def emit(self, level: str, category: str, message: str,
             data: Optional[Dict[str, Any]] = None,
             correlation_id: Optional[str] = None) -> None:
        try:
            self._events.append(DebugEvent(
                timestamp=time.time(),
                level=level,
                category=category,
                message=message,
                correlation_id=correlation_id,
                data=dict(data or {}),
            ))
        except Exception as e:
            logger.debug(f"Dropping debug event '{message}': {e}")

    def start_operation(self, category: str, message: str,
                        data: Optional[Dict[str, Any]] = None) -> Optional[str]:
        correlation_id = f"op-{next(self._counter)}-{int(time.time() * 1000)}"
        self.emit('info', category, message, data, correlation_id)
        return correlation_id

    @property
    def events(self) -> List[DebugEvent]:
        return list(self._events)

    def for_correlation(self, correlation_id: str) -> List[DebugEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def clear(self) -> None:
        self._events.clear()
        self._counter = count(1)

    def export(self) -> str:
        """Render all events as human-readable text."""
        if not self._events:
            return "No debug logs available."

        lines = [
            "=== Task Extractor Debug Logs ===",
            f"Generated: {datetime.now(timezone.utc).isoformat()}",
            f"Total Entries: {len(self._events)}",
            "",
        ]
        for event in self._events:
            stamp = datetime.fromtimestamp(event.timestamp, timezone.utc).isoformat()
            correlation = f" [{event.correlation_id}]" if event.correlation_id else ""
            lines.append(f"[{stamp}] {event.level.upper()} {event.category}{correlation}: {event.message}")
            if event.data:
                rendered = json.dumps(event.data, indent=2, default=str)
                lines.append("  Data: " + rendered.replace("\n", "\n  "))
            lines.append("")
        return "\n".join(lines)


def create_event_sink(config: Any) -> EventSink:
    """Return a DebugEventLog when debug mode is enabled, else a no-op sink."""
    if getattr(config, 'debug_mode', False):
        return DebugEventLog(max_entries=getattr(config, 'debug_max_entries', 1000))
    return NullEventSink()
