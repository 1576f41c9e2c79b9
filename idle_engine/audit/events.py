"""
Event buffer and sinks.

Every event is redacted before it is stored or forwarded. The buffer keeps
events in emission order; it becomes ExecutionResult.events.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import EventSinkError
from ..models import Event, EventType
from ..security.redaction import redact
from ..security.validator import validate_event_sink

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Host-supplied destination for engine events."""

    @abstractmethod
    def write_event(self, event: Event) -> None:
        """
        Receive one redacted event.

        Args:
            event: The event to record
        """
        pass


class JsonlEventSink(EventSink):
    """
    Append-only audit trail on disk.

    Writes one JSON document per line into a daily file
    (``events_YYYY-MM-DD.jsonl``).
    """

    def __init__(self, event_dir: Union[str, Path] = "idle_events"):
        """
        Initialize the sink.

        Args:
            event_dir: Directory to store event logs
        """
        self.event_dir = Path(event_dir)
        self.event_dir.mkdir(parents=True, exist_ok=True)

    def write_event(self, event: Event) -> None:
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.event_dir / f"events_{date_str}.jsonl"

        with open(log_file, "a", encoding="utf-8", newline="\n") as f:
            data = event.model_dump(mode="json", by_alias=True)
            f.write(json.dumps(data, sort_keys=True, default=str) + "\n")

    def read_events(self) -> List[Dict[str, Any]]:
        """Read back all recorded events, oldest file first."""
        records = []
        for log_file in sorted(self.event_dir.glob("events_*.jsonl")):
            with open(log_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(json.loads(line))
                    except json.JSONDecodeError as e:
                        logger.warning(f"Skipping malformed event record in {log_file}: {e}")
        return records


class LoggingEventSink(EventSink):
    """Forwards events to a standard logger."""

    def __init__(self, logger_name: str = "idle_engine.events", level: int = logging.INFO):
        self.logger_name = logger_name
        self.level = level

    def write_event(self, event: Event) -> None:
        step = f" [{event.step_name}]" if event.step_name else ""
        logging.getLogger(self.logger_name).log(
            self.level, f"{event.type.value}{step}: {event.message}"
        )


class EventBuffer:
    """
    Ordered, append-only event buffer with optional external sink.

    The caller's event object is never mutated: a redacted copy is stored
    and the same copy is forwarded to the sink.
    """

    def __init__(self, sink: Optional[Any] = None):
        validate_event_sink(sink)
        self.sink = sink
        self._events: List[Event] = []

    def emit(self, event: Event) -> Event:
        """
        Record an event.

        Args:
            event: Event to record

        Returns:
            The redacted copy that was stored

        Raises:
            EventSinkError: If the external sink fails; the event stays buffered
        """
        redacted = event.model_copy(update={"data": redact(event.data)})
        self._events.append(redacted)
        if self.sink is not None:
            try:
                self.sink.write_event(redacted)
            except Exception as e:
                raise EventSinkError(
                    f"Event sink {type(self.sink).__name__} rejected {redacted.type.value} event: {e}"
                ) from e
        return redacted

    def emit_new(self, event_type: EventType, message: str = "", step_name: Optional[str] = None,
                 data: Optional[Dict[str, Any]] = None) -> Event:
        """Build and record an event."""
        return self.emit(Event(type=event_type, message=message, step_name=step_name, data=data or {}))

    @property
    def events(self) -> tuple:
        return tuple(self._events)

    def __len__(self):
        return len(self._events)
