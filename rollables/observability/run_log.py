"""
Run log of everything a resolution draws and rolls.

Records dice draw groups, table lookups and re-rolls in the order they
happen, so a result can be explained after the fact and a recorded session
can be fed back through a ReplaySession.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    ROLL = "roll"  # One group of dice draws
    TABLE_LOOKUP = "table_lookup"  # One table roll
    REROLL = "reroll"  # A node re-rolled by index path
    CUSTOM = "custom"


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Subclasses overwrite event_type in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "context": self.context,
        }

    @classmethod
    def _base_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromisoformat(data["timestamp"]),
            "sequence_number": data.get("sequence_number", 0),
            "context": data.get("context", {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        return cls(event_type=EventType(data["event_type"]), **cls._base_fields(data))

    def __str__(self) -> str:
        return f"[{self.sequence_number}] {self.event_type.value.upper()} {self.context}"


@dataclass
class RollEvent(LogEvent):
    """One group of dice drawn through a DiceRoller."""

    notation: str = ""  # e.g. "2d6"
    rolls: list[int] = field(default_factory=list)  # Individual die results
    total: int = 0
    reason: str = ""

    def __post_init__(self):
        self.event_type = EventType.ROLL

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "notation": self.notation,
                "rolls": self.rolls,
                "total": self.total,
                "reason": self.reason,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollEvent":
        return cls(
            **cls._base_fields(data),
            notation=data.get("notation", ""),
            rolls=data.get("rolls", []),
            total=data.get("total", 0),
            reason=data.get("reason", ""),
        )

    def __str__(self) -> str:
        reason = f" ({self.reason})" if self.reason else ""
        return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} = {self.total}{reason}"


@dataclass
class TableLookupEvent(LogEvent):
    """A table rolled once: the total and the row text it selected."""

    table_path: str = ""
    table_title: str = ""
    roll_total: int = 0
    result_text: str = ""
    depth: int = 0

    def __post_init__(self):
        self.event_type = EventType.TABLE_LOOKUP

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "table_path": self.table_path,
                "table_title": self.table_title,
                "roll_total": self.roll_total,
                "result_text": self.result_text,
                "depth": self.depth,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableLookupEvent":
        return cls(
            **cls._base_fields(data),
            table_path=data.get("table_path", ""),
            table_title=data.get("table_title", ""),
            roll_total=data.get("roll_total", 0),
            result_text=data.get("result_text", ""),
            depth=data.get("depth", 0),
        )

    def __str__(self) -> str:
        indent = "  " * self.depth
        return (
            f"[{self.sequence_number}] {indent}TABLE {self.table_title} "
            f"[{self.roll_total}]: {self.result_text}"
        )


@dataclass
class RerollEvent(LogEvent):
    """A node inside an existing result tree rolled again."""

    index_path: list[int] = field(default_factory=list)
    target_path: str = ""
    kind: str = ""  # row, repeat or node

    def __post_init__(self):
        self.event_type = EventType.REROLL

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "index_path": self.index_path,
                "target_path": self.target_path,
                "kind": self.kind,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RerollEvent":
        return cls(
            **cls._base_fields(data),
            index_path=data.get("index_path", []),
            target_path=data.get("target_path", ""),
            kind=data.get("kind", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] REROLL {self.kind} {self.index_path} at {self.target_path}"


_EVENT_CLASSES: dict[EventType, type] = {
    EventType.ROLL: RollEvent,
    EventType.TABLE_LOOKUP: TableLookupEvent,
    EventType.REROLL: RerollEvent,
}


class RunLog:
    """
    Central run log for resolution events.

    Singleton pattern - use get_run_log() to access.
    """

    _instance: Optional["RunLog"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._seed: Optional[int] = None
        self._session_start: datetime = datetime.now()
        self._subscribers: list[Callable[[LogEvent], None]] = []

    def reset(self) -> None:
        """Clear all events and start a new session."""
        self._events = []
        self._sequence = 0
        self._seed = None
        self._session_start = datetime.now()
        logger.debug("RunLog reset")

    def set_seed(self, seed: int) -> None:
        """Record the seed the session's resolutions started from."""
        self._seed = seed
        logger.debug(f"RunLog seed set: {seed}")

    def get_seed(self) -> Optional[int]:
        return self._seed

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Receive every event as it is logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _log_event(self, event: LogEvent) -> None:
        self._sequence += 1
        event.sequence_number = self._sequence
        self._events.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_roll(
        self,
        notation: str,
        rolls: list[int],
        total: int,
        reason: str = "",
        context: Optional[dict[str, Any]] = None,
    ) -> RollEvent:
        """Log one group of dice draws."""
        event = RollEvent(
            notation=notation,
            rolls=list(rolls),
            total=total,
            reason=reason,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_table_lookup(
        self,
        table_path: str,
        table_title: str,
        roll_total: int,
        result_text: str,
        depth: int = 0,
        context: Optional[dict[str, Any]] = None,
    ) -> TableLookupEvent:
        """Log one table roll."""
        event = TableLookupEvent(
            table_path=table_path,
            table_title=table_title,
            roll_total=roll_total,
            result_text=result_text,
            depth=depth,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_reroll(
        self,
        index_path: list[int],
        target_path: str,
        kind: str,
        context: Optional[dict[str, Any]] = None,
    ) -> RerollEvent:
        """Log a re-roll of one node in an existing result tree."""
        event = RerollEvent(
            index_path=list(index_path),
            target_path=target_path,
            kind=kind,
            context=context or {},
        )
        self._log_event(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        since_sequence: int = 0,
    ) -> list[LogEvent]:
        """
        Get logged events.

        Args:
            event_type: Filter by event type (None = all)
            since_sequence: Only events after this sequence number
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_rolls(self) -> list[RollEvent]:
        return [e for e in self._events if isinstance(e, RollEvent)]

    def get_table_lookups(self) -> list[TableLookupEvent]:
        return [e for e in self._events if isinstance(e, TableLookupEvent)]

    def get_rerolls(self) -> list[RerollEvent]:
        return [e for e in self._events if isinstance(e, RerollEvent)]

    def get_roll_stream(self) -> list[int]:
        """
        Every individual die value in the order it was drawn.

        This is the draw stream a ReplaySession feeds back into a resolution.
        """
        return [value for event in self.get_rolls() for value in event.rolls]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "total_events": len(self._events),
            "rolls": len(self.get_rolls()),
            "table_lookups": len(self.get_table_lookups()),
            "rerolls": len(self.get_rerolls()),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: str) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "RunLog":
        """Replace the global log's contents with a saved log."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        log = get_run_log()
        log.reset()
        log._session_start = datetime.fromisoformat(data["session_start"])
        log._seed = data.get("seed")
        log._sequence = data.get("sequence", 0)

        for event_data in data.get("events", []):
            event_class = _EVENT_CLASSES.get(EventType(event_data["event_type"]), LogEvent)
            log._events.append(event_class.from_dict(event_data))

        logger.info(f"RunLog loaded from {filepath}: {len(log._events)} events")
        return log

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """
        Format the log as a human-readable string.

        Args:
            event_types: Filter by event types (None = all)
            max_events: Keep only the most recent events
        """
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Seed: {self._seed if self._seed is not None else 'not set'}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        lines.extend(str(event) for event in events)
        return "\n".join(lines)

    def print_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = 50,
    ) -> None:
        print(self.format_log(event_types, max_events))


# Singleton access
_run_log: Optional[RunLog] = None


def get_run_log() -> RunLog:
    """Get the global RunLog instance."""
    global _run_log
    if _run_log is None:
        _run_log = RunLog()
    return _run_log


def reset_run_log() -> RunLog:
    """Reset and return the global RunLog instance."""
    log = get_run_log()
    log.reset()
    return log
