"""
Run Log for light tracker and migration activity.

Captures tracker ticks, expiries, gathers, state transitions and migration
steps as typed events so a session can be inspected, saved and reloaded.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Callable
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    TICK = "tick"  # Light tracker tick
    EXPIRY = "expiry"  # A timed resource ran out
    GATHER = "gather"  # Working set rebuilt from the store
    TRANSITION = "transition"  # Tracker state transition
    MIGRATION = "migration"  # Migration run or step
    CUSTOM = "custom"  # Custom event


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Subclasses set the correct event_type in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    game_time: Optional[str] = None  # World time as string
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "game_time": self.game_time,
            "context": self.context,
        }

    @classmethod
    def _base_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromisoformat(data["timestamp"]),
            "sequence_number": data.get("sequence_number", 0),
            "game_time": data.get("game_time"),
            "context": data.get("context", {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        """Create from dictionary."""
        return cls(event_type=EventType(data["event_type"]), **cls._base_fields(data))

    def __str__(self) -> str:
        name = self.context.get("event_name", self.event_type.value)
        return f"[{self.sequence_number}] {name.upper()} {self.context}"


@dataclass
class TickEvent(LogEvent):
    """One light tracker tick."""

    interval_seconds: float = 0
    updated: int = 0
    expired: int = 0
    skipped: int = 0
    errors: int = 0

    def __post_init__(self):
        self.event_type = EventType.TICK

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "interval_seconds": self.interval_seconds,
                "updated": self.updated,
                "expired": self.expired,
                "skipped": self.skipped,
                "errors": self.errors,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TickEvent":
        return cls(
            **cls._base_fields(data),
            interval_seconds=data.get("interval_seconds", 0),
            updated=data.get("updated", 0),
            expired=data.get("expired", 0),
            skipped=data.get("skipped", 0),
            errors=data.get("errors", 0),
        )

    def __str__(self) -> str:
        return (
            f"[{self.sequence_number}] TICK -{self.interval_seconds}s: "
            f"{self.updated} updated, {self.expired} expired, "
            f"{self.skipped} skipped, {self.errors} errors"
        )


@dataclass
class ExpiryEvent(LogEvent):
    """A timed resource reached zero and was removed from its owner."""

    owner_id: str = ""
    resource_id: str = ""
    name: str = ""
    kind: str = ""

    def __post_init__(self):
        self.event_type = EventType.EXPIRY

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "owner_id": self.owner_id,
                "resource_id": self.resource_id,
                "name": self.name,
                "kind": self.kind,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpiryEvent":
        return cls(
            **cls._base_fields(data),
            owner_id=data.get("owner_id", ""),
            resource_id=data.get("resource_id", ""),
            name=data.get("name", ""),
            kind=data.get("kind", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] EXPIRY {self.name} ({self.kind}) on {self.owner_id}"


@dataclass
class GatherEvent(LogEvent):
    """The tracker rebuilt its working set."""

    owner_count: int = 0
    resource_count: int = 0

    def __post_init__(self):
        self.event_type = EventType.GATHER

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "owner_count": self.owner_count,
                "resource_count": self.resource_count,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GatherEvent":
        return cls(
            **cls._base_fields(data),
            owner_count=data.get("owner_count", 0),
            resource_count=data.get("resource_count", 0),
        )

    def __str__(self) -> str:
        return (
            f"[{self.sequence_number}] GATHER {self.resource_count} light sources "
            f"across {self.owner_count} owners"
        )


@dataclass
class TransitionEvent(LogEvent):
    """A state machine transition event."""

    from_state: str = ""
    to_state: str = ""
    trigger: str = ""

    def __post_init__(self):
        self.event_type = EventType.TRANSITION

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "from_state": self.from_state,
                "to_state": self.to_state,
                "trigger": self.trigger,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitionEvent":
        return cls(
            **cls._base_fields(data),
            from_state=data.get("from_state", ""),
            to_state=data.get("to_state", ""),
            trigger=data.get("trigger", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] TRANSITION {self.from_state} -> {self.to_state} (trigger: {self.trigger})"


@dataclass
class MigrationEvent(LogEvent):
    """A migration run boundary or a completed migration step."""

    phase: str = ""  # "begin", "step" or "complete"
    version: float = 0
    description: str = ""
    migrated: int = 0
    failures: int = 0

    def __post_init__(self):
        self.event_type = EventType.MIGRATION

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "phase": self.phase,
                "version": self.version,
                "description": self.description,
                "migrated": self.migrated,
                "failures": self.failures,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationEvent":
        return cls(
            **cls._base_fields(data),
            phase=data.get("phase", ""),
            version=data.get("version", 0),
            description=data.get("description", ""),
            migrated=data.get("migrated", 0),
            failures=data.get("failures", 0),
        )

    def __str__(self) -> str:
        detail = f" {self.description}" if self.description else ""
        return (
            f"[{self.sequence_number}] MIGRATION {self.phase} {self.version}{detail} "
            f"({self.migrated} migrated, {self.failures} failed)"
        )


_EVENT_CLASSES: dict[EventType, type[LogEvent]] = {
    EventType.TICK: TickEvent,
    EventType.EXPIRY: ExpiryEvent,
    EventType.GATHER: GatherEvent,
    EventType.TRANSITION: TransitionEvent,
    EventType.MIGRATION: MigrationEvent,
}


class RunLog:
    """
    Central run log for tracker and migration events.

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
        self._session_start: datetime = datetime.now()
        self._game_time_provider: Optional[Callable[[], str]] = None
        self._subscribers: list[Callable[[LogEvent], None]] = []

    def reset(self) -> None:
        """Reset the log for a new session."""
        self._events = []
        self._sequence = 0
        self._session_start = datetime.now()
        self._subscribers = []
        self._game_time_provider = None
        logger.debug("RunLog reset")

    def set_game_time_provider(self, provider: Callable[[], str]) -> None:
        """Set a callback returning the current world time as a string."""
        self._game_time_provider = provider

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _get_game_time(self) -> Optional[str]:
        if self._game_time_provider:
            try:
                return self._game_time_provider()
            except Exception as e:
                logger.warning(f"Game time provider error: {e}")
                return None
        return None

    def _log_event(self, event: LogEvent) -> None:
        self._sequence += 1
        event.sequence_number = self._sequence
        event.game_time = self._get_game_time()
        self._events.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_tick(
        self,
        interval_seconds: float,
        updated: int,
        expired: int,
        skipped: int = 0,
        errors: int = 0,
    ) -> TickEvent:
        """Log a completed tracker tick."""
        event = TickEvent(
            interval_seconds=interval_seconds,
            updated=updated,
            expired=expired,
            skipped=skipped,
            errors=errors,
        )
        self._log_event(event)
        return event

    def log_expiry(
        self,
        owner_id: str,
        resource_id: str,
        name: str,
        kind: str,
        context: Optional[dict[str, Any]] = None,
    ) -> ExpiryEvent:
        """Log an expired resource."""
        event = ExpiryEvent(
            owner_id=owner_id,
            resource_id=resource_id,
            name=name,
            kind=kind,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_gather(self, owner_count: int, resource_count: int) -> GatherEvent:
        event = GatherEvent(owner_count=owner_count, resource_count=resource_count)
        self._log_event(event)
        return event

    def log_transition(
        self,
        from_state: str,
        to_state: str,
        trigger: str,
        context: Optional[dict[str, Any]] = None,
    ) -> TransitionEvent:
        """Log a state transition."""
        event = TransitionEvent(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_migration(
        self,
        phase: str,
        version: float,
        description: str = "",
        migrated: int = 0,
        failures: int = 0,
    ) -> MigrationEvent:
        """Log a migration boundary ("begin"/"complete") or a finished step."""
        event = MigrationEvent(
            phase=phase,
            version=version,
            description=description,
            migrated=migrated,
            failures=failures,
        )
        self._log_event(event)
        return event

    def log_custom(self, event_name: str, details: dict[str, Any]) -> LogEvent:
        """Log a custom event."""
        event = LogEvent(
            event_type=EventType.CUSTOM,
            context={"event_name": event_name, **details},
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

        Returns:
            List of events
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_ticks(self) -> list[TickEvent]:
        return [e for e in self._events if isinstance(e, TickEvent)]

    def get_expiries(self) -> list[ExpiryEvent]:
        return [e for e in self._events if isinstance(e, ExpiryEvent)]

    def get_transitions(self) -> list[TransitionEvent]:
        return [e for e in self._events if isinstance(e, TransitionEvent)]

    def get_migrations(self) -> list[MigrationEvent]:
        return [e for e in self._events if isinstance(e, MigrationEvent)]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run log."""
        return {
            "session_start": self._session_start.isoformat(),
            "total_events": len(self._events),
            "ticks": len(self.get_ticks()),
            "expiries": len(self.get_expiries()),
            "transitions": len(self.get_transitions()),
            "migrations": len(self.get_migrations()),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entire log to a dictionary."""
        return {
            "session_start": self._session_start.isoformat(),
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: str) -> None:
        """Save the log to a file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "RunLog":
        """Load a log from a file into the global instance."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        log = get_run_log()
        log.reset()
        log._session_start = datetime.fromisoformat(data["session_start"])
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
            max_events: Maximum number of events to include

        Returns:
            Formatted log string
        """
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        for event in events:
            lines.append(str(event))

        return "\n".join(lines)


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
