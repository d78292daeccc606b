"""
Observability for the light tracker and migration runner.

Provides a structured run log of ticks, expiries, state transitions and
migrations, plus the user-facing notification sink.
"""

from src.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    TickEvent,
    ExpiryEvent,
    GatherEvent,
    TransitionEvent,
    MigrationEvent,
    get_run_log,
    reset_run_log,
)
from src.observability.notifications import (
    Notification,
    NotificationLevel,
    NotificationSink,
)

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "TickEvent",
    "ExpiryEvent",
    "GatherEvent",
    "TransitionEvent",
    "MigrationEvent",
    "get_run_log",
    "reset_run_log",
    "Notification",
    "NotificationLevel",
    "NotificationSink",
]
