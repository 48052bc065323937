"""
Observability and replay for the Rollables engine.

Records every dice draw, table lookup and re-roll, and replays a recorded
draw stream through the engine.
"""

from rollables.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    RollEvent,
    TableLookupEvent,
    RerollEvent,
    get_run_log,
    reset_run_log,
)
from rollables.observability.replay import ReplaySession

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "RollEvent",
    "TableLookupEvent",
    "RerollEvent",
    "get_run_log",
    "reset_run_log",
    "ReplaySession",
]
