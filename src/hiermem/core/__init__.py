"""
Core module - configuration, logging, events, scheduling.

Components:
- config: Settings management via pydantic-settings
- logging: Structured logging setup
- events: Lifecycle event registry
- scheduler: Cancellable periodic tasks
"""

from hiermem.core.config import Settings, get_settings
from hiermem.core.events import EventEmitter, MemoryEvent, MemoryEventType
from hiermem.core.scheduler import PeriodicTask

__all__ = [
    "Settings",
    "get_settings",
    "EventEmitter",
    "MemoryEvent",
    "MemoryEventType",
    "PeriodicTask",
]
