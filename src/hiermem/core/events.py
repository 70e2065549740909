"""
Lifecycle events.

Observer registry owned by each component that emits events. Listeners are
plain callables or coroutine functions; they receive a single MemoryEvent.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from hiermem.core.logging import get_logger

if TYPE_CHECKING:
    from hiermem.memory.base import MemoryLevel, MemoryRecord

logger = get_logger("core.events")


class MemoryEventType(Enum):
    STORED = "stored"
    RETRIEVED = "retrieved"
    UPDATED = "updated"
    DELETED = "deleted"
    CONSOLIDATED = "consolidated"
    CLEANED = "cleaned"


@dataclass
class MemoryEvent:
    """Payload delivered to listeners.

    Which fields are set depends on the type:
    - stored/retrieved: record
    - updated: record, changes
    - deleted: record_id
    - consolidated: records, count, source, target
    - cleaned: count
    """

    type: MemoryEventType
    record: "MemoryRecord | None" = None
    records: list["MemoryRecord"] = field(default_factory=list)
    record_id: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    count: int = 0
    source: "MemoryLevel | None" = None
    target: "MemoryLevel | None" = None


Listener = Callable[[MemoryEvent], Awaitable[None] | None]


class EventEmitter:
    """Per-instance listener registry."""

    def __init__(self) -> None:
        self._listeners: dict[MemoryEventType, list[Listener]] = {}

    def subscribe(self, event_type: MemoryEventType, listener: Listener) -> None:
        """Register a listener for one event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(self, event_type: MemoryEventType, listener: Listener) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listener_count(self, event_type: MemoryEventType | None = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def clear_listeners(self) -> None:
        """Detach every listener."""
        self._listeners.clear()

    async def emit(self, event: MemoryEvent) -> None:
        """Deliver event to listeners in registration order.

        A failing listener is logged and does not stop delivery.
        """
        for listener in list(self._listeners.get(event.type, [])):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener for {event.type.value} failed: {e}", exc_info=True)
