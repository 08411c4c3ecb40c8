"""
Synchronous pub/sub for pool events: deposited, withdrawn,
reward_rate_updated and operation_failed.
"""
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Delivers events in the emitting thread, after the operation has been
    applied and persisted. Listener failures are logged and never reach
    the operation or the other listeners.
    """

    def __init__(self):
        self.listeners: DefaultDict[str, List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Callable) -> Callable[[], None]:
        """Registers `callback` and returns a function that removes it again."""
        self.listeners[event_type].append(callback)

        def unsubscribe() -> None:
            if callback in self.listeners[event_type]:
                self.listeners[event_type].remove(callback)

        return unsubscribe

    def emit(self, event_type: str, **data: Any) -> None:
        # Snapshot so listeners may unsubscribe while being called
        for callback in list(self.listeners.get(event_type, ())):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"{event_type} listener {getattr(callback, '__name__', callback)!r} failed: {e}",
                             exc_info=True)


# Default bus for services created without one
event_bus = EventBus()
