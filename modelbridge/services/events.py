"""Observer-list event channel."""

import logging
from typing import Callable, List, Optional

from modelbridge.logging.config import get_logger
from modelbridge.models.events import Event


EventListener = Callable[[Event], None]


class EventBus:
    """Delivers tagged events to every subscriber, in subscription order.

    A failing subscriber is logged and skipped; it never affects the publisher
    or the other subscribers.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._listeners: List[EventListener] = []
        self.logger = logger or get_logger("events")

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Add a listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.logger.error(
                    f"Event listener failed for {event.type}: {e}",
                    extra={"event_type": event.type},
                    exc_info=e
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


def log_event(logger: logging.Logger) -> EventListener:
    """Build a listener that writes every event to ``logger`` at debug level."""

    def listener(event: Event) -> None:
        fields = event.model_dump(mode="json", exclude={"type", "timestamp", "result"})
        logger.debug(f"Event: {event.type}", extra={"event_type": event.type, **fields})

    return listener
