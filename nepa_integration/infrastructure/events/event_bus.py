"""Synchronous in-process publish/subscribe.

Each executor and each monitor owns its own bus, so several of them can
live in one process without sharing global state. Handlers run inline in
the publisher's call; a failing handler is logged and does not affect the
publisher or the remaining handlers.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Type, TypeVar

from nepa_integration.domain.events.api_events import DomainEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)
Handler = Callable[[E], None]


class Subscription:
    """Handle returned by EventBus.subscribe; call cancel() to detach."""

    def __init__(self, bus: "EventBus", event_type: Type[DomainEvent], handler: Callable):
        self._bus = bus
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._bus._remove(self.event_type, self.handler)
            self.active = False


class EventBus:
    """Routes events to handlers registered for their exact type."""

    def __init__(self, name: str = "events"):
        self.name = name
        self._handlers: Dict[Type[DomainEvent], List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], handler: Handler) -> Subscription:
        self._handlers[event_type].append(handler)
        logger.debug(f"[{self.name}] {getattr(handler, '__qualname__', handler)} subscribed to {event_type.__name__}")
        return Subscription(self, event_type, handler)

    def _remove(self, event_type: Type[DomainEvent], handler: Callable) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        """Delivers an event to every handler subscribed to its type."""
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"[{self.name}] Handler for {type(event).__name__} failed: {e}", exc_info=True)

    def subscriber_count(self, event_type: Type[DomainEvent]) -> int:
        return len(self._handlers.get(event_type, []))
