"""
In-process event bus for booking domain events.

Services collect events while they work and publish them only after their
transaction commits. Listener failures are logged and never reach the
caller; the committed state is the source of truth.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Sequence

logger = logging.getLogger(__name__)

EventListener = Callable[[Any], None]


class EventBus:
    """Registry for booking event listeners."""

    _listeners: List[EventListener] = []

    @classmethod
    def register(cls, listener: EventListener) -> None:
        cls._listeners.append(listener)

    @classmethod
    def unregister(cls, listener: EventListener) -> None:
        cls._listeners = [existing for existing in cls._listeners if existing is not listener]

    @classmethod
    def clear(cls) -> None:
        cls._listeners = []

    @classmethod
    def listeners(cls) -> Sequence[EventListener]:
        return tuple(cls._listeners)

    @classmethod
    def dispatch(cls, event: Any) -> None:
        for listener in list(cls._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Booking event listener error: %s", listener)
        payload = event.to_dict() if hasattr(event, "to_dict") else repr(event)
        logger.info("booking_event=%s payload=%s", event.__class__.__name__, payload)

    @classmethod
    def publish_all(cls, events: Iterable[Any]) -> None:
        for event in events:
            cls.dispatch(event)
