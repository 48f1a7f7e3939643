"""In-memory event bus implementation."""

from __future__ import annotations

import threading
from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Handlers run synchronously on the publishing thread, in subscription
    order.  Events are published after the change is stored, so a failing
    handler is logged and skipped; it never reaches the publisher or the
    handlers after it.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_class, [])
            if handler not in handlers:
                handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler.handle(event)
            except Exception:
                logger.exception(
                    "event.handler_failed",
                    event_name=event.event_name,
                    aggregate_id=event.aggregate_id,
                    handler=type(handler).__name__,
                )
