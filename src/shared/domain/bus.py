"""Domain bus interfaces for in-process event handling.

Order lifecycle events (creation, cancellation, status changes) are
published through an ``IEventBus`` injected into the service layer, so
tests can observe them with a capturing handler.
"""

from __future__ import annotations

from typing import Generic, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    """Handler interface for domain events."""

    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    """Event bus interface.

    ``publish`` delivers to every handler subscribed to the exact event
    class; subclasses are not matched.
    """

    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...
