"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""

    user_id: str = ""
    total: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when a customer cancels an order."""

    previous_status: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when operations move an order to a new status."""

    old_status: str = ""
    new_status: str = ""
