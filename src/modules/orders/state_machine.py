"""Order status state machine.

Happy path: ``pending -> preparing -> delivering -> completed``.
``pending`` and ``preparing`` may also go to ``cancelled``.  Pickup orders
skip ``delivering`` (``preparing -> completed``) unless the machine is
built with ``pickup_allows_delivering=True``.  ``completed`` and
``cancelled`` are terminal.

The machine is deterministic: ``transition`` returns a new ``Order``
snapshot and touches nothing else.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Optional, Union

import uuid6

from modules.orders.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DeliveryType,
    OrderStatus,
)
from modules.orders.exceptions import InvalidTransitionError
from modules.orders.models import Order, StatusChange


def is_terminal_state(status: OrderStatus) -> bool:
    """Return True if the given status is terminal."""
    return status in TERMINAL_STATES


class StatusMachine:
    """Validates and applies order status transitions."""

    def __init__(self, pickup_allows_delivering: bool = False) -> None:
        self.pickup_allows_delivering = pickup_allows_delivering

    def allowed_transitions(
        self, status: OrderStatus, delivery_type: DeliveryType
    ) -> frozenset[OrderStatus]:
        allowed = VALID_TRANSITIONS.get(status, frozenset())
        if status != OrderStatus.PREPARING:
            return allowed
        if delivery_type == DeliveryType.DELIVERY:
            return allowed - {OrderStatus.COMPLETED}
        if self.pickup_allows_delivering:
            return allowed
        return allowed - {OrderStatus.DELIVERING}

    def can_transition(
        self,
        status: OrderStatus,
        delivery_type: DeliveryType,
        next_status: Union[OrderStatus, str],
    ) -> bool:
        try:
            target = OrderStatus(next_status)
        except ValueError:
            return False
        return target in self.allowed_transitions(status, delivery_type)

    def transition(
        self,
        order: Order,
        next_status: Union[OrderStatus, str],
        *,
        notes: str = "",
        estimated_delivery: Optional[datetime] = None,
        current_location: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Return a copy of *order* moved to *next_status*.

        ``estimated_delivery`` and ``current_location`` are only written
        when given; ``current_location`` requires the target status to be
        ``delivering``.

        Raises:
            InvalidTransitionError: the pair is not in the transition table
                (including unknown status names).
        """
        if not self.can_transition(order.status, order.delivery_type, next_status):
            raise InvalidTransitionError(order.status, next_status)
        target = OrderStatus(next_status)
        if current_location is not None and target != OrderStatus.DELIVERING:
            raise ValueError("current_location can only be set while delivering.")

        change = StatusChange(
            id=uuid6.uuid7(),
            old_status=order.status,
            new_status=target,
            notes=notes,
            created_at=now or datetime.now(timezone.utc),
        )
        fields = {"status": target, "history": order.history + (change,)}
        if estimated_delivery is not None:
            fields["estimated_delivery"] = estimated_delivery
        if current_location is not None:
            fields["current_location"] = current_location
        return dataclasses.replace(order, **fields)
