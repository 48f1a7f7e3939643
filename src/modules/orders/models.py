"""Order, OrderLineItem, DeliveryInfo and StatusChange entities.

Entities are frozen dataclasses: the store hands out snapshots and a
mutation always produces a new ``Order`` (see ``dataclasses.replace``)
that the store swaps in under the order's lock.

Rules captured here:
- Line items are a snapshot of the cart at checkout and never change.
- ``subtotal`` is always ``quantity * unit_price``.
- An order always has at least one item and a non-negative total.
- ``history`` is append-only; the first entry records creation.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from modules.orders.constants import (
    ASAP_DELIVERY_TIME,
    ORDER_ID_DELIMITER,
    ORDER_ID_PREFIX,
    TERMINAL_STATES,
    DeliveryType,
    OrderStatus,
    PaymentMethod,
)


@dataclass(frozen=True)
class OrderLineItem:
    """A menu item as it was when the order was placed."""

    name: str
    unit_price: Decimal
    quantity: int
    observations: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("Quantity must be at least 1.")
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative.")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DeliveryInfo:
    name: str
    phone: str
    time: str
    address: Optional[str] = None
    complement: Optional[str] = None

    @property
    def is_asap(self) -> bool:
        return self.time == ASAP_DELIVERY_TIME


@dataclass(frozen=True)
class StatusChange:
    """One entry of an order's status audit trail.

    ``old_status`` is ``None`` only for the creation entry.
    """

    id: UUID
    old_status: Optional[OrderStatus]
    new_status: OrderStatus
    notes: str
    created_at: datetime


@dataclass(frozen=True)
class Order:
    """Order aggregate root.

    ``id`` has the form ``order_<token>``; ``display_number`` is the token
    shown to customers.  Only ``status``, ``estimated_delivery``,
    ``current_location`` and ``history`` ever differ between two snapshots
    of the same order.
    """

    id: str
    user_id: str
    items: tuple[OrderLineItem, ...]
    total: Decimal
    delivery_type: DeliveryType
    delivery_info: DeliveryInfo
    payment_method: PaymentMethod
    created_at: datetime
    status: OrderStatus = OrderStatus.PENDING
    estimated_delivery: Optional[datetime] = None
    current_location: Optional[str] = None
    history: tuple[StatusChange, ...] = ()
    idempotency_key: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("Order must have at least one item.")
        if self.total < 0:
            raise ValueError("Order total cannot be negative.")

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is completed or cancelled."""
        return self.status in TERMINAL_STATES

    @property
    def is_delivery(self) -> bool:
        return self.delivery_type == DeliveryType.DELIVERY

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    @property
    def display_number(self) -> str:
        return display_number(self.id)

    def __str__(self) -> str:
        return f"{self.id} ({self.status})"


def compute_total(items: Iterable[OrderLineItem]) -> Decimal:
    """Sum of ``unit_price * quantity`` over ``items``."""
    return sum((item.subtotal for item in items), Decimal("0.00"))


def generate_order_id(now: datetime) -> str:
    """Generate an order id: ``order_YYYYMMDDHHMMSSXXXXXX``."""
    suffix = secrets.token_hex(3).upper()
    return f"{ORDER_ID_PREFIX}{ORDER_ID_DELIMITER}{now:%Y%m%d%H%M%S}{suffix}"


def display_number(order_id: str) -> str:
    """Return the customer-facing part of ``order_id`` (after the first ``_``)."""
    _, _, rest = order_id.partition(ORDER_ID_DELIMITER)
    return rest or order_id
