"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between callers (checkout page, operations
system, tracking view) and the Service layer.  DTOs are immutable
(``frozen=True``).

- ``CreateOrderItemDTO``: input for a single cart line.
- ``DeliveryInfoDTO``: input for delivery/contact details.
- ``CreateOrderDTO``: input for order creation (nested items).
- ``StatusUpdateDTO``: optional extras for an operations transition.
- ``OrderOutputDTO``: output with items, history and projected progress.

Shape rules (quantity, price, time format, enum values) are enforced
here.  Business rules (empty cart, total mismatch, missing address) are
enforced by ``OrderService`` so they surface as domain exceptions.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import (
    ASAP_DELIVERY_TIME,
    GUEST_USER_ID,
    DeliveryType,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.policies import can_cancel
from modules.orders.projection import milestones, project, status_message

if TYPE_CHECKING:
    from modules.orders.models import Order, StatusChange

_CLOCK_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single cart line in a creation request.

    ``unit_price`` is the menu price the cart showed; the service snapshots
    it into the order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    unit_price: Decimal
    quantity: int
    observations: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_not_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price cannot be negative.")
        return v


class DeliveryInfoDTO(BaseModel):
    """Immutable DTO for contact and delivery details.

    ``time`` is ``HH:MM`` or ``"assim-que-possivel"``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    time: str
    address: Optional[str] = None
    complement: Optional[str] = None

    @field_validator("time")
    @classmethod
    def time_must_be_clock_or_asap(cls, v: str) -> str:
        if v != ASAP_DELIVERY_TIME and not _CLOCK_TIME.match(v):
            raise ValueError(
                f"Time must be HH:MM or '{ASAP_DELIVERY_TIME}'."
            )
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests."""

    model_config = ConfigDict(frozen=True)

    user_id: str = GUEST_USER_ID
    items: List[CreateOrderItemDTO]
    total: Decimal
    delivery_type: DeliveryType
    delivery_info: DeliveryInfoDTO
    payment_method: PaymentMethod
    idempotency_key: Optional[str] = None


class StatusUpdateDTO(BaseModel):
    """Extras an operations system may send along with a status change."""

    model_config = ConfigDict(frozen=True)

    notes: str = ""
    estimated_delivery: Optional[datetime] = None
    current_location: Optional[str] = None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemOutputDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    unit_price: Decimal
    quantity: int
    observations: Optional[str]
    subtotal: Decimal


class StatusHistoryDTO(BaseModel):
    """Immutable DTO for one status history record."""

    model_config = ConfigDict(frozen=True)

    old_status: Optional[OrderStatus]
    new_status: OrderStatus
    notes: str
    created_at: datetime

    @classmethod
    def from_entity(cls, change: StatusChange) -> StatusHistoryDTO:
        return cls(
            old_status=change.old_status,
            new_status=change.new_status,
            notes=change.notes,
            created_at=change.created_at,
        )


class MilestoneDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    reached: bool


class OrderOutputDTO(BaseModel):
    """Immutable DTO a tracking or order-list view renders.

    Carries the raw order fields plus everything derived from ``status``:
    progress, phase label, milestones, status copy and whether the
    cancel button is offered.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_number: str
    user_id: str
    status: OrderStatus
    delivery_type: DeliveryType
    payment_method: PaymentMethod
    total: Decimal
    address: Optional[str]
    delivery_time: str
    created_at: datetime
    estimated_delivery: Optional[datetime]
    current_location: Optional[str]
    progress: int
    phase_label: str
    status_message: str
    can_cancel: bool
    milestones: List[MilestoneDTO]
    items: List[OrderItemOutputDTO]
    history: List[StatusHistoryDTO]

    @classmethod
    def from_entity(cls, order: Order) -> OrderOutputDTO:
        """Build an output DTO from an ``Order`` snapshot.

        The address is dropped for pickup orders and the current location
        is only shown while the order is on its way.
        """
        progress = project(order.status)
        return cls(
            id=order.id,
            display_number=order.display_number,
            user_id=order.user_id,
            status=order.status,
            delivery_type=order.delivery_type,
            payment_method=order.payment_method,
            total=order.total,
            address=order.delivery_info.address if order.is_delivery else None,
            delivery_time=order.delivery_info.time,
            created_at=order.created_at,
            estimated_delivery=order.estimated_delivery,
            current_location=(
                order.current_location
                if order.status == OrderStatus.DELIVERING
                else None
            ),
            progress=progress.percent,
            phase_label=progress.label,
            status_message=status_message(order.status, order.delivery_type),
            can_cancel=can_cancel(order.status),
            milestones=[
                MilestoneDTO(key=m.key, label=m.label, reached=m.reached)
                for m in milestones(order.status, order.delivery_type)
            ],
            items=[
                OrderItemOutputDTO(
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    observations=item.observations,
                    subtotal=item.subtotal,
                )
                for item in order.items
            ],
            history=[StatusHistoryDTO.from_entity(h) for h in order.history],
        )
