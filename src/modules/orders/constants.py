"""Order domain constants.

Defines status, delivery and payment choices, and the valid status
transitions for the order state machine.
"""

from __future__ import annotations

from enum import Enum


class _Choices(str, Enum):
    """String-valued choices whose members carry a display ``label``."""

    def __new__(cls, value: str, label: str):
        member = str.__new__(cls, value)
        member._value_ = value
        member.label = label
        return member

    def __str__(self) -> str:
        return self.value


class OrderStatus(_Choices):
    PENDING = "pending", "Pendente"
    PREPARING = "preparing", "Preparando"
    DELIVERING = "delivering", "Em entrega"
    COMPLETED = "completed", "Concluído"
    CANCELLED = "cancelled", "Cancelado"


class DeliveryType(_Choices):
    DELIVERY = "delivery", "Entrega"
    PICKUP = "pickup", "Retirada"


class PaymentMethod(_Choices):
    CASH = "cash", "Dinheiro"
    CARD = "card", "Cartão"
    PIX = "pix", "PIX"


# Base table.  ``preparing`` fans out per delivery type; see
# ``modules.orders.state_machine.StatusMachine.allowed_transitions``.
VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset(
        {OrderStatus.DELIVERING, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERING: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

CANCELLABLE_STATES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.PREPARING}
)

# Linear happy path, used to decide which milestones a status has reached.
STATUS_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.DELIVERING,
    OrderStatus.COMPLETED,
)

GUEST_USER_ID = "guest"

ASAP_DELIVERY_TIME = "assim-que-possivel"

ORDER_ID_PREFIX = "order"
ORDER_ID_DELIMITER = "_"

ORDER_ID_MAX_RETRIES = 5
