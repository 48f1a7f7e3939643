"""Progress projection: status -> progress bar, milestones and status copy.

Every presentation surface (order list, tracking view) reads these
functions instead of branching on ``status`` itself.  All functions are
pure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from modules.orders.constants import STATUS_SEQUENCE, DeliveryType, OrderStatus


@dataclass(frozen=True)
class Progress:
    percent: int
    label: str


@dataclass(frozen=True)
class Milestone:
    key: str
    label: str
    reached: bool


PROGRESS_PERCENT: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 25,
    OrderStatus.PREPARING: 50,
    OrderStatus.DELIVERING: 75,
    OrderStatus.COMPLETED: 100,
    OrderStatus.CANCELLED: 0,
}

_STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.PENDING: (
        "Seu pedido foi recebido e está sendo processado. "
        "Em breve iniciaremos a preparação."
    ),
    OrderStatus.PREPARING: "Seu pedido está sendo preparado na cozinha com todo o cuidado.",
    OrderStatus.DELIVERING: (
        "Seu pedido está a caminho! O entregador está se dirigindo ao seu endereço."
    ),
    OrderStatus.CANCELLED: "Este pedido foi cancelado.",
}


def project(status: Union[OrderStatus, str]) -> Progress:
    """Return the progress percentage and phase label for *status*."""
    status = OrderStatus(status)
    return Progress(percent=PROGRESS_PERCENT[status], label=status.label)


def milestones(
    status: Union[OrderStatus, str], delivery_type: Union[DeliveryType, str]
) -> tuple[Milestone, ...]:
    """Return the tracking milestones for an order, in display order.

    The ``delivering`` milestone only exists for delivery orders.  A
    cancelled order has reached ``received`` and nothing else.
    """
    status = OrderStatus(status)
    delivery_type = DeliveryType(delivery_type)
    is_delivery = delivery_type == DeliveryType.DELIVERY

    steps = [
        ("received", "Recebido", OrderStatus.PENDING),
        ("preparing", "Preparando", OrderStatus.PREPARING),
    ]
    if is_delivery:
        steps.append(("delivering", "Em Entrega", OrderStatus.DELIVERING))
    steps.append(("done", "Entregue" if is_delivery else "Pronto", OrderStatus.COMPLETED))

    if status == OrderStatus.CANCELLED:
        position = 0
    else:
        position = STATUS_SEQUENCE.index(status)

    return tuple(
        Milestone(key=key, label=label, reached=position >= STATUS_SEQUENCE.index(at))
        for key, label, at in steps
    )


def status_message(
    status: Union[OrderStatus, str], delivery_type: Union[DeliveryType, str]
) -> str:
    """Return the sentence the tracking view shows under "Status Atual"."""
    status = OrderStatus(status)
    if status == OrderStatus.COMPLETED:
        if DeliveryType(delivery_type) == DeliveryType.DELIVERY:
            return "Seu pedido foi entregue. Bom apetite!"
        return "Seu pedido foi finalizado e está pronto para retirada. Bom apetite!"
    return _STATUS_MESSAGES[status]
