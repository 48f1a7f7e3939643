from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from config.settings import configure_logging
from modules.orders.constants import DeliveryType, OrderStatus, PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, DeliveryInfoDTO
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.models import DeliveryInfo, Order, OrderLineItem
from modules.orders.repositories import InMemoryOrderRepository
from modules.orders.services import OrderService
from shared.infrastructure.bus import InMemoryEventBus

configure_logging(level="DEBUG")

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Returns a strictly increasing time, one second per call."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        value = self.now
        self.now += timedelta(seconds=1)
        return value


class CapturingHandler:
    def __init__(self) -> None:
        self.events = []

    def handle(self, event) -> None:
        self.events.append(event)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def repository():
    return InMemoryOrderRepository(lock_timeout=1.0)


@pytest.fixture()
def event_bus():
    return InMemoryEventBus()


@pytest.fixture()
def captured_events(event_bus):
    """List of every order event published on ``event_bus``."""
    handler = CapturingHandler()
    for event_class in (OrderCreated, OrderCancelled, OrderStatusChanged):
        event_bus.subscribe(event_class, handler)
    return handler.events


@pytest.fixture()
def service(repository, event_bus, clock):
    return OrderService(repository, event_bus=event_bus, clock=clock)


@pytest.fixture()
def make_dto():
    """Factory for checkout submissions: 2x Burger @ 10.00, pickup."""

    def _make(**overrides) -> CreateOrderDTO:
        data = {
            "user_id": "user-1",
            "items": [
                CreateOrderItemDTO(name="Burger", unit_price=Decimal("10.00"), quantity=2)
            ],
            "total": Decimal("20.00"),
            "delivery_type": DeliveryType.PICKUP,
            "delivery_info": DeliveryInfoDTO(
                name="Ana", phone="(11) 98765-4321", time="assim-que-possivel"
            ),
            "payment_method": PaymentMethod.CASH,
        }
        if overrides.get("delivery_type") == DeliveryType.DELIVERY and "delivery_info" not in overrides:
            data["delivery_info"] = DeliveryInfoDTO(
                name="Ana",
                phone="(11) 98765-4321",
                time="19:30",
                address="Rua das Flores, 123",
                complement="Apto 4",
            )
        data.update(overrides)
        return CreateOrderDTO(**data)

    return _make


@pytest.fixture()
def make_order():
    """Factory for ``Order`` snapshots in any status, bypassing the service."""

    def _make(
        status: OrderStatus = OrderStatus.PENDING,
        delivery_type: DeliveryType = DeliveryType.DELIVERY,
        **overrides,
    ) -> Order:
        data = {
            "id": "order_20261019120000ABCDEF",
            "user_id": "user-1",
            "items": (OrderLineItem(name="Burger", unit_price=Decimal("10.00"), quantity=2),),
            "total": Decimal("20.00"),
            "delivery_type": delivery_type,
            "delivery_info": DeliveryInfo(
                name="Ana",
                phone="(11) 98765-4321",
                time="19:30",
                address="Rua das Flores, 123" if delivery_type == DeliveryType.DELIVERY else None,
            ),
            "payment_method": PaymentMethod.PIX,
            "created_at": FIXED_NOW,
            "status": status,
        }
        data.update(overrides)
        return Order(**data)

    return _make


@pytest.fixture()
def pending_delivery_order(service, make_dto):
    """Id of a delivery order in PENDING status."""
    return service.create_order(make_dto(delivery_type=DeliveryType.DELIVERY))


@pytest.fixture()
def pending_pickup_order(service, make_dto):
    """Id of a pickup order in PENDING status."""
    return service.create_order(make_dto())
