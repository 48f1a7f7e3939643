"""Composition root for the Orders module.

``build_orders_app`` builds one store, one event bus, the service and
the polling synchronizer from ``OrderSettings``.  Call it once per
process; tests build their own isolated instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config.settings import OrderSettings, load_settings
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.handlers import (
    order_cancelled_handler,
    order_created_handler,
    order_status_changed_handler,
)
from modules.orders.polling import PollingConfig, PollingSynchronizer
from modules.orders.repositories import InMemoryOrderRepository
from modules.orders.services import OrderService
from modules.orders.state_machine import StatusMachine
from shared.domain.bus import IEventBus
from shared.infrastructure.bus import InMemoryEventBus


def register_order_handlers(bus: IEventBus) -> None:
    bus.subscribe(OrderCreated, order_created_handler)
    bus.subscribe(OrderCancelled, order_cancelled_handler)
    bus.subscribe(OrderStatusChanged, order_status_changed_handler)


@dataclass(frozen=True)
class OrdersApp:
    settings: OrderSettings
    repository: InMemoryOrderRepository
    event_bus: InMemoryEventBus
    service: OrderService
    synchronizer: PollingSynchronizer


def build_orders_app(settings: Optional[OrderSettings] = None) -> OrdersApp:
    settings = settings or load_settings()

    repository = InMemoryOrderRepository(
        lock_timeout=settings.store_lock_timeout_seconds
    )
    event_bus = InMemoryEventBus()
    register_order_handlers(event_bus)

    service = OrderService(
        repository,
        event_bus=event_bus,
        state_machine=StatusMachine(
            pickup_allows_delivering=settings.pickup_allows_delivering
        ),
        total_tolerance=settings.total_tolerance,
        order_id_max_retries=settings.order_id_max_retries,
    )
    synchronizer = PollingSynchronizer(
        service, PollingConfig(interval_ms=settings.poll_interval_ms)
    )
    return OrdersApp(
        settings=settings,
        repository=repository,
        event_bus=event_bus,
        service=service,
        synchronizer=synchronizer,
    )
