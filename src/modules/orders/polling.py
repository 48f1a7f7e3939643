"""Polling synchronizer for order tracking views.

There is no push channel from the kitchen to the customer, so a tracking
view keeps its order fresh by re-fetching it on a fixed interval.

- ``OrderPoller``: one daemon thread per tracked order.  The caller has
  already fetched the order once; the thread waits one interval, fetches,
  publishes to the subscriber and repeats.  It stops on ``stop()`` or
  right after publishing a completed/cancelled snapshot.
- ``PollingSynchronizer``: registry of pollers keyed by order id, so a
  view that switches orders (or closes) can drop its poller by id.

A fetch that raises is logged and retried on the next tick; a fetch that
returns ``None`` publishes nothing for that tick.  No lock is held while a
poller sleeps.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Dict, Optional

import structlog
from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)

Subscriber = Callable[["Order"], None]
Fetcher = Callable[[str], Optional["Order"]]


class PollingConfig(BaseModel):
    """Polling parameters; ``interval_ms`` defaults to 30 seconds."""

    model_config = ConfigDict(frozen=True)

    interval_ms: int = 30_000

    @field_validator("interval_ms")
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Polling interval must be positive.")
        return v

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


class OrderPoller:
    """Re-fetches one order on a fixed period and hands it to a subscriber."""

    def __init__(
        self,
        order_id: str,
        fetch: Fetcher,
        subscriber: Subscriber,
        config: Optional[PollingConfig] = None,
        on_stop: Optional[Callable[[OrderPoller], None]] = None,
    ) -> None:
        self.order_id = order_id
        self.config = config or PollingConfig()
        self._fetch = fetch
        self._subscriber = subscriber
        self._on_stop = on_stop
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"OrderPoller-{order_id}", daemon=True
        )
        self._log = logger.bind(order_id=order_id)

    def start(self) -> None:
        self._log.info("order.poll_started", interval_ms=self.config.interval_ms)
        self._thread.start()

    def stop(self, join: bool = False, timeout: Optional[float] = None) -> None:
        """Detach: no publish happens after this returns (except one already
        in progress).  Safe to call more than once and from the subscriber.
        """
        self._stop_event.set()
        if join and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def poll_once(self) -> bool:
        """Run one tick.  Returns ``False`` when polling should end."""
        try:
            order = self._fetch(self.order_id)
        except Exception as exc:
            self._log.warning("order.poll_failed", error=repr(exc))
            return True

        if order is None:
            self._log.info("order.poll_missing")
            return True
        if self._stop_event.is_set():
            return False

        try:
            self._subscriber(order)
        except Exception as exc:
            self._log.warning("order.poll_subscriber_failed", error=repr(exc))

        if order.is_terminal:
            self._log.info("order.poll_terminal", status=str(order.status))
            return False
        return True

    def _run(self) -> None:
        try:
            while not self._stop_event.wait(self.config.interval_seconds):
                if not self.poll_once():
                    break
        finally:
            self._stop_event.set()
            self._log.info("order.poll_stopped")
            if self._on_stop is not None:
                self._on_stop(self)


class PollingSynchronizer:
    """Keeps at most one running ``OrderPoller`` per order id."""

    def __init__(self, service: OrderService, config: Optional[PollingConfig] = None) -> None:
        self._service = service
        self._config = config or PollingConfig()
        self._pollers: Dict[str, OrderPoller] = {}
        self._lock = threading.Lock()

    def track(
        self,
        order_id: str,
        subscriber: Subscriber,
        current: Optional[Order] = None,
    ) -> OrderPoller:
        """Start polling *order_id* and return the poller.

        ``current`` is the snapshot the caller fetched before tracking; when
        it is already terminal the returned poller is never started.  An
        existing poller for the same id is stopped and replaced.
        """
        poller = OrderPoller(
            order_id,
            self._service.get_order,
            subscriber,
            self._config,
            on_stop=self._forget,
        )
        skip = current is not None and current.is_terminal
        with self._lock:
            previous = self._pollers.pop(order_id, None)
            if previous is not None:
                previous.stop()
            if not skip:
                self._pollers[order_id] = poller

        if skip:
            logger.info("order.poll_skipped_terminal", order_id=order_id)
            poller.stop()
            return poller

        poller.start()
        return poller

    def untrack(self, order_id: str) -> bool:
        with self._lock:
            poller = self._pollers.pop(order_id, None)
        if poller is None:
            return False
        poller.stop()
        return True

    def is_tracking(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._pollers

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every poller and wait for the threads to exit."""
        with self._lock:
            pollers = list(self._pollers.values())
            self._pollers.clear()
        for poller in pollers:
            poller.stop(join=True, timeout=timeout)

    def _forget(self, poller: OrderPoller) -> None:
        with self._lock:
            if self._pollers.get(poller.order_id) is poller:
                del self._pollers[poller.order_id]
