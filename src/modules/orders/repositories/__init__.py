"""Order repositories package."""

from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.repositories.memory_repository import InMemoryOrderRepository

__all__ = ["IOrderRepository", "InMemoryOrderRepository"]
