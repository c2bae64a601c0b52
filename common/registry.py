"""
In-memory order registry shared by the request handlers.

Every operation, reads included, takes the same exclusive lock, so callers
observe a strict serial order of creates, reads, updates and deletes.
Records are copied on the way in and on the way out; nothing outside the
registry holds a reference to a stored Order. State is lost on restart.
"""

from __future__ import annotations

import threading
from typing import Protocol

from common.errors import NotFoundError
from common.models import Order


class OrderStore(Protocol):
    """Keyed order storage used by the order API."""

    def create(self, order: Order) -> Order: ...

    def get(self, order_id: str) -> Order: ...

    def list(self) -> dict[str, Order]: ...

    def update(self, order_id: str, item: str | None = None, price: int | None = None) -> Order: ...

    def delete(self, order_id: str) -> None: ...


class InMemoryOrderRegistry:
    """
    Dict-backed OrderStore guarded by a single threading.Lock.

    >>> registry = InMemoryOrderRegistry()
    >>> _ = registry.create(Order(id="5", item="camel", price=1200, message_type="success"))
    >>> registry.update("5", item="camel v2", price=1500).item
    'camel v2'
    >>> registry.get("5").message_type
    'success'
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def create(self, order: Order) -> Order:
        """Insert or overwrite by id (last write wins)."""
        with self._lock:
            self._orders[order.id] = order.model_copy()
            return order.model_copy()

    def get(self, order_id: str) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise NotFoundError(order_id)
            return order.model_copy()

    def list(self) -> dict[str, Order]:
        """Snapshot of every order, keyed by id."""
        with self._lock:
            return {order_id: order.model_copy() for order_id, order in self._orders.items()}

    def update(self, order_id: str, item: str | None = None, price: int | None = None) -> Order:
        """
        Change item and/or price of an existing order. Fields left as None
        keep their value; id and message_type are never touched.
        """
        changes = {}
        if item is not None:
            changes["item"] = item
        if price is not None:
            changes["price"] = price
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise NotFoundError(order_id)
            updated = current.model_copy(update=changes)
            self._orders[order_id] = updated
            return updated.model_copy()

    def delete(self, order_id: str) -> None:
        with self._lock:
            if order_id not in self._orders:
                raise NotFoundError(order_id)
            del self._orders[order_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._orders
