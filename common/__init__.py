"""
Shared pieces of the order relay: models, errors, the order registry and logging.

Framework-agnostic; no FastAPI or aio_pika dependency. Uses Pydantic v2 for schemas.
"""

from common.errors import (
    BrokerConnectionError,
    BrokerError,
    ChannelError,
    NotFoundError,
    OrderServiceError,
    PublishError,
    TopologyDeclarationError,
)
from common.logging import setup_logging
from common.models import Order, OrderAccepted, OrderUpdateRequest
from common.registry import InMemoryOrderRegistry, OrderStore

__all__ = [
    "setup_logging",
    "Order",
    "OrderAccepted",
    "OrderUpdateRequest",
    "OrderStore",
    "InMemoryOrderRegistry",
    "OrderServiceError",
    "NotFoundError",
    "BrokerError",
    "BrokerConnectionError",
    "ChannelError",
    "TopologyDeclarationError",
    "PublishError",
]
