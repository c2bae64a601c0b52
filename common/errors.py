"""
Error taxonomy for the order relay.

Registry misses raise NotFoundError. Every broker failure raises a BrokerError
subclass naming the stage that failed; the underlying aio_pika/OS error is
chained as __cause__ and also kept on .cause. Malformed input is rejected by
pydantic (ValidationError) before it reaches any of this.
"""

from __future__ import annotations


class OrderServiceError(Exception):
    """Base class for errors raised by the order relay."""


class NotFoundError(OrderServiceError):
    """No order is registered under the given id."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"order {order_id!r} not found")
        self.order_id = order_id


class BrokerError(OrderServiceError):
    """A RabbitMQ operation failed."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause


class BrokerConnectionError(BrokerError):
    """The connection to RabbitMQ could not be established."""


class ChannelError(BrokerError):
    """A channel could not be opened on an established connection."""


class TopologyDeclarationError(BrokerError):
    """Declaring a queue, the exchange, or the binding failed."""


class PublishError(BrokerError):
    """A message could not be sent after the topology was in place."""
