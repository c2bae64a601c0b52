"""RabbitMQ topology, publisher and consumer for the order relay."""

from broker.config import (
    BINDING_KEY,
    EXCHANGE,
    QUEUE_ORDERS,
    QUEUE_ORDERS_DLQ,
)
from broker.consumer import OrderConsumer, process_order
from broker.publisher import OrderPublisher, publish_message, routing_key_for
from broker.setup import BrokerSession, Topology, setup, setup_topology

__all__ = [
    "BINDING_KEY",
    "EXCHANGE",
    "QUEUE_ORDERS",
    "QUEUE_ORDERS_DLQ",
    "BrokerSession",
    "OrderConsumer",
    "OrderPublisher",
    "Topology",
    "process_order",
    "publish_message",
    "routing_key_for",
    "setup",
    "setup_topology",
]
