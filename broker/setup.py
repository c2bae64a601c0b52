"""Connect to RabbitMQ and declare the order exchange, work queue, DLQ and binding."""

from __future__ import annotations

import logging
from typing import NamedTuple

import aio_pika
from aio_pika import ExchangeType
from aio_pika.exceptions import AMQPError, ChannelNotFoundEntity

from broker.config import BINDING_KEY, EXCHANGE, QUEUE_ORDERS, QUEUE_ORDERS_DLQ, RABBIT_URL
from common.errors import BrokerConnectionError, ChannelError, TopologyDeclarationError

logger = logging.getLogger(__name__)

# orders dead-letters through the default exchange straight into orders_dlq
DEAD_LETTER_ARGUMENTS = {
    "x-dead-letter-exchange": "",
    "x-dead-letter-routing-key": QUEUE_ORDERS_DLQ,
}


class Topology(NamedTuple):
    exchange: aio_pika.abc.AbstractExchange
    queue: aio_pika.abc.AbstractQueue
    dead_letter_queue: aio_pika.abc.AbstractQueue


class BrokerSession(NamedTuple):
    channel: aio_pika.abc.AbstractChannel
    connection: aio_pika.abc.AbstractConnection
    topology: Topology


async def queue_exists(connection: aio_pika.abc.AbstractConnection, name: str) -> bool:
    """
    Check for a queue with a passive declare. A failed passive declare closes
    its channel, so the check runs on a throwaway one.
    """
    scratch = await connection.channel()
    try:
        await scratch.declare_queue(name, passive=True)
    except ChannelNotFoundEntity:
        return False
    finally:
        if not scratch.is_closed:
            await scratch.close()
    return True


async def setup_topology(
    connection: aio_pika.abc.AbstractConnection,
    channel: aio_pika.abc.AbstractChannel,
) -> Topology:
    """
    Declare DLQ, work queue, exchange and binding on channel. Safe to call
    repeatedly: an existing work queue is reused as-is and never redeclared,
    so its dead-letter arguments are neither checked nor repaired.
    """
    try:
        dead_letter_queue = await channel.declare_queue(
            QUEUE_ORDERS_DLQ, durable=True, exclusive=False, auto_delete=False
        )
    except AMQPError as e:
        raise TopologyDeclarationError("failed to declare the DLQ", e) from e

    try:
        if await queue_exists(connection, QUEUE_ORDERS):
            # best-effort: the DLQ must at least still be there
            if not await queue_exists(connection, QUEUE_ORDERS_DLQ):
                raise TopologyDeclarationError(f"failed to inspect the DLQ {QUEUE_ORDERS_DLQ!r}")
            queue = await channel.declare_queue(QUEUE_ORDERS, passive=True)
        else:
            queue = await channel.declare_queue(
                QUEUE_ORDERS,
                durable=True,
                exclusive=False,
                auto_delete=False,
                arguments=DEAD_LETTER_ARGUMENTS,
            )
    except AMQPError as e:
        raise TopologyDeclarationError("failed to declare the orders queue", e) from e

    try:
        exchange = await channel.declare_exchange(EXCHANGE, ExchangeType.TOPIC, durable=True)
    except AMQPError as e:
        raise TopologyDeclarationError("failed to declare the exchange", e) from e

    try:
        await queue.bind(exchange, routing_key=BINDING_KEY)
    except AMQPError as e:
        raise TopologyDeclarationError("failed to bind the queue", e) from e

    logger.info("Broker topology declared (%s -> %s, dlq %s)", EXCHANGE, QUEUE_ORDERS, QUEUE_ORDERS_DLQ)
    return Topology(exchange=exchange, queue=queue, dead_letter_queue=dead_letter_queue)


async def connect(url: str = RABBIT_URL, robust: bool = True) -> aio_pika.abc.AbstractConnection:
    """Open a connection, mapping any failure to BrokerConnectionError."""
    try:
        if robust:
            return await aio_pika.connect_robust(url)
        return await aio_pika.connect(url)
    except (AMQPError, OSError) as e:
        raise BrokerConnectionError("failed to connect to RabbitMQ", e) from e


async def open_channel(connection: aio_pika.abc.AbstractConnection) -> aio_pika.abc.AbstractChannel:
    """Open a channel with publisher confirms, so publish() waits for the broker's ack."""
    try:
        return await connection.channel(publisher_confirms=True)
    except AMQPError as e:
        raise ChannelError("failed to open a channel", e) from e


async def setup(url: str = RABBIT_URL, robust: bool = True) -> BrokerSession:
    """
    Connect, open a channel and declare the topology on it. No retry: the
    first failure is raised and the connection (if any) is closed. The caller
    owns the returned connection and must close it.
    """
    connection = await connect(url, robust=robust)
    try:
        channel = await open_channel(connection)
        topology = await setup_topology(connection, channel)
    except BaseException:
        await connection.close()
        raise
    return BrokerSession(channel=channel, connection=connection, topology=topology)
