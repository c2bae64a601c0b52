"""
Publish order messages to the order_topic exchange.

OrderPublisher keeps a small pool of robust connections and a pool of
channels on top of them; every channel gets the topology declared when it is
opened. publish() borrows a channel and waits for the broker's publisher
confirm, so a returned call means the broker took the message.
"""

from __future__ import annotations

import logging

import aio_pika
from aio_pika import ExchangeType
from aio_pika.exceptions import AMQPError
from aio_pika.pool import Pool

from broker.config import (
    CHANNEL_POOL_SIZE,
    CONNECTION_POOL_SIZE,
    CONTENT_TYPE,
    EXCHANGE,
    RABBIT_URL,
    ROUTING_KEY_PREFIX,
)
from broker.setup import connect, open_channel, setup_topology
from common.errors import PublishError

logger = logging.getLogger(__name__)


def routing_key_for(message_type: str) -> str:
    """
    >>> routing_key_for("success")
    'order.success'
    >>> routing_key_for("created.eu")
    'order.created.eu'
    """
    return ROUTING_KEY_PREFIX + message_type


async def publish_message(channel: aio_pika.abc.AbstractChannel, body: str, message_type: str) -> None:
    """Send body to the exchange under order.<message_type>. Raises PublishError."""
    routing_key = routing_key_for(message_type)
    try:
        if channel.is_closed:
            await channel.reopen()
        exchange = await channel.declare_exchange(EXCHANGE, ExchangeType.TOPIC, durable=True)
        await exchange.publish(
            aio_pika.Message(body=body.encode("utf-8"), content_type=CONTENT_TYPE),
            routing_key=routing_key,
            mandatory=False,
        )
    except (AMQPError, OSError) as e:
        raise PublishError("failed to publish a message", e) from e
    logger.info("Message sent: %s with routing key: %s", body, routing_key)


class OrderPublisher:
    """Long-lived connection manager that publishes through pooled channels."""

    def __init__(
        self,
        url: str = RABBIT_URL,
        connection_pool_size: int = CONNECTION_POOL_SIZE,
        channel_pool_size: int = CHANNEL_POOL_SIZE,
    ) -> None:
        self.url = url
        self._connections: Pool = Pool(self._new_connection, max_size=connection_pool_size)
        self._channels: Pool = Pool(self._new_channel, max_size=channel_pool_size)

    async def _new_connection(self) -> aio_pika.abc.AbstractConnection:
        return await connect(self.url, robust=True)

    async def _new_channel(self) -> aio_pika.abc.AbstractChannel:
        async with self._connections.acquire() as connection:
            channel = await open_channel(connection)
            try:
                await setup_topology(connection, channel)
            except BaseException:
                if not channel.is_closed:
                    await channel.close()
                raise
            return channel

    async def publish(self, body: str, message_type: str) -> None:
        """
        Borrow a channel and publish. Raises BrokerConnectionError, ChannelError
        or TopologyDeclarationError when no channel can be set up, PublishError
        when the send itself fails.
        """
        async with self._channels.acquire() as channel:
            await publish_message(channel, body, message_type)

    async def close(self) -> None:
        await self._channels.close()
        await self._connections.close()
