"""
OrderConsumer: drains the orders queue for the lifetime of the process.

Deliveries go onto an internal asyncio.Queue; a fixed pool of worker tasks
pulls from it and runs the processing hook. By default messages are consumed
with automatic acknowledgment, so the broker settles each one before the hook
runs and a failing hook can never dead-letter it. CONSUMER_MANUAL_ACK switches
to ack-after-success / reject-to-DLQ-on-failure.

The consumer owns its connection and does not reconnect: setup failures and
an unexpected connection loss make run() raise. An instance runs once; build a
new one to consume again.

RabbitMQ ignores basic.qos for no_ack consumers, so in auto-ack mode the
prefetch limit is enforced locally: the inbox holds at most `prefetch`
messages and the delivery callback waits for room.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import aio_pika
from aio_pika.exceptions import AMQPError

from broker.config import (
    CONSUMER_MANUAL_ACK,
    CONSUMER_PREFETCH,
    CONSUMER_WORKERS,
    QUEUE_ORDERS,
    RABBIT_URL,
)
from broker.setup import setup
from common.errors import BrokerConnectionError, ChannelError
from common.logging import setup_logging

logger = logging.getLogger(__name__)

OrderHandler = Callable[[str], Awaitable[None]]


async def process_order(order_id: str) -> None:
    """Default hook. Extend here to persist the order or call another service."""
    logger.info("Processing order: %s", order_id)


class OrderConsumer:
    def __init__(
        self,
        url: str = RABBIT_URL,
        handler: OrderHandler = process_order,
        workers: int = CONSUMER_WORKERS,
        prefetch: int = CONSUMER_PREFETCH,
        manual_ack: bool = CONSUMER_MANUAL_ACK,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.url = url
        self.handler = handler
        self.workers = workers
        self.prefetch = prefetch
        self.manual_ack = manual_ack
        self._inbox: asyncio.Queue[aio_pika.abc.AbstractIncomingMessage] = asyncio.Queue(maxsize=prefetch)
        self._stopping = asyncio.Event()
        self._started = asyncio.Event()
        self._connection_error: BaseException | None = None
        self._ran = False

    @property
    def started(self) -> asyncio.Event:
        """Set once the consumer is registered with the broker."""
        return self._started

    def stop(self) -> None:
        """Ask run() to stop consuming, drain delivered messages and return."""
        self._stopping.set()

    async def run(self) -> None:
        if self._ran:
            raise RuntimeError("OrderConsumer.run() can only be called once")
        self._ran = True
        session = await setup(self.url, robust=False)
        connection = session.connection
        connection.close_callbacks.add(self._on_connection_closed)
        workers: list[asyncio.Task] = []
        try:
            queue = session.topology.queue
            # workers first: a backlog is delivered as soon as consume() registers
            workers = [
                asyncio.create_task(self._work(), name=f"order-worker-{i}") for i in range(self.workers)
            ]
            try:
                await session.channel.set_qos(prefetch_count=self.prefetch)
                consumer_tag = await queue.consume(self._on_message, no_ack=not self.manual_ack)
            except AMQPError as e:
                raise ChannelError("failed to register a consumer", e) from e
            self._started.set()
            logger.info(
                "Consumer started on %s (%s ack, %d workers). Waiting for messages...",
                QUEUE_ORDERS,
                "manual" if self.manual_ack else "auto",
                self.workers,
            )

            await self._stopping.wait()
            lost = self._connection_error
            if lost is not None:
                raise BrokerConnectionError("consumer connection lost", lost) from lost

            await queue.cancel(consumer_tag)
            await self._inbox.join()
            logger.info("Consumer stopped")
        finally:
            self._stopping.set()
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if not connection.is_closed:
                await connection.close()

    def _on_connection_closed(self, sender: object, exc: BaseException | None = None) -> None:
        if self._stopping.is_set():
            return
        logger.error("Consumer connection closed unexpectedly: %s", exc)
        self._connection_error = exc or ConnectionError("connection closed")
        self._stopping.set()

    async def _on_message(self, message: aio_pika.abc.AbstractIncomingMessage) -> None:
        await self._inbox.put(message)

    async def _work(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                await self._dispatch(message)
            finally:
                self._inbox.task_done()

    async def _dispatch(self, message: aio_pika.abc.AbstractIncomingMessage) -> None:
        order_id = message.body.decode("utf-8")
        logger.info("Received a message: %s (routing key %s)", order_id, message.routing_key)
        try:
            if self.manual_ack:
                # rejected without requeue on failure, which dead-letters to orders_dlq
                async with message.process(requeue=False):
                    await self.handler(order_id)
            else:
                await self.handler(order_id)
        except Exception:
            logger.exception("Processing order %s failed", order_id)


async def main() -> None:
    setup_logging("order-consumer")
    await OrderConsumer().run()


if __name__ == "__main__":
    asyncio.run(main())
