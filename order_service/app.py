"""
OrderService: HTTP API over the order registry. Creating an order registers it
and publishes its id to RabbitMQ; reads, updates and deletes only touch the
registry. The same process runs the orders-queue consumer in the background.
"""

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response

from broker.config import CONSUMER_ENABLED
from broker.consumer import OrderConsumer
from broker.publisher import OrderPublisher
from common import (
    BrokerError,
    InMemoryOrderRegistry,
    NotFoundError,
    Order,
    OrderAccepted,
    OrderStore,
    OrderUpdateRequest,
    PublishError,
    setup_logging,
)

setup_logging("order-service")
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def get_registry(request: Request) -> OrderStore:
    return request.app.state.registry


def get_publisher(request: Request) -> OrderPublisher:
    return request.app.state.publisher


@router.post("")
async def create_order(
    payload: Order,
    registry: OrderStore = Depends(get_registry),
    publisher: OrderPublisher = Depends(get_publisher),
):
    # registered before publishing; a broker failure leaves the order in place
    registry.create(payload)
    try:
        await publisher.publish(payload.id, payload.message_type)
    except PublishError as e:
        logger.error("Error publishing order %s to RabbitMQ: %s", payload.id, e)
        raise HTTPException(status_code=500, detail="Failed to send message to RabbitMQ")
    except BrokerError as e:
        logger.error("Error connecting to RabbitMQ for order %s: %s", payload.id, e)
        raise HTTPException(status_code=500, detail="Failed to connect to RabbitMQ")

    logger.info("Order received and queued: ID=%s, MessageType=%s", payload.id, payload.message_type)
    return OrderAccepted(order_id=payload.id, message_type=payload.message_type).model_dump(by_alias=True)


@router.get("", response_model=dict[str, Order])
def list_orders(registry: OrderStore = Depends(get_registry)):
    return registry.list()


@router.get("/{order_id}", response_model=Order)
def get_order(order_id: str, registry: OrderStore = Depends(get_registry)):
    try:
        return registry.get(order_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.put("/{order_id}", response_model=Order)
def update_order(order_id: str, payload: OrderUpdateRequest, registry: OrderStore = Depends(get_registry)):
    try:
        return registry.update(order_id, item=payload.item, price=payload.price)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: str, registry: OrderStore = Depends(get_registry)):
    try:
        registry.delete(order_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    return Response(status_code=204)


def _exit_on_consumer_failure(task: asyncio.Task) -> None:
    """The consumer has no supervisor: if it dies, take the whole service down."""
    if task.cancelled() or task.exception() is None:
        return
    logger.critical("Order consumer failed, shutting down: %s", task.exception())
    os.kill(os.getpid(), signal.SIGTERM)


def create_app(
    registry: OrderStore | None = None,
    publisher: OrderPublisher | None = None,
    consumer: OrderConsumer | None = None,
) -> FastAPI:
    """
    Composition root. The registry, publisher and consumer are owned here and
    reached by the routes through app.state. A publisher is created on startup
    when none is given; the consumer only runs when one is given.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.publisher is None:
            app.state.publisher = OrderPublisher()
        consumer_task = None
        if app.state.consumer is not None:
            consumer_task = asyncio.create_task(app.state.consumer.run(), name="order-consumer")
            consumer_task.add_done_callback(_exit_on_consumer_failure)
        try:
            yield
        finally:
            if consumer_task is not None:
                app.state.consumer.stop()
                await asyncio.wait([consumer_task])
            await app.state.publisher.close()

    app = FastAPI(title="order-service", lifespan=lifespan)
    app.state.registry = registry if registry is not None else InMemoryOrderRegistry()
    app.state.publisher = publisher
    app.state.consumer = consumer
    app.include_router(router)
    return app


app = create_app(consumer=OrderConsumer() if CONSUMER_ENABLED else None)


def main() -> None:
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    main()
