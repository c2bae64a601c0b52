"""
Topology setup tests against the in-memory broker.
"""

import pytest
from aio_pika.exceptions import AMQPConnectionError, ChannelPreconditionFailed

from broker.config import BINDING_KEY, EXCHANGE, QUEUE_ORDERS, QUEUE_ORDERS_DLQ
from broker.setup import DEAD_LETTER_ARGUMENTS, queue_exists, setup
from common.errors import BrokerConnectionError, ChannelError, TopologyDeclarationError
from tests.fakes import FAKE_URL


@pytest.mark.asyncio
async def test_setup_declares_exchange_queue_dlq_and_binding(fake_broker):
    session = await setup(FAKE_URL)

    assert set(fake_broker.exchanges) == {EXCHANGE}
    assert fake_broker.exchanges[EXCHANGE].durable is True

    orders = fake_broker.queues[QUEUE_ORDERS]
    assert orders.durable is True
    assert orders.exclusive is False
    assert orders.auto_delete is False
    assert orders.arguments == DEAD_LETTER_ARGUMENTS
    assert orders.bindings == {(EXCHANGE, BINDING_KEY)}

    dlq = fake_broker.queues[QUEUE_ORDERS_DLQ]
    assert dlq.durable is True
    assert dlq.arguments in (None, {})

    assert session.topology.queue is orders
    assert session.topology.dead_letter_queue is dlq
    assert session.connection.robust is True


@pytest.mark.asyncio
async def test_setup_declares_dlq_before_work_queue(fake_broker):
    await setup(FAKE_URL)

    active = [name for kind, name, passive in fake_broker.declarations if kind == "queue" and not passive]
    assert active == [QUEUE_ORDERS_DLQ, QUEUE_ORDERS]


@pytest.mark.asyncio
async def test_setup_twice_is_idempotent(fake_broker):
    first = await setup(FAKE_URL)
    second = await setup(FAKE_URL)

    assert set(fake_broker.exchanges) == {EXCHANGE}
    assert set(fake_broker.queues) == {QUEUE_ORDERS, QUEUE_ORDERS_DLQ}
    assert fake_broker.queues[QUEUE_ORDERS].arguments == DEAD_LETTER_ARGUMENTS
    assert fake_broker.queues[QUEUE_ORDERS].bindings == {(EXCHANGE, BINDING_KEY)}
    assert first.topology.queue is second.topology.queue
    assert not second.channel.is_closed


@pytest.mark.asyncio
async def test_existing_work_queue_is_reused_without_redeclaring(fake_broker):
    # an orders queue declared elsewhere without dead-letter arguments
    connection = await fake_broker.connect(FAKE_URL)
    channel = await connection.channel()
    await channel.declare_queue(QUEUE_ORDERS, durable=True)

    session = await setup(FAKE_URL)

    orders = fake_broker.queues[QUEUE_ORDERS]
    assert orders.arguments is None
    assert session.topology.queue is orders
    assert (EXCHANGE, BINDING_KEY) in orders.bindings
    assert ("queue", QUEUE_ORDERS, False) not in fake_broker.declarations[1:]


@pytest.mark.asyncio
async def test_queue_exists_uses_a_throwaway_channel(fake_broker):
    connection = await fake_broker.connect(FAKE_URL)

    assert await queue_exists(connection, "nope") is False
    assert connection.channels[-1].is_closed

    await (await connection.channel()).declare_queue("present", durable=True)
    assert await queue_exists(connection, "present") is True


@pytest.mark.asyncio
async def test_unreachable_broker_raises_connection_error(fake_broker):
    fake_broker.refuse_connections = True

    with pytest.raises(BrokerConnectionError) as exc_info:
        await setup(FAKE_URL)

    assert isinstance(exc_info.value.cause, ConnectionRefusedError)
    assert exc_info.value.__cause__ is exc_info.value.cause


@pytest.mark.asyncio
async def test_channel_failure_raises_channel_error_and_closes_connection(fake_broker):
    fake_broker.fail_on.add("channel")

    with pytest.raises(ChannelError) as exc_info:
        await setup(FAKE_URL)

    assert isinstance(exc_info.value.cause, AMQPConnectionError)
    assert fake_broker.connections[0].is_closed


@pytest.mark.parametrize(
    "operation",
    [f"declare_queue:{QUEUE_ORDERS_DLQ}", f"declare_queue:{QUEUE_ORDERS}", "declare_exchange", "bind"],
)
@pytest.mark.asyncio
async def test_declaration_failures_raise_topology_error(fake_broker, operation):
    fake_broker.fail_on.add(operation)

    with pytest.raises(TopologyDeclarationError) as exc_info:
        await setup(FAKE_URL)

    assert isinstance(exc_info.value.cause, ChannelPreconditionFailed)
    assert fake_broker.connections[0].is_closed


@pytest.mark.asyncio
async def test_session_channel_has_publisher_confirms(fake_broker):
    session = await setup(FAKE_URL)

    assert session.channel.open_kwargs == {"publisher_confirms": True}
