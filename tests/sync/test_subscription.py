"""Unit tests for coalescing subscriptions."""

import asyncio

import pytest

from item_memory.models import GraphNode
from item_memory.sync.subscription import Subscription


def node(node_id, **fields):
    return GraphNode(id=node_id, fields=fields)


@pytest.mark.asyncio
async def test_delivers_in_arrival_order():
    subscription = Subscription()
    subscription.push(node("a"))
    subscription.push(node("b"))

    assert (await subscription.get(timeout=1)).id == "a"
    assert (await subscription.get(timeout=1)).id == "b"
    assert subscription.delivered == 2


@pytest.mark.asyncio
async def test_pending_updates_coalesce_per_node():
    subscription = Subscription()
    subscription.push(node("a", price="$10"))
    subscription.push(node("a", price="$12"))

    assert subscription.pending == 1
    assert subscription.coalesced == 1
    assert (await subscription.get(timeout=1)).fields["price"] == "$12"


@pytest.mark.asyncio
async def test_predicate_filters():
    subscription = Subscription(lambda n: n.fields.get("kind") == "item")

    assert subscription.push(node("a", kind="item")) is True
    assert subscription.push(node("b", kind="setting")) is False
    assert subscription.pending == 1


@pytest.mark.asyncio
async def test_failing_predicate_skips_node():
    subscription = Subscription(lambda n: n.fields["missing"])

    assert subscription.push(node("a")) is False


@pytest.mark.asyncio
async def test_get_times_out():
    subscription = Subscription()

    with pytest.raises(asyncio.TimeoutError):
        await subscription.get(timeout=0.01)


@pytest.mark.asyncio
async def test_waiting_consumer_is_woken():
    subscription = Subscription()

    async def produce():
        await asyncio.sleep(0.01)
        subscription.push(node("late"))

    producer = asyncio.create_task(produce())
    delivered = await subscription.get(timeout=1)
    await producer

    assert delivered.id == "late"


@pytest.mark.asyncio
async def test_cancel_drains_then_stops():
    cancelled = []
    subscription = Subscription(on_cancel=cancelled.append)
    subscription.push(node("a"))

    subscription.cancel()
    subscription.cancel()

    assert [n.id async for n in subscription] == ["a"]
    assert subscription.push(node("b")) is False
    assert cancelled == [subscription]


@pytest.mark.asyncio
async def test_context_manager_cancels():
    async with Subscription() as subscription:
        assert not subscription.cancelled

    assert subscription.cancelled
