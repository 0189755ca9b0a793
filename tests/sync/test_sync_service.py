"""
Unit tests for SyncService.

Replication is exercised between in-process peers connected through an
InMemoryRelayHub, including partitions and late joiners.
"""

import asyncio
import random

import pytest

from item_memory.errors import SyncUnreachable
from item_memory.models import FieldUpdate
from item_memory.storage.relay.memory import InMemoryRelayHub
from item_memory.sync import SyncService


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def hub():
    return InMemoryRelayHub()


def make_peer(hub, peer_id, **kwargs):
    return SyncService(peer_id, relay=hub.connect(peer_id), **kwargs)


def test_put_and_get_without_relay():
    sync = SyncService("phone", owner_key="owner-1")

    node = sync.put("item-1", {"name": "Camera", "price": "$40"}, owner_key="owner-1")

    assert node.fields == {"name": "Camera", "price": "$40"}
    assert node.owner_key == "owner-1"
    assert sync.get("item-1") == node
    assert sync.get("missing") is None


def test_put_requires_fields():
    with pytest.raises(ValueError):
        SyncService("phone").put("item-1", {})


def test_local_clock_is_monotonic():
    clock = FakeClock()
    sync = SyncService("phone", clock=clock)

    first = sync.put("item-1", {"price": "$10"})
    clock.now -= 50  # wall clock jumps backwards
    second = sync.put("item-1", {"price": "$12"})

    assert second.updated_at > first.updated_at
    assert sync.get("item-1").fields["price"] == "$12"


def test_clock_advances_past_remote_timestamps():
    sync = SyncService("phone", clock=FakeClock(1000.0))
    sync.apply_remote(
        FieldUpdate(node_id="item-1", field="price", value="$99", timestamp=5000.0, origin_peer="laptop")
    )

    node = sync.put("item-1", {"price": "$10"})

    assert node.fields["price"] == "$10"
    assert node.updated_at > 5000.0


def test_apply_remote_ignores_stale_and_duplicates():
    sync = SyncService("phone", clock=FakeClock(1000.0))
    sync.put("item-1", {"price": "$10"})

    stale = FieldUpdate(node_id="item-1", field="price", value="$5", timestamp=10.0, origin_peer="laptop")
    fresh = {"node_id": "item-1", "field": "price", "value": "$15", "timestamp": 2000.0, "origin_peer": "laptop"}

    assert sync.apply_remote([stale]) == 0
    assert sync.apply_remote([fresh, fresh]) == 1
    assert sync.get("item-1").fields["price"] == "$15"

    stats = sync.stats()
    assert stats.updates_received == 3
    assert stats.updates_applied == 1
    assert stats.updates_ignored == 2


def test_replicas_converge_regardless_of_order():
    updates = [
        FieldUpdate(node_id="item-1", field="price", value=f"${i}", timestamp=float(i % 4), origin_peer=f"peer-{i % 3}")
        for i in range(12)
    ] + [
        FieldUpdate(node_id="item-1", field="deleted", value=True, timestamp=2.0, origin_peer="peer-1"),
        FieldUpdate(node_id="item-2", field="name", value="Lamp", timestamp=1.0, origin_peer="peer-0"),
    ]

    states = []
    rng = random.Random(7)
    for _ in range(5):
        shuffled = updates * 2
        rng.shuffle(shuffled)
        replica = SyncService("observer")
        for update in shuffled:
            replica.apply_remote(update)
        states.append([replica.get(n, include_deleted=True) for n in ("item-1", "item-2")])

    assert all(state == states[0] for state in states)


def test_delete_tombstones_node():
    sync = SyncService("phone")
    sync.put("item-1", {"name": "Camera"})

    tombstone = sync.delete("item-1")

    assert tombstone.deleted is True
    assert sync.get("item-1") is None
    assert sync.get("item-1", include_deleted=True).fields == {"name": "Camera"}
    assert sync.nodes() == []
    assert sync.delete("missing") is None


def test_nodes_with_predicate():
    sync = SyncService("phone")
    sync.put("item-1", {"kind": "item"})
    sync.put("setting:theme", {"kind": "setting"})

    assert [n.id for n in sync.nodes(lambda n: n.fields["kind"] == "item")] == ["item-1"]


@pytest.mark.asyncio
async def test_writes_replicate_between_peers(hub):
    phone = make_peer(hub, "phone")
    laptop = make_peer(hub, "laptop")
    await phone.start()
    await laptop.start()

    phone.put("item-1", {"name": "Camera"})
    assert await phone.flush() is True

    assert laptop.get("item-1").fields == {"name": "Camera"}
    assert phone.stats().updates_sent == 1
    assert phone.stats().peers_connected == 1


@pytest.mark.asyncio
async def test_concurrent_writes_converge(hub):
    phone = make_peer(hub, "phone", clock=FakeClock(1000.0))
    laptop = make_peer(hub, "laptop", clock=FakeClock(1000.0))
    await phone.start()
    await laptop.start()

    phone.put("item-1", {"price": "$10"})
    laptop.put("item-1", {"price": "$12"})
    await phone.flush()
    await laptop.flush()

    assert phone.get("item-1") == laptop.get("item-1")
    # Same timestamp: the higher peer id wins
    assert phone.get("item-1").fields["price"] == "$10"


@pytest.mark.asyncio
async def test_partition_backlogs_and_recovers(hub):
    phone = make_peer(hub, "phone")
    laptop = make_peer(hub, "laptop")
    await phone.start()
    await laptop.start()

    hub.partition("phone")
    phone.put("item-1", {"name": "Camera"})
    phone.put("item-1", {"price": "$40"})

    # Local reads keep working while offline
    assert phone.get("item-1").fields == {"name": "Camera", "price": "$40"}
    assert await phone.flush() is False
    assert phone.stats().backlog == 2
    assert phone.stats().propagation_failures == 2
    assert phone.stats().reachable is False
    assert laptop.get("item-1") is None

    hub.heal("phone")
    assert await phone.flush() is True
    assert phone.stats().backlog == 0
    assert laptop.get("item-1").fields == {"name": "Camera", "price": "$40"}


@pytest.mark.asyncio
async def test_publish_timeout_counts_as_failure():
    class SlowRelay:
        async def attach(self, handler):
            pass

        async def publish(self, updates):
            await asyncio.sleep(5)
            return 1

        async def ping(self):
            await asyncio.sleep(5)
            return True

        async def close(self):
            pass

    sync = SyncService("phone", relay=SlowRelay(), timeout=0.05)
    await sync.start()

    sync.put("item-1", {"name": "Camera"})

    assert await sync.flush() is False
    assert sync.stats().propagation_failures == 1
    assert await sync.check_reachability() is False


@pytest.mark.asyncio
async def test_relay_error_keeps_updates_for_retry():
    class BrokenRelay:
        def __init__(self):
            self.broken = True
            self.sent = []

        async def attach(self, handler):
            pass

        async def publish(self, updates):
            if self.broken:
                raise RuntimeError("ERR unknown command")
            self.sent.extend(updates)
            return 1

        async def ping(self):
            if self.broken:
                raise RuntimeError("ERR unknown command")
            return True

        async def close(self):
            pass

    relay = BrokenRelay()
    sync = SyncService("phone", relay=relay)
    await sync.start()

    sync.put("n1", {"name": "Camera"})

    assert await sync.flush() is False
    assert sync.stats().backlog == 1
    assert sync.stats().propagation_failures == 1
    assert await sync.check_reachability() is False

    relay.broken = False
    assert await sync.flush() is True
    assert [(u.node_id, u.field, u.value) for u in relay.sent] == [("n1", "name", "Camera")]
    assert sync.stats().backlog == 0


@pytest.mark.asyncio
async def test_writes_before_event_loop_are_sent_on_start(hub):
    phone = make_peer(hub, "phone")
    laptop = make_peer(hub, "laptop")
    await laptop.start()

    # put() outside a running loop cannot schedule propagation
    await asyncio.get_running_loop().run_in_executor(None, phone.put, "item-1", {"name": "Camera"})

    assert phone.stats().backlog == 1
    await phone.start()
    assert laptop.get("item-1").fields == {"name": "Camera"}


@pytest.mark.asyncio
async def test_late_joiner_catches_up_with_announce(hub):
    phone = make_peer(hub, "phone")
    await phone.start()
    phone.put("item-1", {"name": "Camera"})
    await phone.flush()

    laptop = make_peer(hub, "laptop")
    await laptop.start()
    assert laptop.get("item-1") is None

    assert await phone.announce() is True
    assert laptop.get("item-1").fields == {"name": "Camera"}


@pytest.mark.asyncio
async def test_check_reachability(hub):
    phone = make_peer(hub, "phone")

    assert await phone.check_reachability() is True
    hub.partition("phone")
    assert await phone.check_reachability() is False
    assert await SyncService("solo").check_reachability() is False


@pytest.mark.asyncio
async def test_flush_without_relay():
    sync = SyncService("solo")
    sync.put("item-1", {"name": "Camera"})

    assert await sync.flush() is False
    assert sync.stats().backlog == 0


@pytest.mark.asyncio
async def test_subscription_receives_local_and_remote_changes(hub):
    phone = make_peer(hub, "phone")
    laptop = make_peer(hub, "laptop")
    await phone.start()
    await laptop.start()

    laptop.put("item-0", {"kind": "item", "name": "Lamp"})
    await laptop.flush()

    feed = laptop.subscribe(lambda n: n.fields.get("kind") == "item")
    assert (await feed.get(timeout=1)).id == "item-0"  # existing nodes replayed

    phone.put("item-1", {"kind": "item", "name": "Camera"})
    await phone.flush()
    assert (await feed.get(timeout=1)).id == "item-1"

    laptop.delete("item-0")
    tombstone = await feed.get(timeout=1)
    assert tombstone.id == "item-0" and tombstone.deleted

    feed.cancel()
    with pytest.raises(StopAsyncIteration):
        await feed.get()


@pytest.mark.asyncio
async def test_stop_cancels_subscriptions(hub):
    phone = make_peer(hub, "phone")
    await phone.start()
    feed = phone.subscribe()

    await phone.stop()

    assert feed.cancelled
    with pytest.raises(SyncUnreachable):
        await hub.broadcast("phone", [])


def test_record_helpers():
    sync = SyncService("phone", owner_key="owner-1")

    item = sync.create_item({"name": "Camera", "price": "$40"}, item_id="item-1")
    recognition = sync.store_recognition("item-1", {"confidence": 0.9})
    sync.store_price_data("Camera", {"avg_price": 42.0})
    sync.set_setting("currency", "USD")
    sync.create_item({"name": "Lamp"}, item_id="item-2")
    sync.update_item("item-1", {"price": "$45"})

    assert item.owner_key == "owner-1"
    assert item.fields["kind"] == "item"
    assert recognition.id.startswith("recognition:")
    assert recognition.fields["item_id"] == "item-1"
    assert sync.get_setting("currency") == "USD"
    assert sync.get_setting("missing", "default") == "default"
    assert sorted(n.id for n in sync.owner_items()) == ["item-1", "item-2"]
    assert sync.owner_items("someone-else") == []
    assert sync.get("item-1").fields["price"] == "$45"
    assert [n.id for n in sync.recognitions_for("item-1")] == [recognition.id]


def test_clear_drops_local_replica():
    sync = SyncService("phone")
    sync.put("item-1", {"name": "Camera"})

    assert sync.clear() == 1
    assert sync.get("item-1") is None
