"""
Peer Sync Example

Demonstrates last-write-wins replication between two devices connected
through an in-process relay hub, including an offline period.
"""

import asyncio
import logging

from item_memory.storage.relay.memory import InMemoryRelayHub
from item_memory.sync import SyncService

logging.basicConfig(level=logging.WARNING)


async def main():
    print("=== Peer Sync Example ===\n")

    hub = InMemoryRelayHub()
    phone = SyncService("phone", relay=hub.connect("phone"), owner_key="demo-owner")
    laptop = SyncService("laptop", relay=hub.connect("laptop"), owner_key="demo-owner")
    await phone.start()
    await laptop.start()

    # Live feed of items on the laptop
    feed = laptop.subscribe(lambda node: node.fields.get("kind") == "item")

    phone.create_item({"name": "Vintage camera", "price": "$40"}, item_id="item-1")
    await phone.flush()
    print(f"Laptop received: {(await feed.get(timeout=1)).fields['name']}")

    # Phone goes offline and keeps editing locally
    hub.partition("phone")
    phone.update_item("item-1", {"price": "$45"})
    synced = await phone.flush()
    print(f"Phone offline, synced={synced}, backlog={phone.stats().backlog}")
    print(f"Laptop still sees price {laptop.get('item-1').fields['price']}")

    # Back online: the backlog is replayed
    hub.heal("phone")
    await phone.flush()
    print(f"Back online, laptop sees price {(await feed.get(timeout=1)).fields['price']}")

    feed.cancel()
    await phone.stop()
    await laptop.stop()


if __name__ == "__main__":
    asyncio.run(main())
