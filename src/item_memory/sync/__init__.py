"""
Peer-to-peer replication of the item graph.

- SyncService: local-first node store with per-field last-write-wins merge
- Subscription: live, coalescing feed of node changes
- registers: the LWW ordering and node materialization
"""

from item_memory.sync.registers import materialize, merge, supersedes
from item_memory.sync.service import SyncService
from item_memory.sync.subscription import Subscription

__all__ = [
    "SyncService",
    "Subscription",
    "supersedes",
    "merge",
    "materialize",
]
