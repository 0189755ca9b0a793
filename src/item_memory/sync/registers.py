"""
Last-write-wins register merge.

Every field of a replicated node is an independent register ordered by
``(timestamp, peer_id, canonical value)``. That order is total, so merging is
a plain maximum: commutative, associative and idempotent. Replicas that see
the same set of updates converge no matter the delivery order or how many
duplicates arrive.
"""

import json
from typing import Dict, Optional, Tuple

from item_memory.models import FieldRegister, GraphNode

OWNER_FIELD = "owner_key"
DELETED_FIELD = "deleted"
RESERVED_FIELDS = (OWNER_FIELD, DELETED_FIELD)


def canonical_value(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def order_key(register: FieldRegister) -> Tuple[float, str, str]:
    return (register.timestamp, register.peer_id, canonical_value(register.value))


def supersedes(incoming: FieldRegister, current: Optional[FieldRegister]) -> bool:
    """True if ``incoming`` must replace ``current``."""
    if current is None:
        return True
    return order_key(incoming) > order_key(current)


def merge(current: Optional[FieldRegister], incoming: FieldRegister) -> FieldRegister:
    return incoming if supersedes(incoming, current) else current


def materialize(node_id: str, registers: Dict[str, FieldRegister]) -> GraphNode:
    """Build the GraphNode view of a node's registers."""
    fields = {
        field: register.value
        for field, register in sorted(registers.items())
        if field not in RESERVED_FIELDS
    }
    owner = registers.get(OWNER_FIELD)
    deleted = registers.get(DELETED_FIELD)

    return GraphNode(
        id=node_id,
        owner_key=owner.value if owner and isinstance(owner.value, str) else None,
        fields=fields,
        updated_at=max((r.timestamp for r in registers.values()), default=0.0),
        deleted=bool(deleted.value) if deleted else False,
    )
