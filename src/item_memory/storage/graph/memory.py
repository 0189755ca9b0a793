"""
In-memory graph replica implementation.

Keeps the last-write-wins registers of every known node in dictionaries,
suitable for testing and for devices that rebuild their replica from peers.
Data is lost on restart.
"""

import logging
from typing import Dict, List, Optional

from item_memory.models import FieldRegister

logger = logging.getLogger(__name__)


class InMemoryNodeStore:
    """In-memory implementation of the NodeStore protocol."""

    def __init__(self):
        self._nodes: Dict[str, Dict[str, FieldRegister]] = {}  # node_id -> field -> register

        logger.info("InMemoryNodeStore initialized")

    def get_register(self, node_id: str, field: str) -> Optional[FieldRegister]:
        register = self._nodes.get(node_id, {}).get(field)
        return register.model_copy(deep=True) if register else None

    def set_register(self, node_id: str, field: str, register: FieldRegister) -> None:
        self._nodes.setdefault(node_id, {})[field] = register.model_copy(deep=True)

    def get_node(self, node_id: str) -> Optional[Dict[str, FieldRegister]]:
        registers = self._nodes.get(node_id)
        if registers is None:
            return None
        return {field: register.model_copy(deep=True) for field, register in registers.items()}

    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def clear(self) -> int:
        count = len(self._nodes)
        self._nodes.clear()
        logger.info(f"Cleared graph replica ({count} nodes)")
        return count
