"""
Custom Blob Store Example

Demonstrates how to persist the vector index to a custom medium by
implementing the BlobStore protocol (read/write/delete).
"""

import asyncio
from typing import Dict, List, Optional

from item_memory.storage.vector.memory import InMemoryVectorIndex
from item_memory.storage.vector.persistence import IndexPersistence


class VersionedBlobStore:
    """
    Keeps every written version of a blob.

    Implements the BlobStore protocol via duck typing.
    """

    def __init__(self):
        self.versions: Dict[str, List[str]] = {}

    def read(self, key: str) -> Optional[str]:
        history = self.versions.get(key)
        return history[-1] if history else None

    def write(self, key: str, blob: str) -> None:
        self.versions.setdefault(key, []).append(blob)

    def delete(self, key: str) -> bool:
        return self.versions.pop(key, None) is not None


async def main():
    print("=== Custom Blob Store Example ===\n")

    store = VersionedBlobStore()
    persistence = IndexPersistence(store)

    index = InMemoryVectorIndex(dimension=4)
    index.insert("lamp", [0.9, 0.1, 0.0, 0.0], {"item_name": "Desk lamp", "price": "$25"})
    await persistence.save(index)

    index.insert("chair", [0.0, 0.2, 0.9, 0.1], {"item_name": "Chair", "price": "$60"})
    await persistence.save(index)

    restored = await persistence.load(dimension=4)
    print(f"Saved versions: {len(store.versions['item_vectors'])}")
    print(f"Restored items: {[record.id for record in restored.records()]}")

    for result in restored.search([1.0, 0.0, 0.0, 0.0], k=2, min_score=-1.0):
        print(f"  {result.metadata['item_name']}: {result.score:.3f}")


if __name__ == "__main__":
    asyncio.run(main())
