"""
Storage protocols and backends for item-memory.

Provides protocol definitions for the vector index, the durable blob store
holding its snapshot, the local graph replica and the peer relay. Backends
can be in-memory, file, SQL or Redis based as long as they satisfy the
protocol interface.
"""

from item_memory.storage.protocols import BlobStore, NodeStore, PeerRelay, VectorIndex

__all__ = [
    "VectorIndex",
    "BlobStore",
    "NodeStore",
    "PeerRelay",
]

# Vector index and persistence
try:
    from item_memory.storage.vector.memory import InMemoryVectorIndex  # noqa: F401
    from item_memory.storage.vector.persistence import IndexPersistence  # noqa: F401

    __all__.extend(["InMemoryVectorIndex", "IndexPersistence"])
except ImportError:
    pass

# Blob stores
try:
    from item_memory.storage.blobs.file import FileBlobStore  # noqa: F401
    from item_memory.storage.blobs.memory import InMemoryBlobStore  # noqa: F401

    __all__.extend(["InMemoryBlobStore", "FileBlobStore"])
except ImportError:
    pass

try:
    from item_memory.storage.blobs.redis import RedisBlobStore  # noqa: F401

    __all__.append("RedisBlobStore")
except ImportError:
    pass

# Graph replica stores
try:
    from item_memory.storage.graph.memory import InMemoryNodeStore  # noqa: F401

    __all__.append("InMemoryNodeStore")
except ImportError:
    pass

try:
    from item_memory.storage.graph.sqlalchemy import SQLAlchemyNodeStore  # noqa: F401

    __all__.append("SQLAlchemyNodeStore")
except ImportError:
    pass

# Peer relays
try:
    from item_memory.storage.relay.memory import InMemoryPeerRelay, InMemoryRelayHub  # noqa: F401

    __all__.extend(["InMemoryRelayHub", "InMemoryPeerRelay"])
except ImportError:
    pass

try:
    from item_memory.storage.relay.redis import RedisPeerRelay  # noqa: F401

    __all__.append("RedisPeerRelay")
except ImportError:
    pass
