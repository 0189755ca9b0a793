"""
Startup wiring.

Builds the explicit service objects once from settings: nothing in
item-memory is a module-level singleton.
"""

import logging
from typing import Optional

from item_memory.config import ItemMemorySettings
from item_memory.embeddings import EmbeddingGenerator
from item_memory.recognition_service import RecognitionService
from item_memory.storage.blobs.file import FileBlobStore
from item_memory.storage.blobs.memory import InMemoryBlobStore
from item_memory.storage.graph.memory import InMemoryNodeStore
from item_memory.storage.protocols import BlobStore, NodeStore, PeerRelay
from item_memory.storage.vector.memory import InMemoryVectorIndex
from item_memory.storage.vector.persistence import IndexPersistence
from item_memory.sync import SyncService

logger = logging.getLogger(__name__)


def build_blob_store(settings: ItemMemorySettings) -> BlobStore:
    if settings.data_dir:
        return FileBlobStore(settings.data_dir)
    return InMemoryBlobStore()


def build_node_store(settings: ItemMemorySettings) -> NodeStore:
    if not settings.database_url:
        return InMemoryNodeStore()

    from sqlalchemy import create_engine

    from item_memory.storage.graph.sqlalchemy import SQLAlchemyNodeStore

    store = SQLAlchemyNodeStore(create_engine(settings.database_url))
    store.create_tables()
    return store


def build_relay(settings: ItemMemorySettings) -> Optional[PeerRelay]:
    if not settings.redis_url:
        return None

    from item_memory.storage.relay.redis import RedisPeerRelay

    return RedisPeerRelay(settings.peer_id, url=settings.redis_url, channel=settings.redis_channel)


def build_embedder(settings: ItemMemorySettings) -> EmbeddingGenerator:
    model = None
    if settings.clip_model:
        from item_memory.embeddings.clip_embedding import ClipEmbedding

        model = ClipEmbedding(model_name=settings.clip_model)

    return EmbeddingGenerator(
        dimension=settings.dimension,
        image_model=model,
        text_model=model,
        timeout=settings.embedding_timeout,
    )


def build_recognition_service(settings: Optional[ItemMemorySettings] = None) -> RecognitionService:
    """
    Wire a RecognitionService from settings.

    Backends are chosen by which settings are present: ``data_dir`` selects
    file persistence, ``database_url`` a SQL graph replica, ``redis_url`` the
    Redis relay and ``clip_model`` the CLIP embedder. Anything unset falls
    back to in-memory, local-only operation.

    Call ``await service.initialize()`` before use (or let the first
    recognition do it).
    """
    settings = settings or ItemMemorySettings()

    sync = SyncService(
        settings.peer_id,
        store=build_node_store(settings),
        relay=build_relay(settings),
        timeout=settings.sync_timeout,
        owner_key=settings.owner_key,
    )

    service = RecognitionService(
        index=InMemoryVectorIndex(dimension=settings.dimension),
        embedder=build_embedder(settings),
        sync=sync,
        persistence=IndexPersistence(build_blob_store(settings), key=settings.blob_key),
        top_k=settings.top_k,
        min_score=settings.min_score,
    )

    logger.info(
        f"Built RecognitionService (peer={settings.peer_id}, dimension={settings.dimension}, "
        f"data_dir={settings.data_dir}, relay={'redis' if settings.redis_url else 'none'})"
    )
    return service
