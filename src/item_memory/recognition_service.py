import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from item_memory.embeddings import EmbeddingGenerator, EmbeddingOutcome
from item_memory.errors import DimensionMismatch, PersistenceWriteFailed
from item_memory.models import (
    PipelineStats,
    PriceInsight,
    RecognitionPayload,
    RecognitionResult,
    SimilarityResult,
)
from item_memory.pricing import PriceInsightAggregator, suggest_marketplace_category
from item_memory.storage.protocols import VectorIndex
from item_memory.storage.vector.persistence import IndexPersistence
from item_memory.sync import SyncService

logger = logging.getLogger(__name__)

RECOGNITION_SOURCE = "ai_recognition"


class RecognitionService:
    """
    Turns AI recognition results into indexed, replicated and priced items.

    One call to ``process_recognition_result`` embeds the photo, stores the
    vector (and persists the index) while writing the item to the sync
    graph, then looks up similar items and derives a price insight. Only
    DimensionMismatch propagates; every other failure degrades the result.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingGenerator,
        sync: SyncService,
        persistence: Optional[IndexPersistence] = None,
        aggregator: Optional[PriceInsightAggregator] = None,
        top_k: int = 5,
        min_score: float = 0.6,
    ):
        if embedder.dimension != index.dimension:
            raise DimensionMismatch(index.dimension, embedder.dimension)

        self.index = index
        self.embedder = embedder
        self.sync = sync
        self.persistence = persistence
        self.aggregator = aggregator or PriceInsightAggregator()
        self.top_k = top_k
        self.min_score = min_score

        self.items_synced = 0
        self.vectors_stored = 0
        self._initialized = False

    async def initialize(self) -> None:
        """Restore the saved index and start replication."""
        if self._initialized:
            return

        if self.persistence is not None:
            try:
                restored = await self.persistence.load(self.index.dimension)
            except DimensionMismatch:
                raise
            except ValueError as e:
                logger.error(f"Saved index is unreadable, starting empty: {e}")
                restored = None

            if restored is not None:
                for record in restored.records():
                    self.index.insert(
                        record.id,
                        record.vector,
                        metadata=record.metadata,
                        method=record.method,
                        created_at=record.created_at,
                    )
                logger.info(f"Restored {len(restored)} vectors from saved index")

        await self.sync.start()
        self._initialized = True
        logger.info(
            f"RecognitionService initialized (vectors={len(self.index)}, "
            f"peer={self.sync.peer_id})"
        )

    async def process_recognition_result(
        self,
        payload: Union[RecognitionPayload, Dict[str, Any]],
        item_id: Optional[str] = None,
    ) -> RecognitionResult:
        """
        Run the full pipeline for one recognition result.

        Args:
            payload: Recognition result (model or camelCase/snake_case dict)
            item_id: Id to store the item under (default: payload id or a new id)

        Returns:
            RecognitionResult with neighbors, price insight and pipeline stats
        """
        if not isinstance(payload, RecognitionPayload):
            payload = RecognitionPayload.model_validate(payload)

        if not self._initialized:
            await self.initialize()

        item_id = item_id or payload.id or uuid.uuid4().hex
        warnings: List[str] = []

        outcome = await self._embed(payload)
        warnings.extend(outcome.warnings)

        persisted, synced = await asyncio.gather(
            self._store_vector(item_id, payload, outcome, warnings),
            self._sync_item(item_id, payload, warnings),
        )

        neighbors, price_insight = self._lookup(item_id, payload, outcome, warnings)
        category_hint = suggest_marketplace_category(payload.category, payload.item_name)

        result = RecognitionResult(
            item_id=item_id,
            neighbors=neighbors,
            price_insight=price_insight,
            sync_stats=self.get_sync_stats(),
            category_hint=category_hint,
            embedding_method=outcome.method,
            has_signal=outcome.has_signal,
            persisted=persisted,
            synced=synced,
            warnings=warnings,
        )

        logger.info(
            f"Recognition processed: item_id={item_id}, "
            f"method={outcome.method}, "
            f"neighbors={len(neighbors)}, "
            f"persisted={persisted}, synced={synced}"
        )
        return result

    async def _embed(self, payload: RecognitionPayload) -> EmbeddingOutcome:
        if payload.image_data:
            return await self.embedder.embed_image(payload.image_data)

        # No photo: describe the item in words instead
        text = " ".join(part for part in (payload.item_name, payload.category, payload.description) if part)
        logger.debug("Recognition has no image data, embedding its description")
        return await self.embedder.generate(text)

    async def _store_vector(
        self,
        item_id: str,
        payload: RecognitionPayload,
        outcome: EmbeddingOutcome,
        warnings: List[str],
    ) -> bool:
        self.index.insert(
            item_id,
            outcome.vector,
            metadata={
                "item_name": payload.item_name,
                "category": payload.category,
                "condition": payload.condition,
                "price": payload.suggested_price,
                "confidence": payload.confidence,
                "source": RECOGNITION_SOURCE,
                "timestamp": time.time(),
            },
            method=outcome.method,
        )
        self.vectors_stored += 1

        if self.persistence is None:
            return False

        try:
            await self.persistence.save(self.index)
        except PersistenceWriteFailed as e:
            message = f"Index not persisted, in-memory index stays authoritative: {e}"
            warnings.append(message)
            logger.warning(message)
            return False
        return True

    async def _sync_item(self, item_id: str, payload: RecognitionPayload, warnings: List[str]) -> bool:
        try:
            self.sync.create_item(
                {
                    "name": payload.item_name,
                    "category": payload.category,
                    "condition": payload.condition,
                    "price": payload.suggested_price,
                    "description": payload.description,
                    "confidence": payload.confidence,
                    "status": "recognized",
                    "source": RECOGNITION_SOURCE,
                },
                item_id=item_id,
            )
            self.sync.store_recognition(
                item_id,
                {
                    "ai_response": payload.raw_response,
                    "confidence": payload.confidence,
                    "image_data": payload.image_data,
                    "model": payload.model,
                },
            )
            self.items_synced += 1
        except Exception as e:
            message = f"Graph write failed, item is only in the local index: {e}"
            warnings.append(message)
            logger.warning(message)
            return False

        if not self.sync.has_relay:
            return False

        synced = await self.sync.flush()
        if not synced:
            warnings.append("Peers unreachable, item will sync when they come back")
        return synced

    def _lookup(
        self,
        item_id: str,
        payload: RecognitionPayload,
        outcome: EmbeddingOutcome,
        warnings: List[str],
    ) -> Tuple[List[SimilarityResult], PriceInsight]:
        if not outcome.has_signal:
            warnings.append("Embedding carries no signal, similarity/pricing unavailable")
            return [], PriceInsight.unavailable()

        try:
            neighbors = self.index.search(
                outcome.vector,
                k=self.top_k,
                min_score=self.min_score,
                method=outcome.method,
                exclude=[item_id],
            )
            return neighbors, self.aggregator.aggregate(neighbors, payload.category)
        except DimensionMismatch:
            raise
        except Exception as e:
            message = f"Similarity lookup failed: {e}"
            warnings.append(message)
            logger.warning(message)
            return [], PriceInsight.unavailable()

    async def find_similar_items(
        self, image_data: Any, limit: int = 5, min_score: Optional[float] = None
    ) -> List[SimilarityResult]:
        """Items whose photos look like ``image_data``. Empty when the photo carries no signal."""
        outcome = await self.embedder.embed_image(image_data)
        if not outcome.has_signal:
            return []

        return self.index.search(
            outcome.vector,
            k=limit,
            min_score=self.min_score if min_score is None else min_score,
            method=outcome.method,
        )

    async def delete_item(self, item_id: str) -> bool:
        """
        Delete an item everywhere: index record, item node and its recognitions.

        Raises:
            PersistenceWriteFailed: If the shrunken index could not be saved
        """
        removed = self.index.remove(item_id)
        tombstoned = self.sync.delete(item_id) is not None

        for recognition in self.sync.recognitions_for(item_id):
            self.sync.delete(recognition.id)

        if removed and self.persistence is not None:
            await self.persistence.save(self.index)

        logger.info(f"Deleted item {item_id} (vector={removed}, node={tombstoned})")
        return removed or tombstoned

    async def save_index(self) -> Optional[str]:
        """
        Persist the index now.

        Raises:
            PersistenceWriteFailed: If the write failed (retryable)
        """
        if self.persistence is None:
            logger.debug("No persistence configured, index kept in memory only")
            return None
        return await self.persistence.save(self.index)

    def get_sync_stats(self) -> PipelineStats:
        return PipelineStats(
            items_synced=self.items_synced,
            vectors_stored=self.vectors_stored,
            vectors_in_storage=len(self.index),
            sync=self.sync.stats(),
        )

    def export_data(self) -> Dict[str, Any]:
        """Items and vector metadata for backup (vectors themselves are left out)."""
        return {
            "timestamp": time.time(),
            "owner_key": self.sync.owner_key,
            "items": [node.model_dump() for node in self.sync.owner_items()],
            "vectors": [
                {"id": record.id, "metadata": record.metadata, "method": record.method}
                for record in self.index.records()
            ],
            "stats": self.get_sync_stats().model_dump(),
        }

    async def clear_local_data(self) -> None:
        """Drop the local index and its saved blob. Peers keep their graph copies."""
        count = self.index.clear()
        if self.persistence is not None:
            await self.persistence.clear()
        self.vectors_stored = 0
        logger.info(f"Local data cleared ({count} vectors)")

    async def close(self) -> None:
        await self.sync.stop()
        self._initialized = False
