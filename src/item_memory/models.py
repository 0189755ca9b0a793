import time
from typing import Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypeAliasType

# Metadata values are plain JSON values. Anything else is rejected at the
# model boundary so consumers can match on a closed set of shapes.
MetadataValue = TypeAliasType(
    "MetadataValue",
    Union[
        bool,
        int,
        float,
        str,
        None,
        List["MetadataValue"],
        Dict[str, "MetadataValue"],
    ],
)

Metadata = Dict[str, MetadataValue]


class EmbeddingRecord(BaseModel):
    """A stored embedding with its metadata."""

    id: str
    vector: List[float]
    metadata: Metadata = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.time, description="Epoch seconds")
    method: Optional[str] = Field(
        default=None, description="How the vector was produced (model or fallback name)"
    )


class SimilarityResult(BaseModel):
    id: str
    score: float = Field(..., ge=-1.0, le=1.0)
    metadata: Metadata = Field(default_factory=dict)


class FieldRegister(BaseModel):
    """Last-write-wins register holding one field of a graph node."""

    value: MetadataValue = None
    timestamp: float
    peer_id: str


class FieldUpdate(BaseModel):
    """Replication message for a single field of a graph node."""

    node_id: str
    field: str
    value: MetadataValue = None
    timestamp: float
    origin_peer: str

    def to_register(self) -> FieldRegister:
        return FieldRegister(value=self.value, timestamp=self.timestamp, peer_id=self.origin_peer)


class GraphNode(BaseModel):
    """
    Materialized view of a replicated node.

    The reserved registers (owner_key, deleted) are lifted out of ``fields``.
    """

    id: str
    owner_key: Optional[str] = None
    fields: Metadata = Field(default_factory=dict)
    updated_at: float = 0.0
    deleted: bool = False


class PriceRange(BaseModel):
    min: float
    max: float
    avg: float


class PriceInsight(BaseModel):
    """Suggested price range derived from similar items."""

    suggested_range: Optional[PriceRange] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: List[str] = Field(default_factory=list)
    similar_prices: List[float] = Field(default_factory=list)
    market_trend: Literal["stable", "rising", "falling"] = "stable"

    @property
    def suggested_min(self) -> Optional[float]:
        return self.suggested_range.min if self.suggested_range else None

    @property
    def suggested_max(self) -> Optional[float]:
        return self.suggested_range.max if self.suggested_range else None

    @property
    def suggested_avg(self) -> Optional[float]:
        return self.suggested_range.avg if self.suggested_range else None

    @classmethod
    def unavailable(cls, reason: str = "similarity/pricing unavailable") -> "PriceInsight":
        return cls(suggested_range=None, confidence=0.0, reasoning=[reason])


class CategoryHint(BaseModel):
    """Marketplace category suggestion for a recognized item."""

    category: str
    marketplace_id: Optional[int] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    original_category: Optional[str] = None
    keyword_matches: int = 0


class RecognitionPayload(BaseModel):
    """
    Recognition result handed over by the camera / AI collaborator.

    Accepts both snake_case and camelCase keys (``itemName``, ``imageData``...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_name: str
    category: str = ""
    condition: str = ""
    suggested_price: Optional[Union[str, float]] = Field(
        default=None,
        validation_alias=AliasChoices("suggested_price", "suggestedPrice", "priceHint", "price_hint"),
    )
    description: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    image_data: Optional[str] = Field(default=None, description="data: URI of the photo")
    raw_response: Optional[str] = None
    model: Optional[str] = None
    id: Optional[str] = None


class SyncStats(BaseModel):
    peer_id: str
    updates_sent: int = 0
    updates_received: int = 0
    updates_applied: int = 0
    updates_ignored: int = 0
    propagation_failures: int = 0
    backlog: int = 0
    nodes: int = 0
    peers_connected: int = 0
    reachable: Optional[bool] = None
    last_propagated_at: Optional[float] = None


class PipelineStats(BaseModel):
    items_synced: int = 0
    vectors_stored: int = 0
    vectors_in_storage: int = 0
    sync: Optional[SyncStats] = None
    last_updated: float = Field(default_factory=time.time)


class RecognitionResult(BaseModel):
    item_id: str
    neighbors: List[SimilarityResult] = Field(default_factory=list)
    price_insight: PriceInsight = Field(default_factory=PriceInsight.unavailable)
    sync_stats: PipelineStats = Field(default_factory=PipelineStats)
    category_hint: Optional[CategoryHint] = None
    embedding_method: Optional[str] = None
    has_signal: bool = True
    persisted: bool = False
    synced: bool = False
    warnings: List[str] = Field(default_factory=list)

    @property
    def similarity_available(self) -> bool:
        return self.has_signal and bool(self.neighbors)
