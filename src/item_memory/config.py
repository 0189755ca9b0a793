"""
Configuration for item-memory services.

Settings are a pydantic-settings model. They can be built directly from
keyword arguments, and any field not given is read from the matching
``ITEM_MEMORY_*`` environment variable.
"""

import logging
import uuid
from typing import Any, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "ITEM_MEMORY_"

DEFAULT_DIMENSION = 1280


class ItemMemorySettings(BaseSettings):
    """Runtime settings shared by the index, sync service and pipeline."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_ignore_empty=True, extra="ignore")

    peer_id: str = Field(
        default_factory=lambda: f"peer-{uuid.uuid4().hex[:12]}",
        description="Identity of this device in the replication graph (also the LWW tiebreaker)",
    )
    owner_key: Optional[str] = Field(
        default=None, description="Pseudonymous owner identity stamped on created nodes"
    )
    dimension: int = Field(default=DEFAULT_DIMENSION, gt=0, description="Embedding dimension D")
    top_k: int = Field(default=5, ge=1, description="Neighbors returned per recognition")
    min_score: float = Field(default=0.6, ge=-1.0, le=1.0, description="Similarity floor")
    sync_timeout: float = Field(
        default=2.0, gt=0, description="Seconds to wait for peer propagation before going local-only"
    )
    embedding_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds allowed for model inference before falling back"
    )
    data_dir: Optional[str] = Field(
        default=None, description="Directory for the index blob (None keeps it in memory)"
    )
    blob_key: str = Field(default="item_vectors", description="Name of the persisted index blob")
    database_url: Optional[str] = Field(
        default=None, description="SQLAlchemy URL for the graph replica (None keeps it in memory)"
    )
    redis_url: Optional[str] = Field(default=None, description="Redis URL for the peer relay")
    redis_channel: str = Field(default="item-memory:sync", description="Relay pub/sub channel")
    clip_model: Optional[str] = Field(
        default=None, description="sentence-transformers CLIP model name (None = fallback only)"
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> "ItemMemorySettings":
        """
        Build settings from ``ITEM_MEMORY_*`` environment variables.

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            Validated settings

        Raises:
            ValueError: If a variable holds an invalid value
        """
        try:
            settings = cls(**overrides)
        except ValidationError as e:
            logger.error(f"Invalid item-memory configuration: {e}")
            raise ValueError(f"Invalid item-memory configuration: {e}") from e

        logger.debug(f"Loaded settings from environment: peer_id={settings.peer_id}")
        return settings
