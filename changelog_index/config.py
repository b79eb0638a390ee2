"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class VectorBackend(str, Enum):
    """Where vector records are persisted."""

    MEMORY = "memory"
    QDRANT = "qdrant"


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration.

    Any OpenAI-compatible ``/embeddings`` endpoint works: a local
    text-embeddings-inference server, a hosted model, or a serverless
    function wrapping a commercial API.
    """

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="thenlper/gte-small",
        description="Embedding model name",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token for hosted embedding APIs",
    )
    dimensions: int | None = Field(
        default=None,
        description="Vector dimensions (learned from the model when unset)",
    )
    batch_size: int = Field(
        default=32,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=30.0,
        description="Caller-level timeout per embedding request in seconds",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="changelog_embeddings",
        description="Collection holding changelog vectors",
    )


class SourceSettings(BaseSettings):
    """Source-of-truth changelog table configuration."""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    url: str = Field(
        default="http://localhost:54321/rest/v1",
        description="REST endpoint root exposing the changelog table",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="API key sent as apikey and bearer token",
    )
    table: str = Field(
        default="changelogs",
        description="Changelog table name",
    )
    timeout: float = Field(
        default=30.0,
        description="Request timeout in seconds",
    )


class SearchSettings(BaseSettings):
    """Similarity search tuning.

    The thresholds are tunable constants, not values derived from data.
    """

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    threshold: float = Field(
        default=0.1,
        description="Results must score strictly above this similarity",
    )
    default_limit: int = Field(
        default=3,
        description="Number of results returned when no limit is given",
    )
    max_limit: int = Field(
        default=20,
        description="Upper bound applied to any requested limit",
    )
    auto_select_threshold: float = Field(
        default=0.2,
        description="Similarity above which results are auto-selected as context",
    )
    server_side: bool = Field(
        default=True,
        description="Prefer server-side ranking when the store supports it",
    )


class IndexingSettings(BaseSettings):
    """Bulk re-index configuration."""

    model_config = SettingsConfigDict(env_prefix="INDEXING_")

    batch_size: int = Field(
        default=3,
        ge=1,
        description="Entries embedded concurrently per batch",
    )
    batch_delay: float = Field(
        default=0.5,
        ge=0.0,
        description="Pause between batches in seconds",
    )
    store_path: Path | None = Field(
        default=None,
        description="JSON file backing the in-memory store (optional)",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    vector_backend: VectorBackend = Field(
        default=VectorBackend.MEMORY,
        description="Vector persistence backend",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    indexing: IndexingSettings = Field(default_factory=IndexingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
