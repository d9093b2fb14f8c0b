"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Remote catalog
    catalog_base_url: str = Field(
        default="https://school.jinritemai.com/api/eschool/v2/library",
        description="Base URL of the external article library API",
    )
    catalog_root_id: str = Field(default="11593", description="Root node id of the catalog listing")
    catalog_page_size: int = 1000
    request_timeout: float = 30.0
    source_type: str = "douyin-knowledge"

    # Scheduler
    scheduler_max_concurrent: int = 30
    scheduler_min_interval_ms: int = 50

    # Sync loop
    sync_max_rounds: int = Field(
        default=10,
        description="Upper bound on retry rounds; unresolved items are reported, not retried forever",
    )
    sync_parse_error_rounds: int = Field(
        default=1,
        description="Rounds an item may fail with a parse error before it is skipped",
    )
    default_category_id: str | None = None

    # Embedding
    embedding_backend: str = Field(default="siliconflow", description="One of: siliconflow, baishan, gitee")
    embedding_api_key: str = ""
    embedding_model: str = Field(default="", description="Leave empty for the backend's default model")
    embedding_dimensions: int = 1024
    embedding_batch_size: int = 32
    embedding_timeout: float = 10.0

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "documents"
    vector_size: int = 1024

    # Chunking
    chunk_size: int = 500
    chunk_overlap: int = 100

    # Context assembly
    context_k: int = 5
    context_min_score: float = 0.5
    context_max_length: int = 2000

    # Local article dump used by FileDocumentStore
    articles_dir: str = "articles"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_chunking(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self


# Singleton — import `settings` wherever needed.
settings = Settings()
